"""Gist API client and async bridging helpers."""

from .async_utils import run_sync
from .client import GistClient

__all__ = ["GistClient", "run_sync"]
