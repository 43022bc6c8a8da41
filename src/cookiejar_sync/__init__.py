"""Encrypted cookie sync through a remote Gist document."""

__version__ = "0.4.0"
