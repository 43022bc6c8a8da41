"""ToolSpec and ToolRegistry for permission-based tool filtering.

This module provides a centralized registry for MCP tools that supports
filtering by sync permissions, so operators can restrict which tools are
exposed to AI agents (for example a read-only deployment that can pull
but never overwrite the remote jar).

Key concepts:
- ToolSpec: Immutable dataclass linking a Tool definition, required permissions,
  and an async handler with standardized signature (runtime, args) -> CallToolResult.
- ToolRegistry: Filters specs by allowed permissions at construction time,
  then provides list_tools() and call_tool() dispatch with error translation.
- load_permissions_file: Reads a simple text file of permission names.

Permissions:
- SYNC_READ: inspect settings, queue and events.
- SYNC_WRITE: push, pull, apply and process the queue.
- SETTINGS_WRITE: change settings and sync URLs.
- SECRETS_WRITE: store the token and passphrase.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import mcp.types as types
from pydantic import ValidationError

from ...errors import CookieJarError

if TYPE_CHECKING:
    from ...runtime import SyncRuntime

logger = logging.getLogger(__name__)

SYNC_READ = "SYNC_READ"
SYNC_WRITE = "SYNC_WRITE"
SETTINGS_WRITE = "SETTINGS_WRITE"
SECRETS_WRITE = "SECRETS_WRITE"
KNOWN_PERMISSIONS = frozenset(
    {SYNC_READ, SYNC_WRITE, SETTINGS_WRITE, SECRETS_WRITE}
)


@dataclass(frozen=True, slots=True)
class ToolSpec:
    """Immutable specification for a single MCP tool.

    Attributes:
        tool: The MCP Tool definition (name, description, inputSchema).
        permissions: Permissions required to use this tool.
            Empty frozenset means the tool is always available.
        handler: Async handler with signature (runtime, args) -> CallToolResult.
    """

    tool: types.Tool
    permissions: frozenset[str]
    handler: Callable[[SyncRuntime, dict], Awaitable[types.CallToolResult]]


class ToolRegistry:
    """Registry of ToolSpecs with optional permission-based filtering.

    If allowed_permissions is None, all specs are included.
    Otherwise, a spec is included only if:
    - its permissions set is empty (always available), or
    - its permissions are a subset of allowed_permissions.
    """

    def __init__(
        self,
        specs: list[ToolSpec],
        allowed_permissions: frozenset[str] | None = None,
    ):
        self._specs: dict[str, ToolSpec] = {}
        for spec in specs:
            if (
                allowed_permissions is None
                or not spec.permissions
                or spec.permissions <= allowed_permissions
            ):
                self._specs[spec.tool.name] = spec

    def list_tools(self) -> list[types.Tool]:
        """Return list of types.Tool for all registered (permitted) specs."""
        return [spec.tool for spec in self._specs.values()]

    def tool_count(self) -> int:
        return len(self._specs)

    async def call_tool(
        self,
        name: str,
        arguments: dict | None,
        runtime: SyncRuntime,
    ) -> types.CallToolResult:
        """Dispatch tool call to registered handler.

        Engine errors, validation errors and unexpected exceptions are
        translated into structured CallToolResult responses with
        corrective actions.

        Raises:
            ValueError: If tool name is not registered (unknown or filtered out).
        """
        from .errors import build_error_response, translate_sync_error

        spec = self._specs.get(name)
        if spec is None:
            raise ValueError(f"Unknown tool: {name}")
        args = arguments or {}
        try:
            return await spec.handler(runtime, args)
        except CookieJarError as e:
            logger.warning("Sync error in %s: %s", name, e)
            return translate_sync_error(e, runtime.timers.now())
        except ValidationError as e:
            return build_error_response(
                "validation_error",
                _validation_summary(e),
                "Check parameter values and retry.",
            )
        except ValueError as e:
            return build_error_response(
                "validation_error",
                str(e),
                "Check parameter values and retry.",
            )
        except Exception as e:
            logger.exception("Unexpected error in tool %s", name)
            return build_error_response(
                "server_error",
                str(e),
                "Check the server log and retry later.",
            )


def _validation_summary(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        loc = ".".join(str(p) for p in item.get("loc", ()))
        parts.append(f"{loc}: {item.get('msg')}" if loc else item.get("msg", ""))
    return "; ".join(parts) or str(error)


def load_permissions_file(path: str | Path) -> frozenset[str]:
    """Load permissions from a text file.

    Format: one permission per line, ``#`` for comments, blank lines ignored.

    Example file::

        # Pull-only deployment
        SYNC_READ
        SYNC_WRITE

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file names an unknown permission or is empty.
    """
    path = Path(path)
    permissions: set[str] = set()
    for line_num, line in enumerate(path.read_text().splitlines(), 1):
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        if stripped not in KNOWN_PERMISSIONS:
            raise ValueError(
                f"Invalid permission '{stripped}' at line {line_num} in {path}. "
                f"Expected one of: {', '.join(sorted(KNOWN_PERMISSIONS))}."
            )
        permissions.add(stripped)
    if not permissions:
        raise ValueError(
            f"No permissions found in {path}. File must contain at least one permission."
        )
    return frozenset(permissions)
