"""MCP server for the cookie sync engine using stdio transport.

This module implements the Model Context Protocol server that lets AI
agents push, pull and configure the encrypted cookie sync.

Transport: stdio
Protocol: JSON-RPC 2.0 over MCP
"""

import argparse
import asyncio
import logging
import sys

import mcp.server.stdio
import mcp.types as types
from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions

from .. import __version__
from ..config_loader import ensure_config
from ..logger import setup_logging
from ..runtime import SyncRuntime
from .lifespan import server_lifespan
from .tools import (
    ALL_SPECS,
    ToolRegistry,
    build_error_response,
    load_permissions_file,
)

logger = logging.getLogger(__name__)

server = Server("cookiejar-sync")

# Initialized in main()
_runtime: SyncRuntime | None = None
_registry: ToolRegistry | None = None


# ---------------------------------------------------------------------------
# Global accessors
# ---------------------------------------------------------------------------


def get_runtime() -> SyncRuntime:
    """Get the global SyncRuntime instance.

    Raises:
        RuntimeError: If the runtime is not initialized
    """
    if _runtime is None:
        raise RuntimeError(
            "SyncRuntime not initialized. Server lifespan not started."
        )
    return _runtime


def set_runtime(runtime: SyncRuntime | None) -> None:
    global _runtime
    _runtime = runtime


def get_registry() -> ToolRegistry:
    """Get the global ToolRegistry instance.

    Raises:
        RuntimeError: If registry is not initialized
    """
    if _registry is None:
        raise RuntimeError("ToolRegistry not initialized.")
    return _registry


def set_registry(registry: ToolRegistry | None) -> None:
    global _registry
    _registry = registry


# ---------------------------------------------------------------------------
# MCP protocol handlers
# ---------------------------------------------------------------------------


@server.list_tools()
async def handle_list_tools() -> list[types.Tool]:
    """List the registered (and permitted) tools."""
    return get_registry().list_tools()


@server.call_tool()
async def handle_call_tool(
    name: str, arguments: dict | None
) -> types.CallToolResult:
    """Handle tool execution via ToolRegistry dispatch."""
    runtime = get_runtime()
    try:
        return await get_registry().call_tool(name, arguments, runtime)
    except ValueError as e:
        # Unknown or filtered-out tool name
        return build_error_response(
            "unknown_tool",
            str(e),
            "Use list_tools to see available tools.",
        )


# ---------------------------------------------------------------------------
# Server lifecycle
# ---------------------------------------------------------------------------


def build_registry(permissions_file: str | None = None) -> ToolRegistry:
    """Build the ToolRegistry, filtered by an optional permissions file."""
    allowed_permissions = None
    if permissions_file:
        allowed_permissions = load_permissions_file(permissions_file)
        logger.info(
            "Loaded %d permissions from %s",
            len(allowed_permissions),
            permissions_file,
        )
    registry = ToolRegistry(ALL_SPECS, allowed_permissions)
    logger.info(
        "Registered %d tools (of %d total)",
        registry.tool_count(),
        len(ALL_SPECS),
    )
    return registry


async def main(config_overrides: dict | None = None):
    """Run the MCP server with stdio transport.

    Logging goes to a file only so nothing contaminates stdout before the
    stdio transport takes over.

    Args:
        config_overrides: Optional dict with config values to override
            (api_url, state_dir, cookie_jar, debug, log_file, permissions_file)
    """
    overrides = config_overrides or {}
    setup_logging(
        mode="mcp",
        debug=overrides.get("debug", False),
        log_file=overrides.get("log_file"),
    )

    permissions_file = overrides.get("permissions_file")
    registry = build_registry(permissions_file)
    if permissions_file:
        print(
            f"Permissions file: {permissions_file} "
            f"({registry.tool_count()} of {len(ALL_SPECS)} tools enabled)",
            file=sys.stderr,
        )
    set_registry(registry)

    # set_runtime() is called here rather than in the lifespan so that
    # running this file as __main__ updates the same module globals the
    # handlers read.
    async with server_lifespan(config_overrides=config_overrides) as ctx:
        set_runtime(ctx["runtime"])
        try:
            async with mcp.server.stdio.stdio_server() as (
                read_stream,
                write_stream,
            ):
                init_options = InitializationOptions(
                    server_name="cookiejar-sync",
                    server_version=__version__,
                    capabilities=server.get_capabilities(
                        notification_options=NotificationOptions(),
                        experimental_capabilities={},
                    ),
                )
                await server.run(read_stream, write_stream, init_options)
        finally:
            set_runtime(None)
            set_registry(None)


def run() -> None:
    """Entry point that handles errors gracefully and parses CLI arguments."""
    parser = argparse.ArgumentParser(
        description="cookiejar-sync - encrypted cookie sync over GitHub Gist, as an MCP server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with default config (from .env or .cookiejar/config.yml)
  cookiejar-sync

  # Keep state somewhere else
  cookiejar-sync --state-dir /var/lib/cookiejar

  # Expose only read and sync tools
  cookiejar-sync --permissions-file /etc/cookiejar/pull-only.permissions

Note: This server uses stdio transport for JSON-RPC communication with MCP clients.
All user-facing messages are written to stderr.
        """,
    )

    parser.add_argument(
        "--api-url",
        help="Override the GitHub API base URL (takes precedence over COOKIEJAR_API_URL and config files)",
    )
    parser.add_argument(
        "--state-dir",
        help="Directory for settings, secrets and the retry queue (default: ~/.cookiejar)",
    )
    parser.add_argument(
        "--cookie-jar",
        help="JSON cookie jar file (default: <state-dir>/cookies.json)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--log-file",
        help="Log file path (default: LOG_FILE or /tmp/cookiejar-sync.log)",
    )
    parser.add_argument(
        "--permissions-file",
        help="Path to permissions file restricting available tools. "
        "Format: one permission per line (SYNC_READ, SYNC_WRITE, SETTINGS_WRITE, "
        "SECRETS_WRITE), # for comments. If not specified, all tools are available.",
    )
    parser.add_argument(
        "--init-config",
        action="store_true",
        help="Write a commented starter .cookiejar/config.yml (unless a config "
        "file already exists) and exit",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"cookiejar-sync version {__version__}",
    )

    args = parser.parse_args()

    if args.init_config:
        path, created = ensure_config()
        if created:
            print(f"Created starter config: {path}", file=sys.stderr)
        else:
            print(f"Config file already exists: {path}", file=sys.stderr)
        return

    config_overrides: dict = {}
    if args.api_url:
        config_overrides["api_url"] = args.api_url
    if args.state_dir:
        config_overrides["state_dir"] = args.state_dir
    if args.cookie_jar:
        config_overrides["cookie_jar"] = args.cookie_jar
    if args.debug:
        config_overrides["debug"] = True
    if args.log_file:
        config_overrides["log_file"] = args.log_file
    if args.permissions_file:
        config_overrides["permissions_file"] = args.permissions_file

    if config_overrides:
        print(
            f"Config overrides from CLI: {', '.join(config_overrides)}",
            file=sys.stderr,
        )

    try:
        asyncio.run(main(config_overrides=config_overrides or None))
    except RuntimeError:
        # Error already printed to stderr by lifespan manager
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    run()
