"""MCP tool handlers for push, pull and the retry queue.

Defines these tools:

- ``ping`` -- check the server and, when a token is stored, GitHub reachability.
- ``cookie_push`` -- run the push flow now.
- ``cookie_pull`` -- run the pull flow up to the permission step.
- ``cookie_apply`` -- apply the cookies the last pull handed off.
- ``sync_queue_status`` -- list queued writes.
- ``sync_queue_process`` -- drain due queued writes now.
- ``sync_events`` -- recent progress events.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import mcp.types as types

from ...core.async_utils import run_sync
from ...sync.reporter import (
    format_duration,
    format_events,
    format_flow_result,
    format_queue,
    result_to_json,
)
from .registry import SYNC_READ, SYNC_WRITE, ToolSpec

if TYPE_CHECKING:
    from ...runtime import SyncRuntime

logger = logging.getLogger(__name__)

DEFAULT_EVENT_LIMIT = 20


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------


_EMPTY_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {},
    "required": [],
}

SYNC_TOOLS: list[types.Tool] = [
    types.Tool(
        name="ping",
        description=(
            "Check the cookie sync server is running and, when a token is "
            "stored, that the GitHub API is reachable."
        ),
        inputSchema=_EMPTY_SCHEMA,
    ),
    types.Tool(
        name="cookie_push",
        description=(
            "Encrypt the cookies of every configured sync URL and upload "
            "them to the private Gist. Rate-limited uploads are queued and "
            "retried automatically."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=False,
            openWorldHint=True,
        ),
        inputSchema=_EMPTY_SCHEMA,
    ),
    types.Tool(
        name="cookie_pull",
        description=(
            "Download and decrypt the cookie Gist. Stops before writing any "
            "cookie: call cookie_apply to apply them."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=True,
        ),
        inputSchema=_EMPTY_SCHEMA,
    ),
    types.Tool(
        name="cookie_apply",
        description=(
            "Apply the cookies handed off by the last cookie_pull to every "
            "origin the permission policy grants."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=True,
            idempotentHint=False,
            openWorldHint=False,
        ),
        inputSchema=_EMPTY_SCHEMA,
    ),
    types.Tool(
        name="sync_queue_status",
        description="List Gist writes queued after a GitHub rate limit.",
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema=_EMPTY_SCHEMA,
    ),
    types.Tool(
        name="sync_queue_process",
        description=(
            "Run every queued Gist write whose retry time has passed, then "
            "show what is left."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=False,
            openWorldHint=True,
        ),
        inputSchema=_EMPTY_SCHEMA,
    ),
    types.Tool(
        name="sync_events",
        description="Show recent sync progress events, newest last.",
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "limit": {
                    "type": "integer",
                    "minimum": 1,
                    "maximum": 200,
                    "default": DEFAULT_EVENT_LIMIT,
                    "description": "Number of events to return",
                },
            },
            "required": [],
        },
    ),
]


# ---------------------------------------------------------------------------
# Individual handlers
# ---------------------------------------------------------------------------


def _flow_response(
    runtime: SyncRuntime, result, extra: dict[str, Any] | None = None
) -> types.CallToolResult:
    structured = result_to_json(result)
    if extra:
        structured.update(extra)
    return types.CallToolResult(
        content=[
            types.TextContent(
                type="text",
                text=format_flow_result(result, runtime.timers.now()),
            )
        ],
        structuredContent=structured,
        isError=not result.ok,
    )


async def _handle_ping(
    runtime: SyncRuntime, args: dict
) -> types.CallToolResult:
    """Handle ping."""
    token = await runtime.secrets.token()
    if not token:
        return types.CallToolResult(
            content=[
                types.TextContent(
                    type="text",
                    text="Cookie sync server running. No GitHub token stored yet; "
                    "use sync_secrets_set.",
                )
            ]
        )
    core = await run_sync(runtime.client.rate_limit, token)
    reset = core.get("reset")
    wait = (
        format_duration(float(reset) - runtime.timers.now())
        if reset is not None
        else "unknown"
    )
    return types.CallToolResult(
        content=[
            types.TextContent(
                type="text",
                text=(
                    "GitHub API reachable. Rate limit: "
                    f"{core.get('remaining', '?')}/{core.get('limit', '?')} "
                    f"remaining, resets in {wait}."
                ),
            )
        ],
        structuredContent={"rate_limit": core},
    )


async def _handle_push(
    runtime: SyncRuntime, args: dict
) -> types.CallToolResult:
    """Handle cookie_push."""
    result = await runtime.run_push()
    return _flow_response(runtime, result)


async def _handle_pull(
    runtime: SyncRuntime, args: dict
) -> types.CallToolResult:
    """Handle cookie_pull."""
    result = await runtime.run_pull()
    return _flow_response(runtime, result)


async def _handle_apply(
    runtime: SyncRuntime, args: dict
) -> types.CallToolResult:
    """Handle cookie_apply."""
    result, report = await runtime.apply_pending()
    extra = {
        "applied": len(report.applied),
        "failed": len(report.failed),
        "denied_origins": list(report.denied_origins),
        "granted_origins": list(report.granted_origins),
    }
    response = _flow_response(runtime, result, extra)
    if report.denied_origins:
        response.content.append(
            types.TextContent(
                type="text",
                text="Denied origins: " + ", ".join(report.denied_origins),
            )
        )
    return response


async def _handle_queue_status(
    runtime: SyncRuntime, args: dict
) -> types.CallToolResult:
    """Handle sync_queue_status."""
    jobs = await runtime.repository.pending_jobs()
    return types.CallToolResult(
        content=[
            types.TextContent(
                type="text", text=format_queue(jobs, runtime.timers.now())
            )
        ],
        structuredContent={
            "jobs": [
                job.model_dump(mode="json", exclude={"body"}) for job in jobs
            ]
        },
    )


async def _handle_queue_process(
    runtime: SyncRuntime, args: dict
) -> types.CallToolResult:
    """Handle sync_queue_process."""
    await runtime.repository.process_queue()
    return await _handle_queue_status(runtime, args)


async def _handle_events(
    runtime: SyncRuntime, args: dict
) -> types.CallToolResult:
    """Handle sync_events."""
    limit = args.get("limit", DEFAULT_EVENT_LIMIT)
    if not isinstance(limit, int) or limit < 1:
        raise ValueError("limit must be a positive integer")
    events = runtime.events.recent(limit)
    if not events:
        text = "No sync events yet."
    else:
        text = format_events(events)
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent={
            "events": [
                e.model_dump(mode="json", exclude={"cookies"}) for e in events
            ]
        },
    )


# ToolSpec list for registry-based dispatch
SYNC_SPECS: list[ToolSpec] = [
    ToolSpec(
        tool=SYNC_TOOLS[0],
        permissions=frozenset(),
        handler=_handle_ping,
    ),
    ToolSpec(
        tool=SYNC_TOOLS[1],
        permissions=frozenset({SYNC_WRITE}),
        handler=_handle_push,
    ),
    ToolSpec(
        tool=SYNC_TOOLS[2],
        permissions=frozenset({SYNC_READ}),
        handler=_handle_pull,
    ),
    ToolSpec(
        tool=SYNC_TOOLS[3],
        permissions=frozenset({SYNC_WRITE}),
        handler=_handle_apply,
    ),
    ToolSpec(
        tool=SYNC_TOOLS[4],
        permissions=frozenset({SYNC_READ}),
        handler=_handle_queue_status,
    ),
    ToolSpec(
        tool=SYNC_TOOLS[5],
        permissions=frozenset({SYNC_WRITE}),
        handler=_handle_queue_process,
    ),
    ToolSpec(
        tool=SYNC_TOOLS[6],
        permissions=frozenset({SYNC_READ}),
        handler=_handle_events,
    ),
]
