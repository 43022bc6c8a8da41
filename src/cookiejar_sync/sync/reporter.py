"""Human-readable and machine-readable formatting for sync output.

- ``format_duration`` -- "1h 2m 3s" style wait times.
- ``format_event`` / ``format_events`` -- progress events as text lines.
- ``format_flow_result`` -- one-paragraph summary of a flow outcome.
- ``result_to_json`` / ``settings_to_json`` -- structured dicts for tool output.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .models import AppEvent, FlowResult, SyncJob, SyncSettings

from .models import FlowOutcome


def format_duration(seconds: float) -> str:
    """Format a wait time.  Zero or negative durations read as ``now``."""
    if seconds <= 0:
        return "now"
    total = math.ceil(seconds)
    hrs, rem = divmod(total, 3600)
    mins, secs = divmod(rem, 60)
    if hrs > 0:
        return f"{hrs}h {mins}m {secs}s"
    if mins > 0:
        return f"{mins}m {secs}s"
    return f"{secs}s"


def format_event(event: AppEvent) -> str:
    line = f"[{event.stage.value}]"
    if event.progress is not None:
        line += f" {event.progress:>3}%"
    line += f" {event.message}"
    if event.error:
        line += f" ({event.error})"
    return line


def format_events(events: list[AppEvent]) -> str:
    return "\n".join(format_event(e) for e in events)


def format_flow_result(result: FlowResult, now: float | None = None) -> str:
    """Summarize a flow result for humans.

    Args:
        result: The flow outcome.
        now: Current epoch seconds, used to render ``retry_at`` as a wait.
    """
    lines = [f"Outcome: {result.outcome.value} at {result.stage.value}"]
    lines.append(result.message)
    if result.error:
        lines.append(f"Error: {result.error}")
    if result.remote_document_id:
        lines.append(f"Remote document: {result.remote_document_id}")
    if result.retry_at is not None and now is not None:
        lines.append(f"Retry in: {format_duration(result.retry_at - now)}")
    if result.outcome == FlowOutcome.AWAITING_PERMISSION and result.handoff:
        handoff = result.handoff
        lines.append(
            f"{handoff.cookie_count} cookies across "
            f"{len(handoff.cookies_by_origin)} origins awaiting apply:"
        )
        for origin, cookies in handoff.cookies_by_origin.items():
            lines.append(f"  {origin}: {len(cookies)}")
    return "\n".join(lines)


def result_to_json(result: FlowResult) -> dict[str, Any]:
    """Structured form of a flow result.  Cookie values are omitted."""
    data: dict[str, Any] = {
        "outcome": result.outcome.value,
        "stage": result.stage.value,
        "message": result.message,
        "error": result.error,
        "remote_document_id": result.remote_document_id,
        "retry_at": result.retry_at,
    }
    if result.handoff is not None:
        data["handoff"] = {
            "origins": list(result.handoff.origins),
            "cookie_counts": {
                origin: len(cookies)
                for origin, cookies in result.handoff.cookies_by_origin.items()
            },
            "latest_sync_timestamp": result.handoff.latest_sync_timestamp,
        }
    return data


def settings_to_json(settings: SyncSettings | None) -> dict[str, Any] | None:
    return settings.to_storage() if settings is not None else None


def format_settings(settings: SyncSettings | None) -> str:
    if settings is None:
        return "No sync settings saved yet."
    last = (
        settings.last_sync_timestamp.isoformat()
        if settings.last_sync_timestamp
        else "never"
    )
    lines = [
        "Sync settings",
        f"  Remote document: {settings.remote_document_id or '(none)'}",
        f"  Auto sync:       {settings.auto_sync_enabled}",
        f"  Interval:        {settings.sync_interval_minutes} min",
        f"  Sync on change:  {settings.sync_on_change}",
        f"  Last sync:       {last}",
        f"  Sync URLs ({len(settings.sync_urls)}):",
    ]
    lines.extend(f"    {url}" for url in settings.sync_urls)
    return "\n".join(lines)


def format_queue(jobs: list[SyncJob], now: float) -> str:
    if not jobs:
        return "Retry queue is empty."
    lines = [f"{len(jobs)} queued job(s):"]
    for job in jobs:
        target = job.remote_document_id or "(new)"
        lines.append(
            f"  {job.operation.value} {target} "
            f"attempts={job.attempts} "
            f"next in {format_duration(job.next_attempt_at - now)}"
        )
    return "\n".join(lines)
