"""Tests for the push, pull, queue and event MCP tools.

Handlers are driven through a ToolRegistry over a runtime wired on fakes,
so argument handling, engine calls and response shaping are covered
together.
"""

import pytest

from cookiejar_sync.crypto import encrypt
from cookiejar_sync.errors import RateLimitError
from cookiejar_sync.mcp.tools import ALL_SPECS, ToolRegistry
from cookiejar_sync.sync.models import CONTENT_FILE

from conftest import PASSPHRASE, START_TIME, TOKEN, make_cookie


@pytest.fixture
def registry():
    return ToolRegistry(ALL_SPECS)


def _text(result) -> str:
    return "\n".join(block.text for block in result.content)


def _seed_gist(client, gist_id="remote1"):
    payload = {
        "cookies": [
            make_cookie("sid", ".example.com", value="remote"),
            make_cookie("cart", "shop.test"),
        ],
        "origins": ["https://example.com/*"],
        "latestSyncTimestamp": "2024-05-01T10:00:00+00:00",
    }
    client.gists[gist_id] = {
        "id": gist_id,
        "updated_at": "2024-05-01T10:00:00Z",
        "files": {CONTENT_FILE: {"content": encrypt(payload, PASSPHRASE)}},
    }


class TestPing:
    async def test_without_token(self, registry, runtime, gist_client):
        result = await registry.call_tool("ping", {}, runtime)
        assert not result.isError
        assert "No GitHub token stored" in _text(result)
        assert gist_client.calls == []

    async def test_reports_rate_limit(self, registry, ready_runtime):
        result = await registry.call_tool("ping", {}, ready_runtime)
        assert "4990/5000 remaining, resets in 10m 0s" in _text(result)
        assert result.structuredContent["rate_limit"]["limit"] == 5000


class TestCookiePush:
    async def test_push_creates_gist(self, registry, ready_runtime, gist_client):
        result = await registry.call_tool("cookie_push", {}, ready_runtime)

        assert not result.isError
        assert result.structuredContent["outcome"] == "completed"
        assert result.structuredContent["remote_document_id"] == "gist1"
        assert "gist1" in gist_client.gists

    async def test_push_without_secrets_fails(self, registry, runtime):
        await runtime.reconciler.update(sync_urls=["https://example.com/*"])
        result = await registry.call_tool("cookie_push", {}, runtime)
        assert result.isError
        assert result.structuredContent["outcome"] == "failed"

    async def test_rate_limited_push_is_not_an_error(
        self, registry, ready_runtime, gist_client
    ):
        gist_client.errors["create_gist"] = [
            RateLimitError("GitHub rate limit hit (403).", START_TIME + 125)
        ]
        result = await registry.call_tool("cookie_push", {}, ready_runtime)

        assert not result.isError
        assert result.structuredContent["outcome"] == "queued"
        assert "Retry in: 2m 5s" in _text(result)

    async def test_response_never_contains_secrets(self, registry, ready_runtime):
        result = await registry.call_tool("cookie_push", {}, ready_runtime)
        assert TOKEN not in _text(result)
        assert PASSPHRASE not in _text(result)
        assert TOKEN not in str(result.structuredContent)


class TestCookiePullAndApply:
    async def test_pull_stops_before_apply(
        self, registry, ready_runtime, gist_client, cookie_store
    ):
        _seed_gist(gist_client)
        await ready_runtime.reconciler.update(remote_document_id="remote1")

        result = await registry.call_tool("cookie_pull", {}, ready_runtime)

        assert not result.isError
        assert result.structuredContent["outcome"] == "awaiting_permission"
        handoff = result.structuredContent["handoff"]
        assert handoff["cookie_counts"] == {
            "https://example.com/*": 1,
            "https://shop.test/*": 1,
        }
        assert set(handoff) == {"origins", "cookie_counts", "latest_sync_timestamp"}
        assert "2 cookies across 2 origins awaiting apply" in _text(result)
        assert cookie_store.all_cookies()[0]["value"] == "v"

    async def test_apply_after_pull(self, registry, ready_runtime, gist_client, cookie_store):
        _seed_gist(gist_client)
        await ready_runtime.reconciler.update(remote_document_id="remote1")
        await registry.call_tool("cookie_pull", {}, ready_runtime)

        result = await registry.call_tool("cookie_apply", {}, ready_runtime)

        assert not result.isError
        assert result.structuredContent["outcome"] == "completed"
        assert result.structuredContent["applied"] == 2
        assert result.structuredContent["denied_origins"] == []
        by_name = {c["name"]: c for c in cookie_store.all_cookies()}
        assert by_name["sid"]["value"] == "remote"

    async def test_apply_without_pull(self, registry, ready_runtime):
        result = await registry.call_tool("cookie_apply", {}, ready_runtime)
        assert result.isError
        assert "validation_error" in _text(result)
        assert "cookie_pull" in _text(result)

    async def test_pull_without_compatible_gist(self, registry, ready_runtime):
        result = await registry.call_tool("cookie_pull", {}, ready_runtime)
        assert result.isError
        assert result.structuredContent["outcome"] == "failed"


class TestQueueTools:
    async def test_empty_queue(self, registry, ready_runtime):
        result = await registry.call_tool("sync_queue_status", {}, ready_runtime)
        assert _text(result) == "Retry queue is empty."
        assert result.structuredContent == {"jobs": []}

    async def test_status_omits_request_body(
        self, registry, ready_runtime, gist_client
    ):
        gist_client.errors["create_gist"] = [
            RateLimitError("GitHub rate limit hit (403).", START_TIME + 30)
        ]
        await ready_runtime.run_push()

        result = await registry.call_tool("sync_queue_status", {}, ready_runtime)

        jobs = result.structuredContent["jobs"]
        assert len(jobs) == 1
        assert jobs[0]["operation"] == "create"
        assert "body" not in jobs[0]
        assert "1 queued job(s)" in _text(result)

    async def test_process_runs_due_jobs(
        self, registry, ready_runtime, gist_client, timers
    ):
        gist_client.errors["create_gist"] = [
            RateLimitError("GitHub rate limit hit (403).", START_TIME + 30)
        ]
        await ready_runtime.run_push()
        timers.clock_now += 31

        result = await registry.call_tool("sync_queue_process", {}, ready_runtime)

        assert result.structuredContent == {"jobs": []}
        assert ready_runtime.reconciler.settings.remote_document_id == "gist1"


class TestSyncEvents:
    async def test_no_events(self, registry, runtime):
        runtime.events.clear()
        result = await registry.call_tool("sync_events", {}, runtime)
        assert _text(result) == "No sync events yet."

    async def test_limit(self, registry, ready_runtime):
        await ready_runtime.run_push()
        result = await registry.call_tool("sync_events", {"limit": 2}, ready_runtime)

        events = result.structuredContent["events"]
        assert len(events) == 2
        assert events[-1]["stage"] == "push_completed"
        assert all("cookies" not in e for e in events)

    async def test_invalid_limit(self, registry, runtime):
        result = await registry.call_tool("sync_events", {"limit": 0}, runtime)
        assert result.isError
        assert "validation_error" in _text(result)
