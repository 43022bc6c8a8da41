"""Shared pytest fixtures for cookiejar-sync tests."""

from __future__ import annotations

import copy
from typing import Any

import pytest

from cookiejar_sync.config import Config
from cookiejar_sync.cookie_store import MemoryCookieStore, StaticPermissionGate
from cookiejar_sync.errors import NotFoundError
from cookiejar_sync.runtime import build_runtime
from cookiejar_sync.storage import MemoryStore
from cookiejar_sync.sync.timers import Timers

START_TIME = 1_700_000_000.0
TOKEN = "ghp_testtoken"
PASSPHRASE = "correct horse battery staple"


class _ManualHandle:
    def __init__(self) -> None:
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualTimers(Timers):
    """Timers on a virtual clock, fired only by ``advance()``."""

    def __init__(self, start: float = START_TIME) -> None:
        self.clock_now = start
        super().__init__(clock=lambda: self.clock_now)
        self._pending: list[tuple[float, int, _ManualHandle, Any]] = []
        self._seq = 0

    def _call_later(self, delay, fn):
        handle = _ManualHandle()
        self._seq += 1
        self._pending.append((self.clock_now + delay, self._seq, handle, fn))
        return handle

    async def advance(self, seconds: float) -> None:
        """Move the clock forward, firing due timers in deadline order."""
        target = self.clock_now + seconds
        while True:
            self._pending = [p for p in self._pending if not p[2].cancelled]
            due = sorted(
                (p for p in self._pending if p[0] <= target),
                key=lambda p: (p[0], p[1]),
            )
            if not due:
                break
            entry = due[0]
            self._pending.remove(entry)
            self.clock_now = max(self.clock_now, entry[0])
            entry[3]()
            await self.drain()
        self.clock_now = target


class FakeGistClient:
    """In-memory stand-in for ``GistClient``.

    ``errors`` maps a method name to exceptions raised, in order, by the
    next calls to that method.
    """

    def __init__(self) -> None:
        self.gists: dict[str, dict[str, Any]] = {}
        self.calls: list[tuple[str, tuple]] = []
        self.errors: dict[str, list[Exception]] = {}
        self.listing: list[dict[str, Any]] | None = None
        self._counter = 0

    def _enter(self, method: str, *args) -> None:
        self.calls.append((method, args))
        pending = self.errors.get(method)
        if pending:
            raise pending.pop(0)

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]

    def get_gist(self, gist_id, token):
        self._enter("get_gist", gist_id)
        if gist_id not in self.gists:
            raise NotFoundError(f"GET /gists/{gist_id}: not found")
        return copy.deepcopy(self.gists[gist_id])

    def create_gist(self, body, token):
        self._enter("create_gist", body)
        self._counter += 1
        gist_id = f"gist{self._counter}"
        self.gists[gist_id] = {
            "id": gist_id,
            "description": body.get("description"),
            "public": body.get("public"),
            "files": copy.deepcopy(body.get("files", {})),
            "updated_at": f"2024-01-01T00:00:{self._counter:02d}Z",
        }
        return copy.deepcopy(self.gists[gist_id])

    def update_gist(self, gist_id, body, token):
        self._enter("update_gist", gist_id, body)
        if gist_id not in self.gists:
            raise NotFoundError(f"PATCH /gists/{gist_id}: not found")
        self.gists[gist_id]["files"].update(copy.deepcopy(body["files"]))
        return copy.deepcopy(self.gists[gist_id])

    def delete_gist(self, gist_id, token):
        self._enter("delete_gist", gist_id)
        if self.gists.pop(gist_id, None) is None:
            raise NotFoundError(f"DELETE /gists/{gist_id}: not found")

    def list_gists(self, token, page=1, per_page=100):
        self._enter("list_gists", page, per_page)
        source = (
            self.listing if self.listing is not None else list(self.gists.values())
        )
        start = (page - 1) * per_page
        return copy.deepcopy(source[start : start + per_page])

    def rate_limit(self, token):
        self._enter("rate_limit")
        return {"limit": 5000, "remaining": 4990, "reset": int(START_TIME) + 600}


def make_cookie(
    name: str, domain: str, secure: bool = True, value: str = "v"
) -> dict[str, Any]:
    return {
        "name": name,
        "value": value,
        "domain": domain,
        "path": "/",
        "secure": secure,
        "httpOnly": False,
    }


@pytest.fixture
def config(tmp_path):
    return Config(state_dir=str(tmp_path / "state"))


@pytest.fixture
def timers():
    return ManualTimers()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def cookie_store():
    return MemoryCookieStore(
        [
            make_cookie("sid", ".example.com"),
            make_cookie("pref", "www.example.com"),
            make_cookie("other", "other.org"),
        ]
    )


@pytest.fixture
def permissions():
    return StaticPermissionGate(grant_all=True)


@pytest.fixture
def gist_client():
    return FakeGistClient()


@pytest.fixture
def runtime(config, store, cookie_store, permissions, gist_client, timers):
    """Fully wired runtime on fakes, with no pause between applied cookies."""
    return build_runtime(
        config,
        store=store,
        cookie_store=cookie_store,
        permissions=permissions,
        client=gist_client,
        timers=timers,
        clock=timers.now,
        apply_delay=0,
    )


@pytest.fixture
async def ready_runtime(runtime):
    """Runtime with secrets stored and one sync URL configured."""
    await runtime.secrets.save(TOKEN, PASSPHRASE)
    await runtime.reconciler.update(
        sync_urls=["https://example.com/*"], auto_sync_enabled=False
    )
    return runtime
