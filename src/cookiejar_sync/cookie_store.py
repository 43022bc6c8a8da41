"""Cookie-store and permission collaborators.

The sync flows only talk to these protocols.  Two cookie stores ship with
the package:

* ``MemoryCookieStore`` -- in-process jar, used when embedding the engine
  and in tests.
* ``FileCookieStore`` -- the same jar persisted to a JSON file, used by the
  MCP server.

Cookies are plain dicts in the browser's cookie shape (``name``, ``value``,
``domain``, ``path``, ``secure``, ``httpOnly``, ``expirationDate``, ...).
A cookie is identified by ``(name, domain, path)``.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any, Protocol

from .core.async_utils import run_sync
from .sync.models import CookieChange
from .sync.patterns import compile_patterns, matches

logger = logging.getLogger(__name__)

ChangeListener = Callable[[CookieChange], None]


class CookieStore(Protocol):
    async def list_all_for_origins(
        self, origins: list[str]
    ) -> list[dict[str, Any]]: ...

    async def get_all_for_origin(self, origin: str) -> list[dict[str, Any]]: ...

    async def set_cookie(self, cookie: dict[str, Any]) -> dict[str, Any]: ...

    def add_change_listener(self, listener: ChangeListener) -> None: ...

    def remove_change_listener(self, listener: ChangeListener) -> None: ...


class PermissionGate(Protocol):
    async def request_access(self, origin: str) -> bool: ...


def _cookie_key(cookie: dict[str, Any]) -> tuple[str, str, str]:
    return (
        str(cookie.get("name")),
        str(cookie.get("domain", "")).lower(),
        str(cookie.get("path") or "/"),
    )


class MemoryCookieStore:
    """In-memory cookie jar that notifies listeners on every write."""

    def __init__(self, cookies: Iterable[dict[str, Any]] | None = None) -> None:
        self._cookies: dict[tuple[str, str, str], dict[str, Any]] = {}
        self._listeners: list[ChangeListener] = []
        for cookie in cookies or []:
            self._cookies[_cookie_key(cookie)] = dict(cookie)

    def all_cookies(self) -> list[dict[str, Any]]:
        return [copy.deepcopy(c) for c in self._cookies.values()]

    async def list_all_for_origins(
        self, origins: list[str]
    ) -> list[dict[str, Any]]:
        patterns = compile_patterns(origins)
        return [
            copy.deepcopy(c)
            for c in self._cookies.values()
            if matches(c, patterns)
        ]

    async def get_all_for_origin(self, origin: str) -> list[dict[str, Any]]:
        return await self.list_all_for_origins([origin])

    async def set_cookie(self, cookie: dict[str, Any]) -> dict[str, Any]:
        """Store *cookie*, replacing one with the same name, domain and path.

        Raises:
            ValueError: The cookie has no name or no domain.
        """
        if not cookie.get("name") or not cookie.get("domain"):
            raise ValueError("Cookie needs a name and a domain")
        key = _cookie_key(cookie)
        cause = "overwrite" if key in self._cookies else "explicit"
        stored = dict(cookie)
        stored.setdefault("path", "/")
        self._cookies[key] = stored
        await self._persist()
        self.notify(CookieChange(cookie=copy.deepcopy(stored), cause=cause))
        return copy.deepcopy(stored)

    async def remove_cookie(self, name: str, domain: str, path: str = "/") -> bool:
        removed = self._cookies.pop(
            _cookie_key({"name": name, "domain": domain, "path": path}), None
        )
        if removed is None:
            return False
        await self._persist()
        self.notify(CookieChange(cookie=removed, cause="explicit", removed=True))
        return True

    def add_change_listener(self, listener: ChangeListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_change_listener(self, listener: ChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def notify(self, change: CookieChange) -> None:
        """Deliver *change* to every listener.  Listener errors are logged."""
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:
                logger.exception("Cookie change listener failed")

    async def _persist(self) -> None:
        pass


class FileCookieStore(MemoryCookieStore):
    """Cookie jar persisted as a JSON list.

    Args:
        path: JSON file holding the cookie list.  Missing means empty.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        super().__init__(self._read())

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> list[dict[str, Any]]:
        if not self._path.exists():
            return []
        try:
            with open(self._path, encoding="utf-8") as fh:
                data = json.load(fh)
        except ValueError:
            logger.error("Corrupt cookie jar %s; starting empty", self._path)
            return []
        if not isinstance(data, list):
            logger.error("Cookie jar %s is not a list; starting empty", self._path)
            return []
        return [c for c in data if isinstance(c, dict)]

    def _write(self, cookies: list[dict[str, Any]]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=str(self._path.parent), suffix=".tmp"
        )
        try:
            os.chmod(tmp_path, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(cookies, fh, indent=2)
            os.replace(tmp_path, self._path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    async def _persist(self) -> None:
        await run_sync(self._write, self.all_cookies())


class StaticPermissionGate:
    """Grants a fixed set of origins, or everything with ``grant_all``.

    Every request is recorded in ``requested``.
    """

    def __init__(
        self, granted: Iterable[str] = (), grant_all: bool = False
    ) -> None:
        self._granted = {o.strip() for o in granted if o.strip()}
        self._grant_all = grant_all
        self.requested: list[str] = []

    def grant(self, origin: str) -> None:
        self._granted.add(origin.strip())

    async def request_access(self, origin: str) -> bool:
        self.requested.append(origin)
        granted = self._grant_all or origin in self._granted
        logger.info(
            "Access to %s %s", origin, "granted" if granted else "denied"
        )
        return granted
