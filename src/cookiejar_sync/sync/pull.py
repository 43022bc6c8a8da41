"""Pull flow and the apply step that follows it.

``PullService.run()`` resolves, downloads and decrypts the remote document,
then stops at ``pull_wait_for_permission`` with a ``PullHandoff``: the
cookies grouped by the origin that covers them.  It never writes cookies.

``PullService.apply()`` asks the permission gate for each origin, writes
the cookies of granted origins one by one with a short pause between
items, and records the document id, the sync time and the granted origins
in the settings.

Rate limits while resolving or downloading end the attempt with a
``rate_limited`` result; reads are never queued.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from ..core.async_utils import run_sync
from ..crypto import decrypt
from ..errors import (
    ConfigurationError,
    CookieJarError,
    CryptoError,
    PermissionDeniedError,
    RateLimitError,
)
from .events import ProgressChannel
from .models import (
    CONTENT_FILE,
    ApplyReport,
    AppStage,
    FlowOutcome,
    FlowResult,
    PullHandoff,
    utcnow,
)
from .patterns import compile_patterns, matches, origin_for_cookie
from .reporter import format_duration
from .repository import RemoteDocumentRepository
from .settings import SecretsStore, SettingsReconciler

if TYPE_CHECKING:
    from ..cookie_store import CookieStore, PermissionGate

logger = logging.getLogger(__name__)

APPLY_DELAY_SECONDS = 0.1


class PayloadError(CookieJarError):
    """Decrypted content is not a cookie payload."""


def parse_payload(
    plain: Any,
) -> tuple[list[dict[str, Any]], list[str], str | None]:
    """Split a decrypted payload into cookies, origins and sync timestamp.

    A bare list is the legacy form and carries cookies only.

    Raises:
        PayloadError: Neither a payload object nor a cookie list.
    """
    if isinstance(plain, list):
        return [c for c in plain if isinstance(c, dict)], [], None
    if not isinstance(plain, dict):
        raise PayloadError("Decrypted content is not a cookie payload")
    cookies = plain.get("cookies") or []
    origins = plain.get("origins") or []
    if not isinstance(cookies, list) or not isinstance(origins, list):
        raise PayloadError("Decrypted content is not a cookie payload")
    timestamp = plain.get("latestSyncTimestamp")
    return (
        [c for c in cookies if isinstance(c, dict)],
        [str(o) for o in origins],
        str(timestamp) if timestamp is not None else None,
    )


def group_by_origin(
    cookies: list[dict[str, Any]], origins: list[str]
) -> dict[str, list[dict[str, Any]]]:
    """Group cookies under the first origin that covers them.

    Cookies no origin covers are grouped under an origin built from the
    cookie's own host and scheme.
    """
    compiled = [(origin, compile_patterns([origin])) for origin in origins]
    grouped: dict[str, list[dict[str, Any]]] = {}
    for cookie in cookies:
        for origin, patterns in compiled:
            if matches(cookie, patterns):
                grouped.setdefault(origin, []).append(cookie)
                break
        else:
            grouped.setdefault(origin_for_cookie(cookie), []).append(cookie)
    return grouped


def _names(cookies: list[dict[str, Any]]) -> str:
    return ", ".join(str(c.get("name")) for c in cookies)


class PullService:
    """Runs the pull flow and the apply step.

    Args:
        reconciler: Settings owner.
        secrets: Token and passphrase source.
        cookie_store: Destination for applied cookies.
        repository: Remote document repository.
        permissions: Decides which origins may receive cookies.
        channel: Progress channel.
        clock: Wall clock returning epoch seconds.
        apply_delay: Pause after each cookie written by ``apply``.
        sleep: Coroutine used for that pause.
    """

    def __init__(
        self,
        reconciler: SettingsReconciler,
        secrets: SecretsStore,
        cookie_store: CookieStore,
        repository: RemoteDocumentRepository,
        permissions: PermissionGate,
        channel: ProgressChannel,
        clock: Callable[[], float],
        apply_delay: float = APPLY_DELAY_SECONDS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._reconciler = reconciler
        self._secrets = secrets
        self._cookie_store = cookie_store
        self._repository = repository
        self._permissions = permissions
        self._channel = channel
        self._clock = clock
        self._apply_delay = apply_delay
        self._sleep = sleep

    async def run(self) -> FlowResult:
        stage = AppStage.INITIAL
        self._channel.publish(stage, "Starting pull process", progress=0)
        gist_id: str | None = None
        try:
            secrets = await self._secrets.load()
            if secrets is None:
                raise ConfigurationError(
                    "GitHub token and passphrase are required."
                )
            token = secrets.token.get_secret_value()
            passphrase = secrets.passphrase.get_secret_value()
            if not token or not passphrase:
                raise ConfigurationError(
                    "GitHub token and passphrase are required."
                )

            gist_id = self._reconciler.current().remote_document_id
            if not gist_id:
                stage = AppStage.PULL_RESOLVING
                self._channel.publish(
                    stage, "Resolving Gist source", progress=10
                )
                try:
                    latest = await self._repository.find_latest_own_matching(
                        [CONTENT_FILE], token
                    )
                except RateLimitError as e:
                    return self._rate_limited(stage, e, "cannot list gists now")
                if latest is None:
                    return self._fail(
                        stage,
                        "No compatible Gist found",
                        f'Could not find a Gist containing "{CONTENT_FILE}". '
                        "Push once from another device first.",
                    )
                gist_id = latest["id"]
                self._channel.publish(
                    AppStage.PULL_RESOLVING_COMPLETED,
                    f"Resolved Gist {gist_id}",
                    progress=20,
                )

            stage = AppStage.PULL_DOWNLOADING
            self._channel.publish(
                stage, "Fetching from GitHub Gist", progress=25
            )
            try:
                gist = await self._repository.get(gist_id, token)
            except RateLimitError as e:
                return self._rate_limited(stage, e, "cannot fetch now")
            files = (gist or {}).get("files") or {}
            content = (files.get(CONTENT_FILE) or {}).get("content")
            if not content:
                return self._fail(
                    stage,
                    "Incomplete gist content",
                    f'Expected file "{CONTENT_FILE}" not found.',
                    gist_id,
                )
            self._channel.publish(
                AppStage.PULL_DOWNLOADING_COMPLETED,
                "Download completed",
                progress=40,
            )

            stage = AppStage.PULL_DECRYPTING
            self._channel.publish(stage, "Decrypting cookies", progress=60)
            try:
                plain = await run_sync(decrypt, content, passphrase)
                cookies, origins, latest_ts = parse_payload(plain)
            except (CryptoError, PayloadError) as e:
                return self._fail(
                    stage,
                    "Decryption failed. Passphrase may be incorrect.",
                    str(e),
                    gist_id,
                )
            self._channel.publish(
                AppStage.PULL_DECRYPTING_COMPLETED,
                "Decryption completed",
                progress=70,
            )
        except CookieJarError as e:
            return self._fail(stage, _message_for(e), str(e), gist_id)
        except Exception as e:
            logger.exception("Unexpected error during pull at %s", stage.value)
            return self._fail(
                stage,
                "An error occurred while processing the pull request",
                str(e),
                gist_id,
            )

        handoff = PullHandoff(
            remote_document_id=gist_id,
            origins=origins,
            cookies_by_origin=group_by_origin(cookies, origins),
            latest_sync_timestamp=latest_ts,
        )
        stage = AppStage.PULL_WAIT_FOR_PERMISSION
        message = "Requesting permission to access cookie domains"
        self._channel.publish(
            stage,
            message,
            progress=80,
            urls=list(handoff.cookies_by_origin),
            cookies=cookies,
            latest_sync_timestamp=latest_ts,
        )
        return FlowResult(
            outcome=FlowOutcome.AWAITING_PERMISSION,
            stage=stage,
            message=message,
            remote_document_id=gist_id,
            handoff=handoff,
        )

    async def apply(
        self, handoff: PullHandoff
    ) -> tuple[FlowResult, ApplyReport]:
        """Write the handed-off cookies for every origin the gate grants."""
        report = ApplyReport()
        stage = AppStage.PULL_APPLYING
        try:
            self._channel.publish(
                stage,
                f"Applying {handoff.cookie_count} cookies",
                progress=85,
            )
            for origin, cookies in handoff.cookies_by_origin.items():
                if not await self._permissions.request_access(origin):
                    denied = PermissionDeniedError(origin)
                    report.denied_origins.append(origin)
                    report.failed.extend(cookies)
                    self._channel.publish(
                        AppStage.APPLY_COOKIE_FAILED,
                        f"Skipped {len(cookies)} cookies for {origin}",
                        error=str(denied),
                        urls=[origin],
                    )
                    continue
                report.granted_origins.append(origin)
                for cookie in cookies:
                    try:
                        await self._cookie_store.set_cookie(cookie)
                        report.applied.append(cookie)
                    except Exception as e:
                        logger.error(
                            "Failed to set cookie %s on %s: %s",
                            cookie.get("name"),
                            cookie.get("domain"),
                            e,
                        )
                        report.failed.append(cookie)
                    await self._sleep(self._apply_delay)
            self._channel.publish(
                AppStage.PULL_WAIT_FOR_PERMISSION_COMPLETED,
                f"Access granted for {len(report.granted_origins)} of "
                f"{len(handoff.cookies_by_origin)} origins",
                urls=list(report.granted_origins),
            )

            self._channel.publish(
                AppStage.PULL_APPLYING_COMPLETED,
                f"Applied {len(report.applied)} cookies successfully: "
                f"{_names(report.applied)}",
                progress=95,
            )
            if report.failed:
                self._channel.publish(
                    AppStage.APPLY_COOKIE_FAILED,
                    f"Failed to apply {len(report.failed)} cookies: "
                    f"{_names(report.failed)}",
                    error=f"{len(report.failed)} cookies not applied",
                )

            current = self._reconciler.current()
            sync_urls = list(
                dict.fromkeys([*current.sync_urls, *report.granted_origins])
            )
            await self._reconciler.update(
                remote_document_id=handoff.remote_document_id,
                last_sync_timestamp=utcnow(),
                sync_urls=sync_urls,
            )
        except Exception as e:
            if not isinstance(e, CookieJarError):
                logger.exception("Unexpected error while applying cookies")
            result = self._fail(
                stage,
                "Failed to apply cookies",
                str(e),
                handoff.remote_document_id,
            )
            return result, report

        stage = AppStage.PULL_COMPLETED
        message = (
            f"Pull completed: {len(report.applied)} applied, "
            f"{len(report.failed)} failed"
        )
        self._channel.publish(stage, message, progress=100)
        result = FlowResult(
            outcome=FlowOutcome.COMPLETED,
            stage=stage,
            message=message,
            remote_document_id=handoff.remote_document_id,
        )
        return result, report

    def _rate_limited(
        self, stage: AppStage, error: RateLimitError, what: str
    ) -> FlowResult:
        wait = format_duration(error.reset_at - self._clock())
        message = f"GitHub rate limit, {what}. Try again in {wait}."
        self._channel.publish(
            stage, message, progress=100, retry_at=error.reset_at
        )
        return FlowResult(
            outcome=FlowOutcome.RATE_LIMITED,
            stage=stage,
            message=message,
            retry_at=error.reset_at,
        )

    def _fail(
        self,
        stage: AppStage,
        message: str,
        error: str,
        gist_id: str | None = None,
    ) -> FlowResult:
        self._channel.publish(
            AppStage.ERROR, message, progress=100, error=error
        )
        return FlowResult(
            outcome=FlowOutcome.FAILED,
            stage=stage,
            message=message,
            error=error,
            remote_document_id=gist_id,
        )


def _message_for(error: CookieJarError) -> str:
    if isinstance(error, ConfigurationError):
        return "Missing secrets"
    return "An error occurred while processing the pull request"
