"""Tests for cookiejar_sync.sync.scheduler: interval and change-debounce triggers."""

import pytest

from cookiejar_sync.crypto import decrypt
from cookiejar_sync.sync.models import CONTENT_FILE, AppStage, CookieChange
from cookiejar_sync.sync.scheduler import DEBOUNCE_TIMER, INTERVAL_TIMER

from conftest import PASSPHRASE, START_TIME, TOKEN, make_cookie


@pytest.fixture
async def auto_runtime(runtime):
    """Runtime with every trigger enabled and the scheduler started."""
    await runtime.secrets.save(TOKEN, PASSPHRASE)
    await runtime.reconciler.update(
        sync_urls=["https://example.com/*"],
        auto_sync_enabled=True,
        sync_on_change=True,
        sync_interval_minutes=15,
    )
    await runtime.scheduler.start()
    return runtime


def _pushes(client):
    return [n for n in client.call_names() if n in ("create_gist", "update_gist")]


class TestChangeDebounce:
    async def test_burst_collapses_into_one_push(self, auto_runtime, gist_client, timers, cookie_store):
        """Changes at t0 and t0+10 give one push at t0+70."""
        t0 = timers.now()
        await cookie_store.set_cookie(make_cookie("sid", ".example.com", value="1"))
        assert timers.scheduled_at(DEBOUNCE_TIMER) == t0 + 60

        await timers.advance(10)
        await cookie_store.set_cookie(make_cookie("sid", ".example.com", value="2"))
        assert timers.scheduled_at(DEBOUNCE_TIMER) == t0 + 70

        await timers.advance(59)
        assert _pushes(gist_client) == []

        await timers.advance(1)
        assert _pushes(gist_client) == ["create_gist"]
        assert not timers.is_armed(DEBOUNCE_TIMER)

        await timers.advance(120)
        assert _pushes(gist_client) == ["create_gist"]

    async def test_pushed_payload_has_latest_value(self, auto_runtime, gist_client, timers, cookie_store):
        await cookie_store.set_cookie(make_cookie("sid", ".example.com", value="latest"))
        await timers.advance(60)

        envelope = gist_client.gists["gist1"]["files"][CONTENT_FILE]["content"]
        cookies = decrypt(envelope, PASSPHRASE)["cookies"]
        assert cookies[0]["value"] == "latest"

    async def test_out_of_scope_change_ignored(self, auto_runtime, timers, cookie_store):
        await cookie_store.set_cookie(make_cookie("x", "unrelated.test"))
        assert not timers.is_armed(DEBOUNCE_TIMER)

    async def test_expiry_does_not_trigger(self, auto_runtime, timers):
        auto_runtime.scheduler.on_cookie_changed(
            CookieChange(cookie=make_cookie("sid", ".example.com"), cause="expired")
        )
        assert not timers.is_armed(DEBOUNCE_TIMER)

    async def test_explicit_removal_triggers(self, auto_runtime, timers, cookie_store):
        await cookie_store.remove_cookie("sid", ".example.com")
        assert timers.is_armed(DEBOUNCE_TIMER)

    async def test_disabling_sync_on_change_detaches(self, auto_runtime, timers, cookie_store):
        await cookie_store.set_cookie(make_cookie("sid", ".example.com"))
        assert cookie_store.listener_count == 1

        await auto_runtime.reconciler.update(sync_on_change=False)

        assert cookie_store.listener_count == 0
        assert not timers.is_armed(DEBOUNCE_TIMER)
        assert not auto_runtime.scheduler.listening

    async def test_reenabling_attaches_once(self, auto_runtime, cookie_store):
        await auto_runtime.reconciler.update(sync_on_change=False)
        await auto_runtime.reconciler.update(sync_on_change=True)
        await auto_runtime.reconciler.update(sync_on_change=True)
        assert cookie_store.listener_count == 1

    async def test_sync_on_change_needs_auto_sync(self, auto_runtime, cookie_store):
        await auto_runtime.reconciler.update(auto_sync_enabled=False)
        assert cookie_store.listener_count == 0

    async def test_debounce_rereads_settings_when_firing(self, auto_runtime, gist_client, timers, cookie_store):
        await cookie_store.set_cookie(make_cookie("sid", ".example.com"))
        # Settings changed without a broadcast; the callback must re-read them.
        auto_runtime.reconciler._settings = auto_runtime.reconciler.current().model_copy(
            update={"sync_on_change": False}
        )
        await timers.advance(60)
        assert _pushes(gist_client) == []


class TestIntervalTrigger:
    async def test_fires_every_period(self, runtime, gist_client, timers):
        await runtime.secrets.save(TOKEN, PASSPHRASE)
        await runtime.reconciler.update(
            sync_urls=["https://example.com/*"],
            sync_interval_minutes=1,
            sync_on_change=False,
        )
        await runtime.scheduler.start()
        assert timers.scheduled_at(INTERVAL_TIMER) == START_TIME + 60

        await timers.advance(60)
        assert _pushes(gist_client) == ["create_gist"]
        await timers.advance(60)
        assert _pushes(gist_client) == ["create_gist", "update_gist"]
        assert timers.scheduled_at(INTERVAL_TIMER) == START_TIME + 180

    async def test_unrelated_update_keeps_deadline(self, auto_runtime, timers):
        deadline = timers.scheduled_at(INTERVAL_TIMER)
        await timers.advance(100)
        await auto_runtime.reconciler.update(sync_urls=["https://other.org/*"])
        assert timers.scheduled_at(INTERVAL_TIMER) == deadline

    async def test_period_change_rearms(self, auto_runtime, timers):
        await timers.advance(100)
        await auto_runtime.reconciler.update(sync_interval_minutes=5)
        assert timers.scheduled_at(INTERVAL_TIMER) == START_TIME + 100 + 300

    async def test_disable_cancels(self, auto_runtime, gist_client, timers):
        await auto_runtime.reconciler.update(auto_sync_enabled=False)
        assert not timers.is_armed(INTERVAL_TIMER)
        await timers.advance(3600)
        assert _pushes(gist_client) == []

    async def test_no_settings_disables_everything(self, runtime, timers, cookie_store):
        await runtime.scheduler.start()
        assert not timers.is_armed(INTERVAL_TIMER)
        assert cookie_store.listener_count == 0

    async def test_apply_publishes_events(self, auto_runtime):
        auto_runtime.events.clear()
        await auto_runtime.scheduler.apply(auto_runtime.reconciler.settings)
        assert auto_runtime.events.stages() == [
            AppStage.APPLY_AUTO_SYNC_INTERVAL,
            AppStage.APPLY_AUTO_SYNC_INTERVAL_COMPLETED,
            AppStage.APPLY_SYNC_ON_CHANGE,
            AppStage.APPLY_SYNC_ON_CHANGE_COMPLETED,
        ]

    async def test_stop_cancels_triggers(self, auto_runtime, timers, cookie_store):
        await cookie_store.set_cookie(make_cookie("sid", ".example.com"))
        auto_runtime.scheduler.stop()
        assert not timers.is_armed(INTERVAL_TIMER)
        assert not timers.is_armed(DEBOUNCE_TIMER)
        assert cookie_store.listener_count == 0
        await auto_runtime.reconciler.update(sync_interval_minutes=2)
        assert not timers.is_armed(INTERVAL_TIMER)
