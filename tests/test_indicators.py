import asyncio

from app.client import IndicatorConfig, IndicatorStore
from app.client.indicators import IndicatorStyle


async def test_indicator_expires_after_duration():
    store = IndicatorStore(IndicatorConfig(duration=50))

    state = store.activate("ana")

    assert state.is_active
    assert state.style == IndicatorStyle.PULSE
    assert store.has_active("ana")
    await asyncio.sleep(0.1)
    assert not store.has_active("ana")
    assert store.stats()["activeTimers"] == 0


async def test_reactivation_resets_the_timer():
    store = IndicatorStore(IndicatorConfig(duration=100))
    store.activate("ana")

    await asyncio.sleep(0.06)
    store.activate("ana")
    await asyncio.sleep(0.06)

    assert store.has_active("ana")
    assert store.stats()["activeTimers"] == 1
    store.cleanup()


async def test_subscribe_gets_current_state_immediately():
    store = IndicatorStore()
    store.activate("ana")
    snapshots = []

    unsubscribe = store.subscribe(lambda current: snapshots.append(sorted(current)))
    store.activate("ben")
    store.deactivate("ana")
    unsubscribe()
    store.deactivate("ben")

    assert snapshots == [["ana"], ["ana", "ben"], ["ben"]]
    store.cleanup()


async def test_raising_listener_does_not_block_others():
    store = IndicatorStore()
    seen = []

    def broken(current):
        if current:
            raise RuntimeError("listener bug")

    store.subscribe(broken)
    store.subscribe(lambda current: seen.append(len(current)))
    store.activate("ana")

    assert seen == [0, 1]
    store.cleanup()


async def test_config_changes_apply_to_new_activations():
    store = IndicatorStore()
    store.activate("ana")

    config = store.update_config(style=IndicatorStyle.RING, duration=1000)

    assert config.fade_out_duration == 500
    assert store.get_state("ana").style == IndicatorStyle.PULSE
    assert store.activate("ben").style == IndicatorStyle.RING
    assert store.get_state("ben").duration == 1000
    store.cleanup()


async def test_cleanup_clears_everything():
    store = IndicatorStore()
    store.subscribe(lambda current: None)
    store.activate("ana")
    store.activate("ben")

    assert store.stats() == {"activeIndicators": 2, "activeTimers": 2, "listeners": 1}
    store.cleanup()
    assert store.stats() == {"activeIndicators": 0, "activeTimers": 0, "listeners": 0}
    assert store.get_state("ana") is None


async def test_same_callback_subscribed_twice_is_two_subscriptions():
    store = IndicatorStore()
    calls = []

    def record(current):
        calls.append(sorted(current))

    first = store.subscribe(record)
    second = store.subscribe(record)
    assert store.stats()["listeners"] == 2

    first()
    store.activate("ana")

    assert calls == [[], [], ["ana"]]
    assert store.stats()["listeners"] == 1

    second()
    store.deactivate("ana")
    assert calls == [[], [], ["ana"]]
    assert store.stats()["listeners"] == 0
    store.cleanup()


async def test_independent_subscribers_each_see_changes():
    store = IndicatorStore()
    left, right = [], []

    unsubscribe_left = store.subscribe(lambda current: left.append(sorted(current)))
    store.subscribe(lambda current: right.append(sorted(current)))
    store.activate("ana")
    unsubscribe_left()
    store.activate("ben")

    assert left == [[], ["ana"]]
    assert right == [[], ["ana"], ["ana", "ben"]]
    store.cleanup()


async def test_no_timer_or_listener_fires_after_cleanup():
    store = IndicatorStore(IndicatorConfig(duration=50))
    calls = []
    store.subscribe(lambda current: calls.append(sorted(current)))
    store.activate("ana")
    store.activate("ben")
    seen_before_cleanup = len(calls)

    store.cleanup()
    await asyncio.sleep(0.1)

    assert len(calls) == seen_before_cleanup
    assert store.snapshot() == {}
    assert store.stats() == {"activeIndicators": 0, "activeTimers": 0, "listeners": 0}
