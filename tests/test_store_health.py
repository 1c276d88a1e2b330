"""Tests for the object store state machine."""

import pytest

from videoserver.store_health import StoreEvent, StoreHealth, StoreState, next_state


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.mark.parametrize('state, event, expected', [
    (StoreState.UNKNOWN, StoreEvent.PROBE_STARTED, StoreState.PROBING),
    (StoreState.UNAVAILABLE, StoreEvent.PROBE_STARTED, StoreState.PROBING),
    (StoreState.PROBING, StoreEvent.PROBE_SUCCEEDED, StoreState.AVAILABLE),
    (StoreState.PROBING, StoreEvent.PROBE_FAILED, StoreState.UNAVAILABLE),
    (StoreState.AVAILABLE, StoreEvent.UPLOAD_FAILED, StoreState.UNAVAILABLE),
    (StoreState.AVAILABLE, StoreEvent.UPLOAD_SUCCEEDED, StoreState.AVAILABLE),
    (StoreState.PROBING, StoreEvent.PROBE_CANCELLED, StoreState.UNKNOWN),
    (StoreState.UNAVAILABLE, StoreEvent.UPLOAD_SUCCEEDED, StoreState.AVAILABLE),
    (StoreState.UNKNOWN, StoreEvent.UPLOAD_FAILED, StoreState.UNAVAILABLE),
])
def test_valid_transitions(state, event, expected):
    assert next_state(state, event) == expected


@pytest.mark.parametrize('state, event', [
    (StoreState.PROBING, StoreEvent.UPLOAD_SUCCEEDED),
    (StoreState.PROBING, StoreEvent.UPLOAD_FAILED),
    (StoreState.AVAILABLE, StoreEvent.PROBE_CANCELLED),
    (StoreState.AVAILABLE, StoreEvent.PROBE_SUCCEEDED),
    (StoreState.PROBING, StoreEvent.PROBE_STARTED),
])
def test_invalid_transitions_raise(state, event):
    with pytest.raises(ValueError):
        next_state(state, event)


def test_known_down_expires_after_recheck_interval():
    """An UNAVAILABLE verdict is trusted only for recheck_interval seconds."""
    clock = FakeClock()
    health = StoreHealth(recheck_interval=30, clock=clock)

    assert not health.is_known_down()

    health.apply(StoreEvent.PROBE_STARTED)
    health.apply(StoreEvent.PROBE_FAILED)
    assert health.state == StoreState.UNAVAILABLE
    assert health.last_checked == 1000.0
    assert health.is_known_down()

    clock.now += 29
    assert health.is_known_down()

    clock.now += 2
    assert not health.is_known_down()


def test_available_is_never_known_down():
    health = StoreHealth(clock=FakeClock())
    health.apply(StoreEvent.PROBE_STARTED)
    health.apply(StoreEvent.PROBE_SUCCEEDED)

    assert health.state == StoreState.AVAILABLE
    assert not health.is_known_down()


def test_every_state_outside_probing_can_start_a_probe():
    """No state reachable between requests blocks the next probe."""
    for state in (StoreState.UNKNOWN, StoreState.AVAILABLE, StoreState.UNAVAILABLE):
        assert next_state(state, StoreEvent.PROBE_STARTED) == StoreState.PROBING
    for event in (StoreEvent.PROBE_SUCCEEDED, StoreEvent.PROBE_FAILED, StoreEvent.PROBE_CANCELLED):
        assert next_state(StoreState.PROBING, event) != StoreState.PROBING
