"""Object store availability tracking."""

import asyncio
import enum
from typing import Callable, Optional

from common.logging_config import get_logger
from videoserver.utils import monotonic_time

logger = get_logger(__name__)


class StoreState(str, enum.Enum):
    UNKNOWN = "unknown"
    PROBING = "probing"
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"


class StoreEvent(str, enum.Enum):
    PROBE_STARTED = "probe_started"
    PROBE_SUCCEEDED = "probe_succeeded"
    PROBE_FAILED = "probe_failed"
    UPLOAD_SUCCEEDED = "upload_succeeded"
    UPLOAD_FAILED = "upload_failed"
    PROBE_CANCELLED = "probe_cancelled"


_TRANSITIONS = {
    (StoreState.UNKNOWN, StoreEvent.PROBE_STARTED): StoreState.PROBING,
    (StoreState.AVAILABLE, StoreEvent.PROBE_STARTED): StoreState.PROBING,
    (StoreState.UNAVAILABLE, StoreEvent.PROBE_STARTED): StoreState.PROBING,
    (StoreState.PROBING, StoreEvent.PROBE_SUCCEEDED): StoreState.AVAILABLE,
    (StoreState.PROBING, StoreEvent.PROBE_FAILED): StoreState.UNAVAILABLE,
    # the probing request went away before an answer
    (StoreState.PROBING, StoreEvent.PROBE_CANCELLED): StoreState.UNKNOWN,
    # uploads run outside the lock, so another request may have moved the
    # state on between their probe and their outcome
    (StoreState.UNKNOWN, StoreEvent.UPLOAD_SUCCEEDED): StoreState.AVAILABLE,
    (StoreState.UNKNOWN, StoreEvent.UPLOAD_FAILED): StoreState.UNAVAILABLE,
    (StoreState.AVAILABLE, StoreEvent.UPLOAD_SUCCEEDED): StoreState.AVAILABLE,
    (StoreState.AVAILABLE, StoreEvent.UPLOAD_FAILED): StoreState.UNAVAILABLE,
    (StoreState.UNAVAILABLE, StoreEvent.UPLOAD_SUCCEEDED): StoreState.AVAILABLE,
    (StoreState.UNAVAILABLE, StoreEvent.UPLOAD_FAILED): StoreState.UNAVAILABLE,
}


def next_state(state: StoreState, event: StoreEvent) -> StoreState:
    """
    The single transition function of the store state machine.

    Raises:
        ValueError: For an event that is not valid in state
    """
    try:
        return _TRANSITIONS[(state, event)]
    except KeyError:
        raise ValueError(f"Invalid store transition: {state.value} --{event.value}-->")


class StoreHealth:
    """
    Availability of the object store as last observed by the publisher.

    A store known to be down is not probed again until recheck_interval
    seconds have passed, so a run of uploads during an outage falls back
    without waiting on a probe each time.
    """

    def __init__(self, recheck_interval: float = 30.0, clock: Callable[[], float] = monotonic_time):
        """
        Args:
            recheck_interval: Seconds an UNAVAILABLE verdict is trusted
            clock: Monotonic time source
        """
        self.recheck_interval = recheck_interval
        self._clock = clock
        self._state = StoreState.UNKNOWN
        self._last_checked: Optional[float] = None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> StoreState:
        return self._state

    @property
    def last_checked(self) -> Optional[float]:
        return self._last_checked

    @property
    def lock(self) -> asyncio.Lock:
        """Held for the known-down check and the probe; never across an upload."""
        return self._lock

    def is_known_down(self) -> bool:
        """True while an UNAVAILABLE verdict is younger than recheck_interval."""
        if self._state != StoreState.UNAVAILABLE or self._last_checked is None:
            return False
        return self._clock() - self._last_checked < self.recheck_interval

    def apply(self, event: StoreEvent) -> StoreState:
        """Move to the state next_state() dictates and return it."""
        previous = self._state
        self._state = next_state(previous, event)
        if event in (StoreEvent.PROBE_SUCCEEDED, StoreEvent.PROBE_FAILED, StoreEvent.UPLOAD_FAILED):
            self._last_checked = self._clock()

        if previous != self._state and self._state in (StoreState.AVAILABLE, StoreState.UNAVAILABLE):
            if self._state == StoreState.AVAILABLE:
                logger.info("Object store available")
            else:
                logger.warning("Object store unavailable, using local storage fallback")
        return self._state
