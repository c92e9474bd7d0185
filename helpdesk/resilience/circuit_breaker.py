"""
Classic three-state circuit breaker for one external dependency.

closed     -> calls pass; failures inside the sliding window are counted
open       -> calls are short-circuited until ``reset_timeout`` elapses
half-open  -> exactly one trial call; success closes, failure re-opens
              with the reset timeout doubled up to its cap

``allow_request()`` hands out a ``Permit`` for every admitted call and the
caller passes it back to ``record_success`` / ``record_failure``. Only the
outcome carrying the current trial permit settles a half-open breaker; a
slow call admitted while the breaker was still closed cannot.

Breakers are shared by every router worker. None of the methods await, so
each one runs to completion on the event loop without interleaving and no
lock is needed on the hot path.
"""

import logging
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from helpdesk.config import DependencyConfig

logger = logging.getLogger(__name__)


class BreakerState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"


@dataclass(frozen=True)
class BreakerTransition:
    """Observability event emitted on every breaker state change."""
    dependency: str
    from_state: BreakerState
    to_state: BreakerState
    consecutive_failures: int
    reset_timeout_sec: float
    at: float


@dataclass(eq=False)
class Permit:
    """Admission of one call; compared by identity."""
    trial: bool = False


class CircuitBreaker:
    """Failure isolation state for a single named dependency."""

    def __init__(
        self,
        config: DependencyConfig,
        clock: Callable[[], float] = time.monotonic,
        on_transition: Optional[Callable[[BreakerTransition], None]] = None,
    ) -> None:
        self._config = config
        self._clock = clock
        self._on_transition = on_transition
        self._state = BreakerState.CLOSED
        self._failures: deque[float] = deque()
        self._opened_at: Optional[float] = None
        self._reset_timeout = config.reset_timeout_sec
        self._trial: Optional[Permit] = None

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def state(self) -> BreakerState:
        return self._state

    @property
    def consecutive_failures(self) -> int:
        return len(self._failures)

    @property
    def opened_at(self) -> Optional[float]:
        return self._opened_at

    @property
    def reset_timeout(self) -> float:
        return self._reset_timeout

    def allow_request(self) -> Optional[Permit]:
        """Return a permit if the next call may reach the real dependency."""
        if self._state == BreakerState.CLOSED:
            return Permit()
        if self._state == BreakerState.OPEN:
            if self._opened_at is not None and self._clock() - self._opened_at < self._reset_timeout:
                return None
            self._move(BreakerState.HALF_OPEN)
        if self._trial is not None:
            return None
        self._trial = Permit(trial=True)
        return self._trial

    def record_success(self, permit: Optional[Permit] = None) -> None:
        if self._state == BreakerState.HALF_OPEN:
            if not self._is_trial(permit):
                return
            self._trial = None
            self._failures.clear()
            self._reset_timeout = self._config.reset_timeout_sec
            self._opened_at = None
            self._move(BreakerState.CLOSED)
            return
        if self._state == BreakerState.CLOSED:
            self._failures.clear()

    def record_failure(self, permit: Optional[Permit] = None) -> None:
        now = self._clock()
        if self._state == BreakerState.HALF_OPEN:
            if not self._is_trial(permit):
                return
            self._trial = None
            self._reset_timeout = min(
                self._reset_timeout * 2, self._config.max_reset_timeout_sec
            )
            self._open(now)
            return
        if self._state == BreakerState.OPEN:
            return

        self._failures.append(now)
        window_start = now - self._config.failure_window_sec
        while self._failures and self._failures[0] < window_start:
            self._failures.popleft()
        if len(self._failures) >= self._config.failure_threshold:
            self._open(now)

    def release_trial(self, permit: Optional[Permit] = None) -> None:
        """Give back a half-open trial slot whose call was cancelled."""
        if permit is not None and permit is self._trial:
            self._trial = None

    def snapshot(self) -> dict[str, Any]:
        return {
            "state": self._state.value,
            "consecutive_failures": self.consecutive_failures,
            "opened_at": self._opened_at,
            "reset_timeout_sec": self._reset_timeout,
            "trial_in_flight": self._trial is not None,
        }

    def _is_trial(self, permit: Optional[Permit]) -> bool:
        if permit is not None and permit is self._trial:
            return True
        logger.debug("Breaker '%s': outcome of a call admitted before half-open ignored", self.name)
        return False

    def _open(self, now: float) -> None:
        self._opened_at = now
        self._move(BreakerState.OPEN)

    def _move(self, new_state: BreakerState) -> None:
        old_state = self._state
        if old_state == new_state:
            return
        self._state = new_state
        event = BreakerTransition(
            dependency=self.name,
            from_state=old_state,
            to_state=new_state,
            consecutive_failures=self.consecutive_failures,
            reset_timeout_sec=self._reset_timeout,
            at=self._clock(),
        )
        log = logger.warning if new_state == BreakerState.OPEN else logger.info
        log(
            "Breaker '%s': %s -> %s (failures: %d, reset timeout: %.1fs)",
            self.name, old_state.value, new_state.value,
            event.consecutive_failures, event.reset_timeout_sec,
        )
        if self._on_transition is not None:
            self._on_transition(event)
