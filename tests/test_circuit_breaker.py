"""Tests for the per-dependency circuit breaker."""

import pytest

from helpdesk.config import DependencyConfig
from helpdesk.resilience.circuit_breaker import BreakerState, CircuitBreaker, Permit


@pytest.fixture
def events():
    return []


@pytest.fixture
def breaker(monotonic, events):
    config = DependencyConfig(
        name="classifier",
        failure_threshold=3,
        failure_window_sec=60,
        reset_timeout_sec=30,
        max_reset_timeout_sec=100,
    )
    return CircuitBreaker(config, clock=monotonic, on_transition=events.append)


def trip(breaker):
    for _ in range(3):
        breaker.record_failure()


class TestClosed:
    def test_starts_closed(self, breaker):
        assert breaker.state == BreakerState.CLOSED
        assert breaker.allow_request()

    def test_opens_at_threshold(self, breaker):
        breaker.record_failure()
        breaker.record_failure()
        assert breaker.state == BreakerState.CLOSED
        breaker.record_failure()
        assert breaker.state == BreakerState.OPEN
        assert breaker.opened_at is not None

    def test_success_resets_failures(self, breaker):
        breaker.record_failure()
        breaker.record_failure()
        breaker.record_success()
        breaker.record_failure()
        assert breaker.state == BreakerState.CLOSED
        assert breaker.consecutive_failures == 1

    def test_failures_outside_window_do_not_count(self, breaker, monotonic):
        breaker.record_failure()
        breaker.record_failure()
        monotonic.advance(61)
        breaker.record_failure()
        assert breaker.state == BreakerState.CLOSED
        assert breaker.consecutive_failures == 1


class TestOpen:
    def test_short_circuits_until_reset_timeout(self, breaker, monotonic):
        trip(breaker)
        assert not breaker.allow_request()
        monotonic.advance(29.9)
        assert not breaker.allow_request()

    def test_half_open_after_reset_timeout(self, breaker, monotonic):
        trip(breaker)
        monotonic.advance(30)
        assert breaker.allow_request()
        assert breaker.state == BreakerState.HALF_OPEN


class TestHalfOpen:
    @pytest.fixture
    def trial(self, breaker, monotonic):
        trip(breaker)
        monotonic.advance(30)
        permit = breaker.allow_request()
        assert permit is not None and permit.trial
        return permit

    @pytest.fixture
    def half_open(self, breaker, trial):
        return breaker

    def test_allows_exactly_one_trial(self, half_open):
        assert half_open.allow_request() is None

    def test_trial_success_closes(self, half_open, trial):
        half_open.record_success(trial)
        assert half_open.state == BreakerState.CLOSED
        assert half_open.consecutive_failures == 0
        assert half_open.reset_timeout == 30

    def test_trial_failure_reopens_and_doubles(self, half_open, trial):
        half_open.record_failure(trial)
        assert half_open.state == BreakerState.OPEN
        assert half_open.reset_timeout == 60

    def test_reset_timeout_capped(self, half_open, trial, monotonic):
        half_open.record_failure(trial)
        monotonic.advance(60)
        second = half_open.allow_request()
        assert second is not None
        half_open.record_failure(second)
        assert half_open.reset_timeout == 100

    def test_released_trial_can_be_retaken(self, half_open, trial):
        half_open.release_trial(trial)
        assert half_open.allow_request() is not None

    def test_release_with_other_permit_keeps_trial(self, half_open):
        half_open.release_trial(Permit())
        assert half_open.allow_request() is None


class TestCallsAdmittedWhileClosed:
    @pytest.fixture
    def early(self, breaker):
        permit = breaker.allow_request()
        assert permit is not None and not permit.trial
        return permit

    def test_late_success_does_not_close_half_open(self, breaker, monotonic, early):
        trip(breaker)
        monotonic.advance(30)
        trial = breaker.allow_request()

        breaker.record_success(early)
        assert breaker.state == BreakerState.HALF_OPEN
        assert breaker.allow_request() is None

        breaker.record_success(trial)
        assert breaker.state == BreakerState.CLOSED

    def test_late_failure_does_not_reopen_half_open(self, breaker, monotonic, early):
        trip(breaker)
        monotonic.advance(30)
        trial = breaker.allow_request()

        breaker.record_failure(early)
        assert breaker.state == BreakerState.HALF_OPEN
        assert breaker.reset_timeout == 30

        breaker.record_failure(trial)
        assert breaker.state == BreakerState.OPEN
        assert breaker.reset_timeout == 60

    def test_late_failure_while_open_is_ignored(self, breaker, early):
        trip(breaker)
        opened_at = breaker.opened_at
        breaker.record_failure(early)
        assert breaker.state == BreakerState.OPEN
        assert breaker.opened_at == opened_at


class TestEvents:
    def test_transition_events_emitted(self, breaker, monotonic, events):
        trip(breaker)
        monotonic.advance(30)
        permit = breaker.allow_request()
        breaker.record_success(permit)
        assert [(e.from_state, e.to_state) for e in events] == [
            (BreakerState.CLOSED, BreakerState.OPEN),
            (BreakerState.OPEN, BreakerState.HALF_OPEN),
            (BreakerState.HALF_OPEN, BreakerState.CLOSED),
        ]
        assert all(e.dependency == "classifier" for e in events)

    def test_snapshot(self, breaker):
        trip(breaker)
        snap = breaker.snapshot()
        assert snap["state"] == "open"
        assert snap["consecutive_failures"] == 3
        assert snap["trial_in_flight"] is False
