"""Lockout state transitions."""

from datetime import datetime, timedelta, timezone

from app.core.security.mfa.lockout import CLEARED, LockoutController, LockoutState

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def fail(controller, state, now=NOW, times=1):
    for _ in range(times):
        state = controller.on_failure(now)(state)
    return state


def test_failures_below_limit_only_count():
    state = fail(LockoutController(max_attempts=5), CLEARED, times=4)

    assert state == LockoutState(4, None)
    assert not state.is_locked(NOW)


def test_reaching_limit_locks_for_duration():
    controller = LockoutController(max_attempts=5, lock_duration=timedelta(minutes=15))
    state = fail(controller, CLEARED, times=5)

    assert state.failed_attempts == 5
    assert state.locked_until == NOW + timedelta(minutes=15)
    assert state.is_locked(NOW + timedelta(minutes=14, seconds=59))
    assert not state.is_locked(NOW + timedelta(minutes=15))


def test_failure_while_locked_changes_nothing():
    controller = LockoutController()
    locked = fail(controller, CLEARED, times=5)

    assert fail(controller, locked, now=NOW + timedelta(minutes=1)) == locked


def test_failure_after_expiry_starts_from_zero():
    controller = LockoutController()
    locked = fail(controller, CLEARED, times=5)

    state = fail(controller, locked, now=NOW + timedelta(minutes=16))

    assert state == LockoutState(1, None)


def test_release_if_expired():
    controller = LockoutController()
    locked = fail(controller, CLEARED, times=5)

    assert controller.release_if_expired(NOW + timedelta(minutes=5))(locked) == locked
    assert controller.release_if_expired(NOW + timedelta(minutes=15))(locked) == CLEARED
    assert controller.release_if_expired(NOW)(LockoutState(3, None)) == LockoutState(3, None)


def test_success_and_admin_unlock_clear_state():
    locked = fail(LockoutController(), CLEARED, times=5)

    assert LockoutController.on_success(locked) == CLEARED
    assert LockoutController.admin_unlock(locked) == CLEARED
