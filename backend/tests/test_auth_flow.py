"""Two-step login state machine."""

from datetime import timedelta

import pytest

from app.core.security.audit.models import AuditEventType, AuditLog
from app.core.security.mfa.deadline import Deadline
from app.core.security.mfa.errors import (
    ChallengeInvalidError,
    DeadlineExceededError,
    InvalidCodeError,
    InvalidCredentialsError,
    InvalidFormatError,
    LockedError,
    NotEnabledError,
)
from app.core.security.mfa.totp import totp_now
from app.core.security.session import session_manager

EMAIL = "alice@example.com"


def challenge(service, password):
    response = service.begin_login(EMAIL, password)
    assert response["mfa_required"] is True
    return response["challenge_token"]


def failed_attempts(service, user):
    return service.store.require(user.id).failed_attempts


def test_login_without_mfa_issues_session(service, user, password):
    response = service.begin_login(EMAIL, password)

    assert response["mfa_required"] is False
    assert response["token_type"] == "Bearer"
    session = session_manager.validate_session(response["session_id"])
    assert session.user_id == user.id
    assert session.mfa_verified is False


def test_login_with_pending_enrollment_issues_session(service, user, password):
    service.setup(user)

    assert service.begin_login(EMAIL, password)["mfa_required"] is False


def test_login_with_mfa_returns_challenge(service, db, enrolled, password):
    user, _, _ = enrolled

    response = service.begin_login(EMAIL.upper(), password)

    assert response["mfa_required"] is True
    assert response["expires_in"] == 300
    assert "access_token" not in response
    logs = db.query(AuditLog).filter(AuditLog.event_type == AuditEventType.AUTH_LOGIN_MFA_REQUIRED.value).all()
    assert [(log.user_id, log.success) for log in logs] == [(user.id, True)]


def test_totp_login_happy_path(service, enrolled, password, clock):
    user, secret, _ = enrolled
    token = challenge(service, password)
    clock.advance(seconds=40)

    response = service.verify_totp(totp_now(secret, clock.now()), token)

    assert response["mfa_required"] is False
    assert session_manager.validate_session(response["session_id"]).mfa_verified is True
    record = service.store.require(user.id)
    assert record.last_used_at == clock.now()
    assert record.failed_attempts == 0


def test_totp_login_accepts_one_step_of_drift(service, enrolled, password, clock):
    _, secret, _ = enrolled
    token = challenge(service, password)

    assert service.verify_totp(totp_now(secret, clock.now(), offset_steps=1), token)["mfa_required"] is False


def test_unknown_email_and_wrong_password_look_the_same(service, user, password):
    with pytest.raises(InvalidCredentialsError) as unknown:
        service.begin_login("nobody@example.com", password)
    with pytest.raises(InvalidCredentialsError) as wrong:
        service.begin_login(EMAIL, "wrong password")

    assert unknown.value.to_dict() == wrong.value.to_dict()


def test_inactive_user_cannot_log_in(service, db, user, password):
    user.is_active = False
    db.commit()

    with pytest.raises(InvalidCredentialsError):
        service.begin_login(EMAIL, password)


def test_wrong_code_counts_failure(service, enrolled, password, clock, wrong_code):
    user, secret, _ = enrolled

    with pytest.raises(InvalidCodeError):
        service.verify_totp(wrong_code(secret, clock.now()), challenge(service, password))

    assert failed_attempts(service, user) == 1


def test_malformed_code_does_not_count(service, enrolled, password):
    user, _, _ = enrolled
    token = challenge(service, password)

    with pytest.raises(InvalidFormatError):
        service.verify_totp("12345", token)
    with pytest.raises(InvalidFormatError):
        service.verify_backup("ABCD1234", token)

    assert failed_attempts(service, user) == 0


def test_lockout_after_max_attempts_and_expiry(service, db, enrolled, password, clock, wrong_code):
    user, secret, _ = enrolled
    bad = wrong_code(secret, clock.now())

    for _ in range(4):
        with pytest.raises(InvalidCodeError):
            service.verify_totp(bad, challenge(service, password))
    with pytest.raises(LockedError) as locked:
        service.verify_totp(bad, challenge(service, password))

    assert locked.value.locked_until == clock.now() + timedelta(minutes=15)
    assert db.query(AuditLog).filter(AuditLog.event_type == AuditEventType.MFA_LOCKED.value).count() == 1

    # locked accounts never get a challenge
    with pytest.raises(LockedError):
        service.begin_login(EMAIL, password)

    clock.advance(minutes=15, seconds=1)
    token = challenge(service, password)
    assert failed_attempts(service, user) == 0

    response = service.verify_totp(totp_now(secret, clock.now()), token)
    assert response["mfa_required"] is False


def test_lock_applies_to_outstanding_challenges(service, enrolled, password, clock, wrong_code):
    user, secret, _ = enrolled
    outstanding = challenge(service, password)
    bad = wrong_code(secret, clock.now())
    for _ in range(4):
        with pytest.raises(InvalidCodeError):
            service.verify_totp(bad, challenge(service, password))
    with pytest.raises(LockedError):
        service.verify_totp(bad, challenge(service, password))

    with pytest.raises(LockedError):
        service.verify_totp(totp_now(secret, clock.now()), outstanding)


def test_success_resets_failure_counter(service, enrolled, password, clock, wrong_code):
    user, secret, _ = enrolled
    for _ in range(3):
        with pytest.raises(InvalidCodeError):
            service.verify_totp(wrong_code(secret, clock.now()), challenge(service, password))

    service.verify_totp(totp_now(secret, clock.now()), challenge(service, password))

    assert failed_attempts(service, user) == 0


def test_backup_code_login_consumes_code(service, enrolled, password):
    user, _, codes = enrolled

    response = service.verify_backup(codes[0].lower(), challenge(service, password))

    assert response["mfa_required"] is False
    assert response["remaining"] == 9
    assert response["warning"] is None
    assert session_manager.validate_session(response["session_id"]).mfa_verified is True

    with pytest.raises(InvalidCodeError):
        service.verify_backup(codes[0], challenge(service, password))
    assert failed_attempts(service, user) == 1


def test_backup_code_warning_when_running_low(service, enrolled, password):
    _, _, codes = enrolled

    for code in codes[:7]:
        assert service.verify_backup(code, challenge(service, password))["warning"] is None
    response = service.verify_backup(codes[7], challenge(service, password))

    assert response["remaining"] == 2
    assert response["warning"]


def test_backup_code_success_resets_counter(service, enrolled, password, clock, wrong_code):
    user, secret, codes = enrolled
    with pytest.raises(InvalidCodeError):
        service.verify_totp(wrong_code(secret, clock.now()), challenge(service, password))

    service.verify_backup(codes[1], challenge(service, password))

    record = service.store.require(user.id)
    assert record.failed_attempts == 0
    assert record.last_used_at == clock.now()


def test_challenge_is_single_use(service, enrolled, password, clock, wrong_code):
    _, secret, _ = enrolled
    token = challenge(service, password)
    with pytest.raises(InvalidCodeError):
        service.verify_totp(wrong_code(secret, clock.now()), token)

    with pytest.raises(ChallengeInvalidError):
        service.verify_totp(totp_now(secret, clock.now()), token)


def test_expired_challenge_is_rejected(service, enrolled, password, clock):
    user, secret, _ = enrolled
    token = challenge(service, password)
    clock.advance(seconds=301)

    with pytest.raises(ChallengeInvalidError):
        service.verify_totp(totp_now(secret, clock.now()), token)

    assert failed_attempts(service, user) == 0


def test_challenge_is_bound_to_its_user(service, make_user, enrolled, password, clock):
    _, alice_secret, _ = enrolled
    bob = make_user("bob@example.com")
    bob_secret = service.setup(bob)["secret"]
    service.enable(bob, totp_now(bob_secret, clock.now()))

    bob_code = totp_now(bob_secret, clock.now())
    alice_window = {totp_now(alice_secret, clock.now(), k) for k in (-1, 0, 1)}
    if bob_code in alice_window:
        pytest.skip("codes collide at this instant")

    with pytest.raises(InvalidCodeError):
        service.verify_totp(bob_code, challenge(service, password))


def test_challenge_for_disabled_mfa(service, enrolled, password, clock):
    user, secret, _ = enrolled
    token = challenge(service, password)
    service.disable(user, password)

    with pytest.raises(NotEnabledError):
        service.verify_totp(totp_now(secret, clock.now()), token)


def test_expired_deadline_leaves_state_untouched(service, enrolled, password, clock, wrong_code):
    user, secret, _ = enrolled
    token = challenge(service, password)

    with pytest.raises(DeadlineExceededError):
        service.verify_totp(wrong_code(secret, clock.now()), token, deadline=Deadline(0))

    assert failed_attempts(service, user) == 0
    # the challenge was not redeemed
    service.verify_totp(totp_now(secret, clock.now()), token)


def test_attempt_while_locked_does_not_count(service, enrolled, password, clock, wrong_code):
    user, secret, _ = enrolled
    outstanding = challenge(service, password)
    bad = wrong_code(secret, clock.now())
    for _ in range(4):
        with pytest.raises(InvalidCodeError):
            service.verify_totp(bad, challenge(service, password))
    with pytest.raises(LockedError) as locked:
        service.verify_totp(bad, challenge(service, password))

    clock.advance(minutes=5)
    with pytest.raises(LockedError) as again:
        service.verify_totp(bad, outstanding)

    record = service.store.require(user.id)
    assert record.failed_attempts == 5
    assert record.locked_until == locked.value.locked_until
    assert again.value.locked_until == locked.value.locked_until


def test_lock_is_released_exactly_at_locked_until(service, enrolled, password, clock, wrong_code):
    user, secret, _ = enrolled
    bad = wrong_code(secret, clock.now())
    for _ in range(4):
        with pytest.raises(InvalidCodeError):
            service.verify_totp(bad, challenge(service, password))
    with pytest.raises(LockedError) as locked:
        service.verify_totp(bad, challenge(service, password))

    clock.set(locked.value.locked_until - timedelta(seconds=1))
    with pytest.raises(LockedError):
        service.begin_login(EMAIL, password)

    clock.set(locked.value.locked_until)
    token = challenge(service, password)

    record = service.store.require(user.id)
    assert record.failed_attempts == 0
    assert record.locked_until is None
    assert service.verify_totp(totp_now(secret, clock.now()), token)["mfa_required"] is False
