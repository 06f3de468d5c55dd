"""Challenge token issue and redemption."""

from datetime import timedelta

import pytest

from app.core.security.jwt import JoseTokenSigner
from app.core.security.mfa.challenge import CHALLENGE_PURPOSE, ChallengeTokenService
from app.core.security.mfa.deadline import Deadline
from app.core.security.mfa.errors import ChallengeInvalidError, DeadlineExceededError

USER_ID = "0b6f3e0c-8a1d-4c55-9a57-1f2e3d4c5b6a"


@pytest.fixture
def signer():
    return JoseTokenSigner("challenge-test-key")


@pytest.fixture
def challenges(signer, clock, registry):
    return ChallengeTokenService(signer, clock=clock, ttl_seconds=300, registry=registry)


def test_issue_and_redeem(challenges, clock):
    claims = challenges.redeem(challenges.issue(USER_ID))

    assert claims.user_id == USER_ID
    assert claims.issued_at == clock.now().replace(microsecond=0)
    assert claims.expires_at == claims.issued_at + timedelta(seconds=300)


def test_token_is_valid_until_expiry_inclusive(challenges, clock):
    token = challenges.issue(USER_ID)
    clock.advance(seconds=300)

    assert challenges.redeem(token).user_id == USER_ID


def test_expired_token(challenges, clock):
    token = challenges.issue(USER_ID)
    clock.advance(seconds=301)

    with pytest.raises(ChallengeInvalidError):
        challenges.redeem(token)


def test_token_is_single_use(challenges, registry):
    token = challenges.issue(USER_ID)
    challenges.redeem(token)

    with pytest.raises(ChallengeInvalidError):
        challenges.redeem(token)
    assert len(registry) == 1


def test_registry_forgets_expired_tokens(challenges, registry, clock):
    challenges.redeem(challenges.issue(USER_ID))
    clock.advance(minutes=10)

    challenges.redeem(challenges.issue(USER_ID))

    assert len(registry) == 1


def test_foreign_signature_is_rejected(challenges, clock):
    forged = ChallengeTokenService(JoseTokenSigner("other-key"), clock=clock).issue(USER_ID)

    with pytest.raises(ChallengeInvalidError):
        challenges.redeem(forged)


def test_wrong_purpose_is_rejected(challenges, signer, clock):
    now = int(clock.now().timestamp())
    access_like = signer.encode({"sub": USER_ID, "purpose": "access", "iat": now, "exp": now + 300, "jti": "x"})
    no_purpose = signer.encode({"sub": USER_ID, "iat": now, "exp": now + 300, "jti": "y"})

    for token in (access_like, no_purpose):
        with pytest.raises(ChallengeInvalidError):
            challenges.redeem(token)


def test_missing_claims_are_rejected(challenges, signer, clock):
    now = int(clock.now().timestamp())
    token = signer.encode({"sub": USER_ID, "purpose": CHALLENGE_PURPOSE, "iat": now, "exp": now + 300})

    with pytest.raises(ChallengeInvalidError):
        challenges.redeem(token)


@pytest.mark.parametrize("token", ["", "not-a-jwt", "a.b.c", None])
def test_malformed_tokens_are_rejected(challenges, token):
    with pytest.raises(ChallengeInvalidError):
        challenges.redeem(token)


def test_expired_deadline(challenges):
    token = challenges.issue(USER_ID)

    with pytest.raises(DeadlineExceededError):
        challenges.redeem(token, deadline=Deadline(0))
    assert challenges.redeem(token).user_id == USER_ID
