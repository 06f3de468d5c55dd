"""Trusted devices and per-role MFA enforcement."""

from datetime import timedelta

import pytest

from app.core.security.audit.models import AuditEventType, AuditLog
from app.core.security.mfa.config import MFAConfig
from app.core.security.mfa.errors import DeviceNotFoundError, InvalidCodeError, LockedError
from app.core.security.mfa.events import ClientInfo
from app.core.security.mfa.service import MFAService
from app.core.security.mfa.totp import totp_now
from app.core.security.mfa.trusted_devices import describe_device, device_fingerprint
from app.core.security.session import session_manager
from app.models.trusted_device import TrustedDevice

EMAIL = "alice@example.com"
CHROME = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0 Safari/537.36"
FIREFOX = "Mozilla/5.0 (X11; Linux x86_64; rv:121.0) Gecko/20100101 Firefox/121.0"


@pytest.fixture
def browser(db, clock, dispatcher, registry):
    """Builds a service as seen from one browser."""

    def _browser(user_agent=CHROME, accept_language="ja,en;q=0.8", ip_address="203.0.113.7", config=None):
        kwargs = {"config": config} if config is not None else {}
        return MFAService(
            db,
            clock=clock,
            dispatcher=dispatcher,
            challenge_registry=registry,
            client=ClientInfo(ip_address=ip_address, user_agent=user_agent, accept_language=accept_language),
            **kwargs,
        )

    return _browser


def trust_from(service, secret, clock, password):
    token = service.begin_login(EMAIL, password)["challenge_token"]
    return service.verify_totp(totp_now(secret, clock.now()), token, trust_device=True)


def test_fingerprint_ignores_ip_address():
    home = ClientInfo(ip_address="198.51.100.1", user_agent=CHROME, accept_language="ja")
    office = ClientInfo(ip_address="203.0.113.9", user_agent=CHROME, accept_language="ja")

    assert device_fingerprint(home) == device_fingerprint(office)
    assert device_fingerprint(home) != device_fingerprint(ClientInfo(user_agent=CHROME, accept_language="en"))
    assert len(device_fingerprint(home)) == 64
    assert device_fingerprint(ClientInfo(ip_address="198.51.100.1")) is None


@pytest.mark.parametrize(
    "user_agent, expected",
    [
        (CHROME, "Chrome on Windows"),
        (FIREFOX, "Firefox on Linux"),
        ("Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) Version/17.0 Mobile Safari/604.1", "Safari on iOS"),
        ("curl/8.4.0", "Unknown on Unknown"),
        (None, "Unknown on Unknown"),
    ],
)
def test_describe_device(user_agent, expected):
    assert describe_device(user_agent) == expected


def test_trusted_device_skips_challenge(browser, enrolled, password, clock, db):
    user, secret, _ = enrolled
    service = browser()

    response = trust_from(service, secret, clock, password)
    assert response["trusted_device"] is True

    clock.advance(days=1)
    login = browser().begin_login(EMAIL, password)

    assert login["mfa_required"] is False
    assert login["trusted_device"] is True
    assert session_manager.validate_session(login["session_id"]).mfa_verified is True
    device = db.query(TrustedDevice).filter(TrustedDevice.user_id == user.id).one()
    assert device.device_name == "Chrome on Windows"
    assert device.ip_address == "203.0.113.7"
    assert device.last_used_at == clock.now()
    assert db.query(AuditLog).filter(AuditLog.event_type == AuditEventType.MFA_DEVICE_TRUSTED.value).count() == 1


def test_other_browser_still_gets_challenge(browser, enrolled, password, clock):
    _, secret, _ = enrolled
    trust_from(browser(), secret, clock, password)

    assert browser(user_agent=FIREFOX).begin_login(EMAIL, password)["mfa_required"] is True
    assert browser(accept_language="en-US").begin_login(EMAIL, password)["mfa_required"] is True


def test_trust_is_opt_in(browser, enrolled, password, clock):
    _, secret, _ = enrolled
    service = browser()
    token = service.begin_login(EMAIL, password)["challenge_token"]

    assert service.verify_totp(totp_now(secret, clock.now()), token)["trusted_device"] is False
    assert browser().begin_login(EMAIL, password)["mfa_required"] is True


def test_trust_expires(browser, enrolled, password, clock):
    _, secret, _ = enrolled
    trust_from(browser(), secret, clock, password)

    clock.advance(days=30)

    assert browser().begin_login(EMAIL, password)["mfa_required"] is True


def test_trust_without_user_agent_is_ignored(browser, db, enrolled, password, clock):
    _, secret, _ = enrolled
    service = browser(user_agent=None)

    response = trust_from(service, secret, clock, password)

    assert response["mfa_required"] is False
    assert response["trusted_device"] is False
    assert db.query(TrustedDevice).count() == 0


def test_trust_via_backup_code(browser, enrolled, password):
    _, _, codes = enrolled
    service = browser()
    token = service.begin_login(EMAIL, password)["challenge_token"]

    response = service.verify_backup(codes[0], token, trust_device=True)

    assert response["trusted_device"] is True
    assert browser().begin_login(EMAIL, password)["mfa_required"] is False


def test_locked_account_is_not_skipped_by_trust(browser, enrolled, password, clock, wrong_code):
    _, secret, _ = enrolled
    trust_from(browser(), secret, clock, password)
    other = browser(user_agent=FIREFOX)
    bad = wrong_code(secret, clock.now())
    for _ in range(4):
        with pytest.raises(InvalidCodeError):
            other.verify_totp(bad, other.begin_login(EMAIL, password)["challenge_token"])
    with pytest.raises(LockedError):
        other.verify_totp(bad, other.begin_login(EMAIL, password)["challenge_token"])

    with pytest.raises(LockedError):
        browser().begin_login(EMAIL, password)


def test_device_limit_drops_least_recently_used(browser, db, enrolled, password, clock):
    user, secret, _ = enrolled
    agents = [f"{CHROME} Build/{n}" for n in range(6)]
    for agent in agents:
        clock.advance(minutes=1)
        trust_from(browser(user_agent=agent), secret, clock, password)

    devices = browser().list_trusted_devices(user)

    assert len(devices) == 5
    assert db.query(TrustedDevice).count() == 5
    # the first device was used least recently
    assert browser(user_agent=agents[0]).begin_login(EMAIL, password)["mfa_required"] is True
    assert browser(user_agent=agents[5]).begin_login(EMAIL, password)["mfa_required"] is False


def test_retrusting_extends_existing_device(browser, db, enrolled, password, clock):
    user, secret, _ = enrolled
    service = browser()
    trust_from(service, secret, clock, password)
    first_trusted = clock.now()
    clock.advance(days=20)

    service.devices.trust(user.id, service.events.client)

    device = db.query(TrustedDevice).one()
    assert device.created_at == first_trusted
    assert device.trusted_until == clock.now() + timedelta(days=30)


def test_list_and_remove_devices(browser, db, enrolled, password, clock):
    user, secret, _ = enrolled
    service = browser()
    trust_from(service, secret, clock, password)
    clock.advance(minutes=1)
    trust_from(browser(user_agent=FIREFOX), secret, clock, password)

    devices = service.list_trusted_devices(user)
    assert [d["device_name"] for d in devices] == ["Firefox on Linux", "Chrome on Windows"]
    assert all(d["active"] for d in devices)
    assert "device_fingerprint" not in devices[0]

    assert service.remove_trusted_device(user, devices[0]["id"]) == {"ok": True, "removed": 1}
    with pytest.raises(DeviceNotFoundError):
        service.remove_trusted_device(user, devices[0]["id"])
    assert browser(user_agent=FIREFOX).begin_login(EMAIL, password)["mfa_required"] is True

    assert service.remove_all_trusted_devices(user) == {"ok": True, "removed": 1}
    assert service.list_trusted_devices(user) == []
    assert db.query(AuditLog).filter(AuditLog.event_type == AuditEventType.MFA_DEVICE_REMOVED.value).count() == 2


def test_cannot_remove_another_users_device(browser, make_user, enrolled, password, clock):
    user, secret, _ = enrolled
    trust_from(browser(), secret, clock, password)
    device_id = browser().list_trusted_devices(user)[0]["id"]
    bob = make_user("bob@example.com")

    with pytest.raises(DeviceNotFoundError):
        browser().remove_trusted_device(bob, device_id)
    assert len(browser().list_trusted_devices(user)) == 1


def test_disable_forgets_trusted_devices(browser, db, enrolled, password, clock):
    user, secret, _ = enrolled
    service = browser()
    trust_from(service, secret, clock, password)

    service.disable(user, password)
    result = service.setup(user)
    service.enable(user, totp_now(result["secret"], clock.now()))

    assert db.query(TrustedDevice).count() == 0
    assert browser().begin_login(EMAIL, password)["mfa_required"] is True


def test_enforced_role_without_mfa_gets_setup_flag(browser, make_user, password):
    make_user("admin@example.com", role="admin")
    service = browser(config=MFAConfig(enforced_roles=["admin"]))

    admin_login = service.begin_login("admin@example.com", password)

    assert admin_login["mfa_required"] is False
    assert admin_login["mfa_setup_required"] is True
    assert session_manager.validate_session(admin_login["session_id"]).mfa_setup_required is True


def test_other_roles_are_not_flagged(browser, user, password):
    service = browser(config=MFAConfig(enforced_roles=["admin"]))

    response = service.begin_login(EMAIL, password)

    assert response["mfa_setup_required"] is False
    assert service.get_status(user)["required"] is False


def test_status_reports_requirement(browser, make_user):
    admin = make_user("admin@example.com", role="admin")
    service = browser(config=MFAConfig(enforced_roles=["admin", "super_admin"]))

    assert service.get_status(admin)["required"] is True
