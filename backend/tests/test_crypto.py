"""Envelope encryption and MFA crypto primitives."""

import logging
import re

import pytest

from app.core.security.encryption import DecryptionError, EncryptionKeyError, EnvelopeCipher, load_key
from app.core.security.encryption.service import NONCE_SIZE, TAG_SIZE
from app.core.security.mfa.crypto import (
    constant_time_equals,
    hash_backup_code,
    hash_reset_token,
    random_backup_code,
    random_backup_codes,
    random_reset_token,
    random_secret,
)

KEY = bytes(range(32))


@pytest.fixture
def cipher() -> EnvelopeCipher:
    return EnvelopeCipher(KEY)


def test_envelope_layout_and_round_trip(cipher):
    envelope = cipher.encrypt(b"JBSWY3DPEHPK3PXP", associated_data=b"user-1")

    assert len(envelope) == NONCE_SIZE + TAG_SIZE + len(b"JBSWY3DPEHPK3PXP")
    assert cipher.decrypt(envelope, associated_data=b"user-1") == b"JBSWY3DPEHPK3PXP"


def test_nonce_is_fresh_per_encryption(cipher):
    assert cipher.encrypt(b"same") != cipher.encrypt(b"same")


def test_tampered_envelope_is_rejected(cipher):
    envelope = bytearray(cipher.encrypt(b"secret"))
    envelope[-1] ^= 0x01

    with pytest.raises(DecryptionError):
        cipher.decrypt(bytes(envelope))


def test_truncated_envelope_is_rejected(cipher):
    envelope = cipher.encrypt(b"secret")

    with pytest.raises(DecryptionError):
        cipher.decrypt(envelope[: NONCE_SIZE + TAG_SIZE - 1])


def test_envelope_is_bound_to_owner(cipher):
    envelope = cipher.encrypt(b"secret", associated_data=b"user-1")

    with pytest.raises(DecryptionError):
        cipher.decrypt(envelope, associated_data=b"user-2")


def test_wrong_key_is_rejected(cipher):
    envelope = cipher.encrypt(b"secret")

    with pytest.raises(DecryptionError):
        EnvelopeCipher(bytes(32)).decrypt(envelope)


def test_repr_never_shows_key(cipher):
    assert KEY.hex() not in repr(cipher)
    assert "***" in repr(cipher)


def test_load_key_parses_hex():
    assert load_key("ab" * 32) == bytes([0xAB]) * 32


@pytest.mark.parametrize("value", ["ab" * 31, "zz" * 32, "ab" * 33])
def test_load_key_rejects_invalid_values(value):
    with pytest.raises(EncryptionKeyError):
        load_key(value)


def test_missing_key_generates_ephemeral_key_with_warning(caplog):
    with caplog.at_level(logging.WARNING):
        key = load_key("")

    assert len(key) == 32
    assert "MFA_ENCRYPTION_KEY" in caplog.text


def test_backup_code_hash_is_case_insensitive_on_input():
    assert hash_backup_code("abcd-12ef") == hash_backup_code("ABCD-12EF")
    assert re.fullmatch(r"[0-9a-f]{64}", hash_backup_code("ABCD-12EF"))


def test_backup_code_hash_with_pepper_differs():
    assert hash_backup_code("ABCD-1234", b"pepper") != hash_backup_code("ABCD-1234")
    assert hash_backup_code("ABCD-1234", b"pepper") == hash_backup_code("abcd-1234", b"pepper")


def test_random_material_formats():
    assert re.fullmatch(r"[A-Z2-7]{32}", random_secret())
    assert re.fullmatch(r"[A-F0-9]{4}-[A-F0-9]{4}", random_backup_code())
    assert re.fullmatch(r"[0-9a-f]{64}", random_reset_token())


def test_random_backup_codes_are_distinct():
    codes = random_backup_codes(10)

    assert len(codes) == 10
    assert len(set(codes)) == 10


def test_reset_token_digest_is_deterministic():
    token = random_reset_token()

    assert hash_reset_token(token) == hash_reset_token(token)
    assert hash_reset_token(token) != token


def test_constant_time_equals():
    assert constant_time_equals("abc", "abc")
    assert constant_time_equals(b"abc", "abc")
    assert not constant_time_equals("abc", "abd")
