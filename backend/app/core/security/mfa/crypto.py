"""
MFA用の暗号プリミティブ
  - バックアップコードのハッシュ化（SHA-256、ペッパー設定時は HMAC-SHA256）
  - 秘密鍵・バックアップコード・リセットトークンの乱数生成
  - 定数時間比較
"""

import hashlib
import hmac
import secrets
from typing import Optional

import pyotp


def normalize_backup_code(code: str) -> str:
    """バックアップコードを正規形（大文字）にする"""
    return code.strip().upper()


def hash_backup_code(code: str, pepper: Optional[bytes] = None) -> str:
    """正規形のバックアップコードから16進ダイジェストを計算"""
    canonical = normalize_backup_code(code).encode("utf-8")
    if pepper:
        return hmac.new(pepper, canonical, hashlib.sha256).hexdigest()
    return hashlib.sha256(canonical).hexdigest()


def hash_reset_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def random_secret() -> str:
    """base32 32文字（160bit）のTOTP秘密鍵"""
    return pyotp.random_base32(length=32)


def random_backup_code() -> str:
    """32bitの乱数から XXXX-XXXX 形式のコードを生成"""
    raw = secrets.token_hex(4).upper()
    return f"{raw[:4]}-{raw[4:]}"


def random_backup_codes(count: int) -> list[str]:
    codes: list[str] = []
    while len(codes) < count:
        code = random_backup_code()
        if code not in codes:
            codes.append(code)
    return codes


def random_reset_token() -> str:
    """256bitのリセットトークン（16進64文字）"""
    return secrets.token_hex(32)


def constant_time_equals(a: str | bytes, b: str | bytes) -> bool:
    if isinstance(a, str):
        a = a.encode("utf-8")
    if isinstance(b, str):
        b = b.encode("utf-8")
    return hmac.compare_digest(a, b)
