"""
TOTP検証（RFC 6238 / HMAC-SHA1 / 30秒ステップ / 6桁）
"""

import logging
import re
from datetime import datetime

import pyotp

from app.core.security.encryption import DecryptionError, EnvelopeCipher

logger = logging.getLogger(__name__)

TOTP_CODE_PATTERN = re.compile(r"[0-9]{6}")


def is_valid_totp_format(code: str) -> bool:
    return isinstance(code, str) and TOTP_CODE_PATTERN.fullmatch(code) is not None


class TOTPVerifier:
    """暗号化済み秘密鍵を受け取り、TOTPコードを検証する"""

    def __init__(self, cipher: EnvelopeCipher, digits: int = 6, period: int = 30):
        self.cipher = cipher
        self.digits = digits
        self.period = period

    def verify(self, secret_ct: bytes, code: str, now: datetime, window: int, user_id: str) -> bool:
        """
        現在時刻 now から ±window ステップ以内のコードであれば True。
        形式エラー・復号エラー・不一致はすべて False を返し、例外は送出しない。
        """
        if not is_valid_totp_format(code):
            return False

        try:
            plaintext = bytearray(self.cipher.decrypt(secret_ct, associated_data=user_id.encode("utf-8")))
        except DecryptionError:
            logger.error("TOTP秘密鍵の復号に失敗しました: user_id=%s", user_id)
            return False

        try:
            totp = pyotp.TOTP(plaintext.decode("ascii"), digits=self.digits, interval=self.period)
            return totp.verify(code, for_time=now, valid_window=window)
        except (ValueError, TypeError):
            logger.error("TOTP秘密鍵の形式が不正です: user_id=%s", user_id)
            return False
        finally:
            # 消去できるのはこの bytearray のみ（decrypt が返す bytes と pyotp に渡す str は不変オブジェクトのため残る）
            for i in range(len(plaintext)):
                plaintext[i] = 0


def totp_now(secret: str, now: datetime, offset_steps: int = 0, period: int = 30) -> str:
    """指定時刻（±ステップ）のTOTPコードを計算する"""
    totp = pyotp.TOTP(secret, interval=period)
    return totp.at(now, counter_offset=offset_steps)
