"""
データ暗号化サービス
TOTP共有秘密鍵の保存時暗号化（AES-256-GCM）を提供

エンベロープ形式: nonce(12バイト) || tag(16バイト) || ciphertext
"""
import logging
import os
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

logger = logging.getLogger(__name__)

NONCE_SIZE = 12
TAG_SIZE = 16
KEY_SIZE = 32


class DecryptionError(Exception):
    """改ざん・切り詰め・鍵不一致などで復号できない場合のエラー"""


class EncryptionKeyError(ValueError):
    """暗号化キーの形式が不正な場合のエラー（起動時に送出）"""


class EnvelopeCipher:
    """AES-256-GCM によるエンベロープ暗号化"""

    def __init__(self, key: bytes):
        if len(key) != KEY_SIZE:
            raise EncryptionKeyError("暗号化キーは256bit（32バイト）である必要があります")
        self._aead = AESGCM(key)

    def __repr__(self) -> str:
        # 鍵をログや例外メッセージに出さない
        return "EnvelopeCipher(key=***)"

    def encrypt(self, plaintext: bytes, associated_data: Optional[bytes] = None) -> bytes:
        """データを暗号化"""
        nonce = os.urandom(NONCE_SIZE)
        sealed = self._aead.encrypt(nonce, plaintext, associated_data)
        # cryptography は ciphertext || tag を返すため、tag を前に並べ替える
        ciphertext, tag = sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]
        return nonce + tag + ciphertext

    def decrypt(self, envelope: bytes, associated_data: Optional[bytes] = None) -> bytes:
        """データを復号化"""
        if envelope is None or len(envelope) < NONCE_SIZE + TAG_SIZE:
            raise DecryptionError("エンベロープが短すぎます")
        nonce = envelope[:NONCE_SIZE]
        tag = envelope[NONCE_SIZE:NONCE_SIZE + TAG_SIZE]
        ciphertext = envelope[NONCE_SIZE + TAG_SIZE:]
        try:
            return self._aead.decrypt(nonce, ciphertext + tag, associated_data)
        except InvalidTag as e:
            raise DecryptionError("復号化に失敗しました") from e


def load_key(hex_key: str) -> bytes:
    """16進文字列の暗号化キーを読み込む。未設定なら一時キーを生成して警告する"""
    if not hex_key:
        logger.warning(
            "⚠️ MFA_ENCRYPTION_KEY が設定されていません。一時的な暗号化キーを生成します"
            "（再起動すると既存のMFA秘密鍵は復号できなくなります）"
        )
        return AESGCM.generate_key(bit_length=256)

    if len(hex_key) != KEY_SIZE * 2:
        raise EncryptionKeyError("MFA_ENCRYPTION_KEY は64桁の16進数で指定してください")
    try:
        return bytes.fromhex(hex_key)
    except ValueError as e:
        raise EncryptionKeyError("MFA_ENCRYPTION_KEY に16進数以外の文字が含まれています") from e


def build_cipher(hex_key: str) -> EnvelopeCipher:
    return EnvelopeCipher(load_key(hex_key))
