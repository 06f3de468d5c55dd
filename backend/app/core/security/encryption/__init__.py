"""
暗号化モジュール
MFA秘密鍵の暗号化・復号化機能を提供
"""

from .service import DecryptionError, EncryptionKeyError, EnvelopeCipher, build_cipher, load_key

__all__ = ["DecryptionError", "EncryptionKeyError", "EnvelopeCipher", "build_cipher", "load_key"]
