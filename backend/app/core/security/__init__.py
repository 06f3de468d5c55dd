"""
認証セキュリティモジュール
"""

# パスワード関連の関数をエクスポート
from .password import hash_password, verify_password

__all__ = [
    "hash_password",
    "verify_password",
]
