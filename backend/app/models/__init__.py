# app/models/__init__.py

"""
このファイルは、SQLAlchemyのメタデータに全てのモデルを登録するための初期化モジュールです。
（監査ログモデルは app.core.security.audit.models で定義）
"""

# ユーザーモデル
from .user import User

# MFA設定（TOTP秘密鍵・バックアップコード・ロックアウト状態）
from .mfa_secret import MFASecret

# 信頼済みデバイス（MFAチャレンジの省略）
from .trusted_device import TrustedDevice

__all__ = [
    "User",
    "MFASecret",
    "TrustedDevice",
]
