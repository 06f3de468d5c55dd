"""
監査ログの設定
"""
from pydantic_settings import BaseSettings


class AuditConfig(BaseSettings):
    """監査ログの設定"""

    # 監査ログの有効化
    ENABLED: bool = True

    # 機密情報のマスキング
    MASK_SENSITIVE: bool = True

    class Config:
        env_prefix = "AUDIT_"
        env_file = ".env"
        extra = "ignore"


# 設定インスタンスを作成
audit_config = AuditConfig()
