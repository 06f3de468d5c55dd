"""
監査ログのデータベースモデル
MFA・ログイン関連のセキュリティイベントの記録と追跡
"""
from datetime import datetime, timezone
from enum import Enum
from sqlalchemy import Column, String, Text, Boolean, JSON
from app.db.base_class import Base
from app.db.types import UTCDateTime
import uuid


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditEventType(str, Enum):
    """監査イベントのタイプ"""
    # 認証
    AUTH_LOGIN_SUCCESS = "auth:login:success"
    AUTH_LOGIN_FAILURE = "auth:login:failure"
    AUTH_LOGIN_MFA_REQUIRED = "auth:login:mfa_required"    # パスワード成功・二要素目待ち
    AUTH_PERMISSION_DENIED = "auth:permission:denied"

    # MFAライフサイクル
    MFA_SETUP = "mfa:setup"
    MFA_ENABLE = "mfa:enable"
    MFA_DISABLE = "mfa:disable"
    MFA_BACKUP_CODES_REGENERATE = "mfa:backup_codes:regenerate"

    # MFA検証
    MFA_VERIFY_SUCCESS = "mfa:verify:success"
    MFA_VERIFY_FAILURE = "mfa:verify:failure"
    MFA_BACKUP_CODE_USED = "mfa:backup_code:used"
    MFA_LOCKED = "mfa:locked"

    # 信頼済みデバイス
    MFA_DEVICE_TRUSTED = "mfa:device:trusted"
    MFA_DEVICE_REMOVED = "mfa:device:removed"

    # リセット・管理操作
    MFA_RESET_REQUEST = "mfa:reset:request"
    MFA_RESET_CONFIRM = "mfa:reset:confirm"
    MFA_ADMIN_UNLOCK = "mfa:admin:unlock"


class AuditLog(Base):
    """監査ログテーブル"""
    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    timestamp = Column(UTCDateTime, default=_utcnow, nullable=False)
    user_id = Column(String(36), nullable=True, index=True)  # 匿名アクセスの場合もある
    user_type = Column(String(20), nullable=True)  # ロール（user / admin / super_admin）
    event_type = Column(String(64), nullable=False)
    resource = Column(String(255), nullable=True)  # 操作対象のリソース
    action = Column(String(64), nullable=True)    # 実行されたアクション
    success = Column(Boolean, default=True)   # 成功/失敗
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(Text, nullable=True)
    details = Column(JSON, nullable=True)     # 追加の詳細情報
    session_id = Column(String(64), nullable=True)  # セッション識別子

    def __repr__(self):
        return f"<AuditLog(id={self.id}, event_type={self.event_type}, user_id={self.user_id})>"
