from sqlalchemy import Column, String, ForeignKey, UniqueConstraint
from sqlalchemy.dialects.mysql import CHAR
from datetime import datetime, timezone
from app.db.base_class import Base
from app.db.types import UTCDateTime
import uuid


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TrustedDevice(Base):
    """
    - 二要素目の検証時に「このデバイスを信頼する」が選ばれた端末を格納するテーブル。
    - trusted_until までは、同じ端末からのログインでMFAチャレンジを省略する。
    - 端末はフィンガープリント（User-Agent と Accept-Language の SHA-256）で識別する。
    """

    __tablename__ = "trusted_devices"
    __table_args__ = (UniqueConstraint("user_id", "device_fingerprint", name="uq_trusted_devices_user_fingerprint"),)

    id = Column(CHAR(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    user_id = Column(CHAR(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    # 端末フィンガープリント（16進64文字）
    device_fingerprint = Column(String(64), nullable=False)

    # 表示名（例: "Chrome on Windows"）
    device_name = Column(String(100), nullable=True)

    # 信頼を登録したときのIPアドレス（記録のみ。照合には使わない）
    ip_address = Column(String(64), nullable=True)

    trusted_until = Column(UTCDateTime, nullable=False)
    last_used_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, default=_utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=_utcnow, nullable=False)

    def __repr__(self):
        return f"<TrustedDevice(id={self.id}, user_id={self.user_id}, device_name={self.device_name})>"
