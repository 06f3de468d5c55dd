"""
監査ログサービスクラス
セキュリティイベントの記録と管理
"""
import logging
from datetime import datetime
from typing import Optional, Dict, Any
from sqlalchemy.orm import Session
from app.core.security.audit.models import AuditLog, AuditEventType
from app.core.security.audit.config import AuditConfig, audit_config

logger = logging.getLogger(__name__)

# 値をマスキングするキー（部分一致）
SENSITIVE_FIELDS = ("password", "token", "secret", "key")


class AuditService:
    """監査ログのビジネスロジックを提供"""

    def __init__(self, db: Session, config: AuditConfig = audit_config):
        self.db = db
        self.config = config

    def log_event(
        self,
        event_type: AuditEventType,
        user_id: Optional[str] = None,
        user_type: Optional[str] = None,
        resource: Optional[str] = None,
        action: Optional[str] = None,
        success: bool = True,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        session_id: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> Optional[AuditLog]:
        """監査イベントを記録"""

        if not self.config.ENABLED:
            return None

        # 機密情報のマスキング
        if details and self.config.MASK_SENSITIVE:
            details = self._mask_sensitive_data(details)

        audit_log = AuditLog(
            user_id=user_id,
            user_type=user_type,
            event_type=event_type.value if isinstance(event_type, AuditEventType) else event_type,
            resource=resource,
            action=action,
            success=success,
            ip_address=ip_address,
            user_agent=user_agent,
            details=details,
            session_id=session_id,
        )
        if timestamp is not None:
            audit_log.timestamp = timestamp

        try:
            # データベースに保存
            self.db.add(audit_log)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.debug("監査ログを記録しました: event_type=%s, user_id=%s", audit_log.event_type, user_id)
        return audit_log

    def _mask_sensitive_data(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """機密情報をマスキング"""
        masked_data = {}
        for field, value in data.items():
            if any(s in field.lower() for s in SENSITIVE_FIELDS):
                masked_data[field] = "***MASKED***"
            else:
                masked_data[field] = value
        return masked_data

