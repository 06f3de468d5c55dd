"""
MFA関連の監査イベント記録
  - 監査ログの保存に失敗しても、ユーザーの操作は失敗させない（警告ログのみ）。
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from app.core.security.audit.models import AuditEventType
from app.core.security.audit.service import AuditService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClientInfo:
    """リクエスト元の情報（HTTP層から渡される）"""
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    accept_language: Optional[str] = None


class MFAEventRecorder:
    def __init__(self, audit_service: AuditService, client: Optional[ClientInfo] = None):
        self.audit_service = audit_service
        self.client = client or ClientInfo()

    def record(
        self,
        event_type: AuditEventType,
        user_id: Optional[str],
        user_type: Optional[str] = None,
        success: bool = True,
        action: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        session_id: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> None:
        try:
            self.audit_service.log_event(
                event_type=event_type,
                user_id=user_id,
                user_type=user_type,
                resource="mfa" if event_type.value.startswith("mfa:") else "auth",
                action=action,
                success=success,
                ip_address=self.client.ip_address,
                user_agent=self.client.user_agent,
                details=details,
                session_id=session_id,
                timestamp=timestamp,
            )
        except SQLAlchemyError as e:
            logger.warning(f"監査ログの保存に失敗: event_type={event_type.value}, error={e}")
