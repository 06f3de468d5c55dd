"""
セッション管理クラス
  - 一要素目のみ（MFA無効）または二要素目の検証成功後に呼ばれ、アクセストークンとリフレッシュトークンを発行する。
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Set
from threading import Lock
import uuid
import logging
from app.core.config import settings
from app.core.security.jwt import TokenError, TokenSigner, token_signer
from app.core.security.rbac import RBACService
from app.models.user import User
from .models import SessionData, TokenResponse

# ロガーの設定
logger = logging.getLogger(__name__)

class SessionManager:
    """セッション管理クラス"""

    def __init__(self, signer: TokenSigner = token_signer):
        self.signer = signer
        self.active_sessions: Dict[str, SessionData] = {}
        self.user_sessions: Dict[str, Set[str]] = {}
        self._lock = Lock()

    def issue_session(
        self, user: User, mfa_verified: bool = False, mfa_setup_required: bool = False, metadata: dict = None
    ) -> TokenResponse:
        """セッションを作成し、トークンを発行する"""
        now = datetime.now(timezone.utc)
        session_id = str(uuid.uuid4())
        permissions = sorted(p.value for p in RBACService.get_user_permissions(user))

        session_data = SessionData(
            session_id=session_id,
            user_id=user.id,
            role=user.role,
            permissions=permissions,
            created_at=now,
            last_activity=now,
            mfa_verified=mfa_verified,
            mfa_setup_required=mfa_setup_required,
            ip_address=metadata.get("ip_address") if metadata else None,
            user_agent=metadata.get("user_agent") if metadata else None,
            is_active=True
        )

        with self._lock:
            self.active_sessions[session_id] = session_data
            self.user_sessions.setdefault(user.id, set()).add(session_id)

        logger.info(f"セッションを発行しました: user_id={user.id}, mfa_verified={mfa_verified}")

        return TokenResponse(
            access_token=self._create_access_token(session_data),
            refresh_token=self._create_refresh_token(session_id),
            session_id=session_id,
            expires_in=settings.access_token_expire_minutes * 60
        )

    def _create_access_token(self, session_data: SessionData) -> str:
        """アクセストークンを作成"""
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.access_token_expire_minutes)
        return self.signer.encode({
            "sub": session_data.user_id,
            "role": session_data.role,
            "scope": session_data.permissions,
            "session_id": session_data.session_id,
            "mfa": session_data.mfa_verified,
            "mfa_setup_required": session_data.mfa_setup_required,
            "token_type": "access",
            "exp": expire,
        })

    def _create_refresh_token(self, session_id: str) -> str:
        """リフレッシュトークンを作成"""
        expire = datetime.now(timezone.utc) + timedelta(days=settings.refresh_token_expire_days)
        return self.signer.encode({
            "session_id": session_id,
            "token_type": "refresh",
            "exp": expire,
        })

    def refresh_access_token(self, refresh_token: str) -> Optional[TokenResponse]:
        """リフレッシュトークンを使用してアクセストークンを更新"""
        try:
            payload = self.signer.decode(refresh_token)
        except TokenError:
            return None

        session_id = payload.get("session_id")
        if payload.get("token_type") != "refresh" or not session_id:
            return None

        session_data = self.validate_session(session_id)
        if not session_data:
            return None

        # 最終アクティビティを更新
        session_data.last_activity = datetime.now(timezone.utc)

        return TokenResponse(
            access_token=self._create_access_token(session_data),
            refresh_token=refresh_token,  # 同じリフレッシュトークン
            session_id=session_id,
            expires_in=settings.access_token_expire_minutes * 60
        )

    def invalidate_session(self, session_id: str) -> bool:
        """セッションを無効化"""
        with self._lock:
            session_data = self.active_sessions.pop(session_id, None)
            if session_data is None:
                return False
            session_data.is_active = False
            self.user_sessions.get(session_data.user_id, set()).discard(session_id)
            return True

    def invalidate_user_sessions(self, user_id: str) -> int:
        """ユーザーの全セッションを無効化（MFAリセット時など）"""
        count = 0
        for session_id in list(self.user_sessions.get(user_id, set())):
            if self.invalidate_session(session_id):
                count += 1
        return count

    def validate_session(self, session_id: str) -> Optional[SessionData]:
        """セッションの有効性をチェック"""
        session_data = self.active_sessions.get(session_id)
        if not session_data or not session_data.is_active:
            return None

        # セッションの有効期限チェック（リフレッシュトークンと同じ期間）
        if datetime.now(timezone.utc) - session_data.created_at > timedelta(days=settings.refresh_token_expire_days):
            self.invalidate_session(session_id)
            return None

        return session_data

# グローバルセッションマネージャーインスタンス
session_manager = SessionManager()
