# app/core/dependencies.py
""" 認証情報・サービスを取得するための依存関数を提供 """

from fastapi import Depends, HTTPException, status, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session
from datetime import datetime, timezone
import logging
from typing import Optional

from app.db.session import get_db
from app.models.user import User
from app.core.security.jwt import verify_access_token
from app.core.security.session import SessionData, session_manager
from app.core.security.rbac import RBACService
from app.core.security.rbac.permissions import Permission
from app.core.security.mfa.config import mfa_config
from app.core.security.mfa.deadline import Deadline
from app.core.security.mfa.errors import MFASetupRequiredError
from app.core.security.mfa.events import ClientInfo
from app.core.security.mfa.service import MFAService

# ロガーの設定
logger = logging.getLogger(__name__)

# 認証用のOAuth2スキームを定義
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


""" クライアントのIPアドレスを取得する関数（プロキシ経由の場合は X-Forwarded-For を優先） """
def get_client_info(request: Request) -> ClientInfo:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        ip_address = forwarded_for.split(",")[0].strip()
    elif request.client and request.client.host:
        ip_address = request.client.host
    else:
        ip_address = None
    return ClientInfo(
        ip_address=ip_address,
        user_agent=request.headers.get("user-agent"),
        accept_language=request.headers.get("accept-language"),
    )


""" アクセストークンからユーザーとセッションを取得する関数 """
def get_current_session(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> tuple[User, SessionData]:

    # 認証エラーの例外を定義
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    # JWTトークンを検証
    payload = verify_access_token(token)
    if not payload:
        logger.info("アクセストークンの検証に失敗しました")
        raise credentials_exception

    # セッションの有効性をチェック
    session_id = payload.get("session_id")
    session_data = session_manager.validate_session(session_id) if session_id else None
    if not session_data:
        logger.info("無効なセッションのトークンです")
        raise credentials_exception
    session_data.last_activity = datetime.now(timezone.utc)

    # データベースからユーザーを取得
    user = db.get(User, payload.get("sub"))
    if not user or not user.is_active:
        raise credentials_exception
    return user, session_data


""" 現在のユーザーを取得する関数（MFA必須ロールのセットアップ待ちセッションも許可） """
def get_current_user(current: tuple[User, SessionData] = Depends(get_current_session)) -> User:
    return current[0]


""" MFAの設定要件を満たしたユーザーのみ通す関数 """
def get_compliant_user(current: tuple[User, SessionData] = Depends(get_current_session)) -> User:
    user, session_data = current
    if session_data.mfa_setup_required:
        logger.info(f"MFA未設定のため操作を拒否しました: user_id={user.id}")
        raise MFASetupRequiredError()
    return user


""" 特定の権限を要求する依存関数 """
def require_permissions(*required: Permission, allow_pending_setup: bool = False):
    """
    使用例:
        current_user: User = Depends(require_permissions(Permission.MFA_MANAGE_SELF))
    allow_pending_setup=True の場合、MFA必須ロールのセットアップ待ちセッションも通す（MFAの設定操作用）
    """
    user_dependency = get_current_user if allow_pending_setup else get_compliant_user

    def _checker(current_user: User = Depends(user_dependency)) -> User:
        # 権限不足の場合は ForbiddenError（例外ハンドラで403に変換）
        RBACService.enforce_user_permissions(current_user, list(required))
        return current_user
    return _checker


""" MFAサービスを取得する関数（リクエストごとに生成） """
def get_mfa_service(request: Request, db: Session = Depends(get_db)) -> MFAService:
    return MFAService(db, client=get_client_info(request))


""" リクエストごとの処理期限を生成する関数（0以下の設定で無効） """
def get_request_deadline() -> Optional[Deadline]:
    if mfa_config.request_timeout_seconds <= 0:
        return None
    return Deadline.after(mfa_config.request_timeout_seconds)
