"""
MFAリセット・管理者操作
  - request_reset: パスワード確認後、リセットトークンを発行してメールで送る（送信はバックグラウンド）
  - confirm_reset: トークンが一致・有効期限内ならMFAを無効化し、トークンを消去する（1回限り）。
    信頼済みデバイスと既存セッションもあわせて失効させる
  - admin_unlock: 管理者がロックアウトを解除する（enabled は変更しない）
  - admin_summary: MFA利用状況の集計
"""

import logging
import re
from datetime import timedelta
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.clock import Clock, system_clock
from app.core.security.audit.models import AuditEventType
from app.core.security.rbac import Permission, RBACService
from app.core.security.session import SessionManager
from app.crud.user import (
    clear_mfa_reset_token_if_valid,
    get_user_by_reset_token_digest,
    set_mfa_reset_token,
)
from app.models.user import User
from app.services.mailer import Mail, MailDispatcher

from .config import MFAConfig
from .crud import MFASecretStore
from .crypto import hash_reset_token, random_reset_token
from .deadline import Deadline, check_deadline
from .errors import InvalidOrExpiredTokenError, NotEnabledError, StorageError, WrongPasswordError
from .events import MFAEventRecorder
from .lockout import LockoutController
from .trusted_devices import TrustedDeviceRegistry

logger = logging.getLogger(__name__)

RESET_TOKEN_PATTERN = re.compile(r"[0-9a-f]{64}")

PasswordChecker = Callable[[str, Optional[str]], bool]


def build_reset_link(frontend_url: str, token: str) -> str:
    return f"{frontend_url.rstrip('/')}/auth/mfa-reset/{token}"


class RecoveryService:
    """MFAリセットと管理者操作"""

    def __init__(
        self,
        db: Session,
        store: MFASecretStore,
        lockout: LockoutController,
        password_checker: PasswordChecker,
        dispatcher: MailDispatcher,
        events: MFAEventRecorder,
        config: MFAConfig,
        frontend_url: str,
        sessions: SessionManager,
        devices: TrustedDeviceRegistry,
        clock: Clock = system_clock,
    ):
        self.db = db
        self.store = store
        self.lockout = lockout
        self.password_checker = password_checker
        self.dispatcher = dispatcher
        self.events = events
        self.config = config
        self.frontend_url = frontend_url
        self.sessions = sessions
        self.devices = devices
        self.clock = clock

    # ------------------------------------------------------------------
    # ユーザーによるリセット
    # ------------------------------------------------------------------
    def request_reset(self, user: User, password: str, deadline: Optional[Deadline] = None) -> dict:
        if not self.password_checker(password or "", user.password_hash):
            raise WrongPasswordError()

        record = self.store.get(user.id)
        if record is None or not record.enabled:
            raise NotEnabledError()

        token = random_reset_token()
        expires_at = self.clock.now() + timedelta(seconds=self.config.reset_token_ttl_seconds)

        check_deadline(deadline, "reset_token_store")
        try:
            set_mfa_reset_token(self.db, user.id, hash_reset_token(token), expires_at)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("MFAリセットトークンの保存に失敗しました: user_id=%s, error=%s", user.id, e)
            raise StorageError() from e

        # トークン保存後は、期限やメール送信の成否に関わらず応答を返す
        self._send_reset_mail(user, token)

        logger.info("MFAリセットを受け付けました: user_id=%s", user.id)
        self.events.record(
            AuditEventType.MFA_RESET_REQUEST,
            user.id,
            user.role,
            action="reset_request",
            details={"expires_at": expires_at.isoformat()},
        )
        return {"ok": True, "expires_in": self.config.reset_token_ttl_seconds}

    def _send_reset_mail(self, user: User, token: str) -> None:
        link = build_reset_link(self.frontend_url, token)
        minutes = self.config.reset_token_ttl_seconds // 60
        mail = Mail(
            to=user.email,
            subject=f"[{self.config.issuer}] 二要素認証のリセット",
            text=(
                f"{user.username} 様\n\n"
                "二要素認証（MFA）のリセットが要求されました。\n"
                f"以下のリンクから{minutes}分以内にリセットを完了してください。\n\n"
                f"{link}\n\n"
                "このリクエストに心当たりがない場合は、このメールを破棄してください。\n"
            ),
        )
        try:
            self.dispatcher.dispatch(mail)
        except RuntimeError as e:
            # ディスパッチャー停止後など。送信失敗はユーザー操作を失敗させない
            logger.error("MFAリセットメールの送信登録に失敗しました: user_id=%s, error=%s", user.id, e)

    def confirm_reset(self, token: str, deadline: Optional[Deadline] = None) -> dict:
        if not token or not isinstance(token, str) or RESET_TOKEN_PATTERN.fullmatch(token) is None:
            raise InvalidOrExpiredTokenError()

        digest = hash_reset_token(token)
        now = self.clock.now()

        check_deadline(deadline, "reset_token_lookup")
        try:
            user = get_user_by_reset_token_digest(self.db, digest)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageError() from e
        if user is None or user.mfa_reset_token_expires is None or now > user.mfa_reset_token_expires:
            raise InvalidOrExpiredTokenError()
        user_id = user.id

        def clear_token() -> None:
            # 同じトークンの同時引き換えは1件のみ成功する
            if clear_mfa_reset_token_if_valid(self.db, user_id, digest, now) != 1:
                raise InvalidOrExpiredTokenError()

        self.devices.remove_all(user_id)
        if self.store.get(user_id) is not None:
            self.store.mark_disabled(user_id, require_enabled=False, within=clear_token, deadline=deadline)
        else:
            check_deadline(deadline, "reset_token_clear")
            try:
                clear_token()
                self.db.commit()
            except InvalidOrExpiredTokenError:
                self.db.rollback()
                raise
            except SQLAlchemyError as e:
                self.db.rollback()
                raise StorageError() from e

        # リセット前に発行されたセッションはすべて失効させる
        revoked = self.sessions.invalidate_user_sessions(user_id)

        logger.info("MFAリセットを完了しました: user_id=%s, revoked_sessions=%d", user_id, revoked)
        self.events.record(
            AuditEventType.MFA_RESET_CONFIRM,
            user_id,
            action="reset_confirm",
            details={"revoked_sessions": revoked},
            timestamp=now,
        )
        return {"ok": True}

    # ------------------------------------------------------------------
    # 管理者操作
    # ------------------------------------------------------------------
    def admin_unlock(self, actor: User, user_id: str, deadline: Optional[Deadline] = None) -> dict:
        RBACService.enforce_user_permission(actor, Permission.MFA_ADMIN_UNLOCK)

        self.store.update_lockout(user_id, self.lockout.admin_unlock, deadline=deadline)
        now = self.clock.now()

        logger.info("管理者がMFAロックを解除しました: actor_id=%s, user_id=%s", actor.id, user_id)
        self.events.record(
            AuditEventType.MFA_ADMIN_UNLOCK,
            actor.id,
            actor.role,
            action="admin_unlock",
            details={"subject_user_id": user_id},
            timestamp=now,
        )
        return {"ok": True, "user_id": user_id, "unlocked_by": actor.id, "unlocked_at": now}

    def admin_summary(self, actor: User) -> dict:
        RBACService.enforce_user_permission(actor, Permission.MFA_ADMIN_READ)
        summary = self.store.summary(self.clock.now())
        return {
            "total": summary.total,
            "enabled": summary.enabled,
            "pending": summary.pending,
            "locked": summary.locked,
        }
