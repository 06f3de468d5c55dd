"""
認証ステートマシン（二段階ログイン）

  [パスワード認証] ─ MFA無効 ─→ [セッション発行]（必須ロールなら mfa_setup_required 付き）
        │ MFA有効
        ├─ ロック中 ─→ [Locked]
        ├─ 信頼済みデバイス ─→ [セッション発行]
        ▼
  [チャレンジトークン発行] ……（クライアントがコードとトークンを提示）
        ▼
  [形式チェック] → [チャレンジ引き換え] → [MFA有効か] → [ロック確認（期限切れなら解除）]
        → [検証] ─ 失敗 → 失敗回数+1（今回でロックしたら Locked、それ以外は InvalidCode）
        │ 成功
        ▼
  [失敗回数リセット・last_used_at 更新（バックアップコードは同じ書き込みで消費）]
        → [trust_device 指定時はデバイスを信頼済みに登録] → [セッション発行]
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.clock import Clock, system_clock
from app.core.security.audit.models import AuditEventType
from app.core.security.session import SessionManager
from app.crud.user import get_user_by_email, get_user_by_id, touch_last_login
from app.models.mfa_secret import MFASecret
from app.models.user import User

from .backup_codes import BackupCodeVerifier, is_valid_backup_code_format
from .challenge import ChallengeTokenService
from .config import MFAConfig
from .crud import MFASecretStore
from .deadline import Deadline, check_deadline
from .errors import (
    ChallengeInvalidError,
    InvalidCodeError,
    InvalidCredentialsError,
    InvalidFormatError,
    LockedError,
    MFAError,
    NotEnabledError,
    StorageError,
)
from .events import MFAEventRecorder
from .lockout import LockoutController, LockoutState
from .totp import TOTPVerifier, is_valid_totp_format
from .trusted_devices import TrustedDeviceRegistry

logger = logging.getLogger(__name__)

PasswordChecker = Callable[[str, Optional[str]], bool]


class AuthenticationFlow:
    """パスワード認証から二要素目の検証、セッション発行までを制御する"""

    def __init__(
        self,
        db: Session,
        store: MFASecretStore,
        challenges: ChallengeTokenService,
        totp: TOTPVerifier,
        backup_codes: BackupCodeVerifier,
        lockout: LockoutController,
        sessions: SessionManager,
        password_checker: PasswordChecker,
        events: MFAEventRecorder,
        config: MFAConfig,
        devices: TrustedDeviceRegistry,
        clock: Clock = system_clock,
    ):
        self.db = db
        self.store = store
        self.challenges = challenges
        self.totp = totp
        self.backup_codes = backup_codes
        self.lockout = lockout
        self.sessions = sessions
        self.password_checker = password_checker
        self.events = events
        self.config = config
        self.devices = devices
        self.clock = clock

    # ------------------------------------------------------------------
    # ステップ1: パスワード認証
    # ------------------------------------------------------------------
    def begin_login(self, email: str, password: str, deadline: Optional[Deadline] = None) -> dict:
        check_deadline(deadline, "login")
        user = get_user_by_email(self.db, email or "")

        # ユーザー不在でもダミーハッシュと照合し、応答を区別できないようにする
        password_ok = self.password_checker(password or "", user.password_hash if user else None)

        if user is None or not user.is_active or not password_ok:
            reason = "user_not_found" if user is None else ("inactive" if not user.is_active else "invalid_password")
            logger.warning("ログイン失敗: reason=%s, user_id=%s", reason, user.id if user else None)
            self.events.record(
                AuditEventType.AUTH_LOGIN_FAILURE,
                user.id if user else None,
                user.role if user else None,
                success=False,
                action="login",
                details={"reason": reason},
            )
            raise InvalidCredentialsError()

        record = self.store.get(user.id)
        if record is None or not record.enabled:
            setup_required = user.role in self.config.enforced_roles
            if setup_required:
                logger.info("MFA必須ロールのユーザーがMFA未設定でログインしました: user_id=%s", user.id)
            return self._issue_session(user, mfa_verified=False, setup_required=setup_required)

        now = self.clock.now()
        self._ensure_not_locked(user, record, now, deadline)

        check_deadline(deadline, "trusted_device_lookup")
        if self.devices.is_trusted(user.id, self.events.client):
            logger.info("信頼済みデバイスのため二要素目を省略しました: user_id=%s", user.id)
            return self._issue_session(user, mfa_verified=True, trusted_device=True)

        challenge_token = self.challenges.issue(user.id, deadline=deadline)
        logger.info("二要素目の認証を要求しました: user_id=%s", user.id)
        self.events.record(
            AuditEventType.AUTH_LOGIN_MFA_REQUIRED, user.id, user.role, success=True, action="login"
        )
        return {
            "mfa_required": True,
            "challenge_token": challenge_token,
            "expires_in": self.config.challenge_ttl_seconds,
        }

    # ------------------------------------------------------------------
    # ステップ2: 二要素目
    # ------------------------------------------------------------------
    def verify_totp(
        self, code: str, challenge_token: str, trust_device: bool = False, deadline: Optional[Deadline] = None
    ) -> dict:
        if not is_valid_totp_format(code):
            raise InvalidFormatError("認証コードは6桁の数字で入力してください。")

        user, record, now = self._prepare_second_factor(challenge_token, deadline)

        if not self.totp.verify(record.secret_ct, code, now, self.config.totp_window_login, user.id):
            raise self._record_failure(user, now, "totp", deadline)

        self.store.update_lockout(user.id, self.lockout.on_success, verified_at=now, deadline=deadline)
        self.events.record(
            AuditEventType.MFA_VERIFY_SUCCESS, user.id, user.role, action="verify_totp", timestamp=now
        )
        trusted = self._trust_device(user, now) if trust_device else False
        return self._issue_session(user, mfa_verified=True, trusted_device=trusted)

    def verify_backup(
        self, code: str, challenge_token: str, trust_device: bool = False, deadline: Optional[Deadline] = None
    ) -> dict:
        if not is_valid_backup_code_format(code):
            raise InvalidFormatError("バックアップコードは XXXX-XXXX 形式で入力してください。")

        user, record, now = self._prepare_second_factor(challenge_token, deadline)

        result = self.backup_codes.verify_and_consume(user.id, code, verified_at=now, deadline=deadline)
        if not result.accepted:
            raise self._record_failure(user, now, "backup_code", deadline)

        if result.warning:
            logger.info("バックアップコードの残りが少なくなっています: user_id=%s, remaining=%d", user.id, result.remaining)
        self.events.record(
            AuditEventType.MFA_BACKUP_CODE_USED,
            user.id,
            user.role,
            action="verify_backup",
            details={"remaining": result.remaining},
            timestamp=now,
        )

        trusted = self._trust_device(user, now) if trust_device else False
        response = self._issue_session(user, mfa_verified=True, trusted_device=trusted)
        response["remaining"] = result.remaining
        response["warning"] = result.warning
        return response

    # ------------------------------------------------------------------
    # 内部処理
    # ------------------------------------------------------------------
    def _prepare_second_factor(
        self, challenge_token: str, deadline: Optional[Deadline]
    ) -> tuple[User, MFASecret, datetime]:
        claims = self.challenges.redeem(challenge_token, deadline=deadline)

        user = get_user_by_id(self.db, claims.user_id)
        if user is None or not user.is_active:
            raise ChallengeInvalidError()

        record = self.store.get(user.id)
        if record is None or not record.enabled:
            raise NotEnabledError()

        now = self.clock.now()
        self._ensure_not_locked(user, record, now, deadline)
        return user, record, now

    def _ensure_not_locked(self, user: User, record: MFASecret, now: datetime, deadline: Optional[Deadline]) -> None:
        """ロック中なら LockedError。期限切れのロックはここで解除し、失敗回数を0に戻す"""
        state = LockoutState(record.failed_attempts or 0, record.locked_until)
        if state.is_locked(now):
            logger.info("MFAロック中のためリクエストを拒否しました: user_id=%s", user.id)
            raise LockedError(locked_until=state.locked_until)
        if state.locked_until is not None:
            state = self.store.update_lockout(user.id, self.lockout.release_if_expired(now), deadline=deadline)
            logger.info("MFAロックの期限が切れたため解除しました: user_id=%s", user.id)
            if state.is_locked(now):
                raise LockedError(locked_until=state.locked_until)

    def _record_failure(self, user: User, now: datetime, method: str, deadline: Optional[Deadline]) -> MFAError:
        """失敗を記録し、呼び出し元が送出するエラーを返す"""
        state = self.store.update_lockout(user.id, self.lockout.on_failure(now), deadline=deadline)
        logger.warning(
            "二要素目の検証に失敗しました: user_id=%s, method=%s, failed_attempts=%d",
            user.id, method, state.failed_attempts,
        )
        self.events.record(
            AuditEventType.MFA_VERIFY_FAILURE,
            user.id,
            user.role,
            success=False,
            action=f"verify_{method}",
            details={"failed_attempts": state.failed_attempts},
            timestamp=now,
        )
        if state.is_locked(now):
            self.events.record(
                AuditEventType.MFA_LOCKED,
                user.id,
                user.role,
                success=False,
                action="lock",
                details={"locked_until": state.locked_until.isoformat()},
                timestamp=now,
            )
            return LockedError(locked_until=state.locked_until)
        return InvalidCodeError()

    def _trust_device(self, user: User, now: datetime) -> bool:
        """検証成功後のデバイス登録。失敗してもログインは成功させる"""
        try:
            device = self.devices.trust(user.id, self.events.client)
        except StorageError:
            logger.warning("デバイスを信頼済みに登録できませんでした: user_id=%s", user.id)
            return False
        if device is None:
            logger.info("User-Agent がないためデバイスを信頼済みに登録しませんでした: user_id=%s", user.id)
            return False
        self.events.record(
            AuditEventType.MFA_DEVICE_TRUSTED,
            user.id,
            user.role,
            action="trust_device",
            details={"device_name": device.device_name, "trusted_until": device.trusted_until.isoformat()},
            timestamp=now,
        )
        return True

    def _issue_session(
        self, user: User, mfa_verified: bool, trusted_device: bool = False, setup_required: bool = False
    ) -> dict:
        tokens = self.sessions.issue_session(
            user,
            mfa_verified=mfa_verified,
            mfa_setup_required=setup_required,
            metadata={
                "ip_address": self.events.client.ip_address,
                "user_agent": self.events.client.user_agent,
            },
        )
        try:
            touch_last_login(self.db, user, self.clock.now())
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning(f"最終ログイン日時の更新に失敗: user_id={user.id}, error={e}")

        self.events.record(
            AuditEventType.AUTH_LOGIN_SUCCESS,
            user.id,
            user.role,
            action="login",
            details={"mfa_verified": mfa_verified, "trusted_device": trusted_device},
            session_id=tokens.session_id,
        )
        response = tokens.model_dump()
        response["mfa_required"] = False
        response["mfa_setup_required"] = setup_required
        response["trusted_device"] = trusted_device
        return response
