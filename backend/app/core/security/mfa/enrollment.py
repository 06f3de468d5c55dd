"""
MFA登録（エンロールメント）サービス
  - setup: 秘密鍵とバックアップコードを生成し、保留状態（enabled=False）のレコードを作成・置換する
  - enable: 保留中の秘密鍵に対するTOTPコードを検証し、有効化する
  - disable / regenerate_backup_codes: 現在のパスワードを確認したうえで実行する
  - get_status: MFAの状態を返す（秘密鍵・コードは返さない）
  - 信頼済みデバイスの一覧・削除
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from app.core.clock import Clock, system_clock
from app.core.security.audit.models import AuditEventType
from app.core.security.encryption import EnvelopeCipher
from app.models.user import User
from app.services.qr_code import QRCodeService, build_otpauth_uri

from .config import MFAConfig
from .crud import MFASecretStore
from .crypto import hash_backup_code, random_backup_codes, random_secret
from .deadline import Deadline, check_deadline
from .errors import (
    AlreadyEnabledError,
    DeviceNotFoundError,
    InvalidCodeError,
    InvalidFormatError,
    NotEnabledError,
    WrongPasswordError,
)
from .events import MFAEventRecorder
from .lockout import LockoutState
from .totp import TOTPVerifier, is_valid_totp_format
from .trusted_devices import TrustedDeviceRegistry

logger = logging.getLogger(__name__)

PasswordChecker = Callable[[str, Optional[str]], bool]


class EnrollmentService:
    """MFA登録ライフサイクル"""

    def __init__(
        self,
        store: MFASecretStore,
        cipher: EnvelopeCipher,
        totp: TOTPVerifier,
        config: MFAConfig,
        password_checker: PasswordChecker,
        events: MFAEventRecorder,
        devices: TrustedDeviceRegistry,
        clock: Clock = system_clock,
    ):
        self.store = store
        self.cipher = cipher
        self.totp = totp
        self.config = config
        self.password_checker = password_checker
        self.events = events
        self.devices = devices
        self.clock = clock

    def _hash_codes(self, codes: list[str]) -> list[str]:
        pepper = self.config.get_backup_code_pepper()
        return [hash_backup_code(code, pepper) for code in codes]

    def _require_password(self, user: User, password: str) -> None:
        if not self.password_checker(password or "", user.password_hash):
            raise WrongPasswordError()

    def setup(self, user: User, deadline: Optional[Deadline] = None) -> dict:
        """MFAの初期設定（秘密鍵・QRコード・バックアップコードの発行）"""
        check_deadline(deadline, "mfa_setup")
        existing = self.store.get(user.id)
        if existing is not None and existing.enabled:
            raise AlreadyEnabledError()

        secret = random_secret()
        backup_codes = random_backup_codes(self.config.backup_code_count)
        secret_ct = self.cipher.encrypt(secret.encode("ascii"), associated_data=user.id.encode("utf-8"))

        self.store.provision(user.id, secret_ct, self._hash_codes(backup_codes), deadline=deadline)

        otpauth_uri = build_otpauth_uri(
            secret,
            user.email,
            self.config.issuer,
            digits=self.config.totp_digits,
            period=self.config.totp_period,
        )
        qr_code = QRCodeService.generate_qr_data_url(otpauth_uri)

        logger.info("MFA設定を開始しました: user_id=%s", user.id)
        self.events.record(AuditEventType.MFA_SETUP, user.id, user.role, action="setup")

        return {
            "secret": secret,
            "otpauth_uri": otpauth_uri,
            "qr_code": qr_code,
            "backup_codes": backup_codes,
        }

    def enable(self, user: User, code: str, deadline: Optional[Deadline] = None) -> dict:
        """保留中のMFAを有効化（登録用の広い許容ウィンドウで検証）"""
        if not is_valid_totp_format(code):
            raise InvalidFormatError("認証コードは6桁の数字で入力してください。")

        record = self.store.require(user.id)
        if record.enabled:
            raise AlreadyEnabledError()

        now = self.clock.now()
        secret_ct = record.secret_ct
        if not self.totp.verify(secret_ct, code, now, self.config.totp_window_enroll, user.id):
            logger.info("MFA有効化のコード検証に失敗しました: user_id=%s", user.id)
            self.events.record(AuditEventType.MFA_ENABLE, user.id, user.role, success=False, action="enable")
            raise InvalidCodeError()

        enabled_at = self.store.mark_enabled(user.id, secret_ct, now, deadline=deadline)

        logger.info("MFAを有効化しました: user_id=%s", user.id)
        self.events.record(AuditEventType.MFA_ENABLE, user.id, user.role, action="enable", timestamp=now)
        return {"enabled": True, "enabled_at": enabled_at}

    def disable(self, user: User, password: str, deadline: Optional[Deadline] = None) -> dict:
        """MFAを無効化（暗号化済み秘密鍵は保持するが使用しない）"""
        self._require_password(user, password)
        record = self.store.require(user.id)
        if not record.enabled:
            raise NotEnabledError()

        # 信頼済みデバイスは無効化より先に削除する
        self.devices.remove_all(user.id)
        self.store.mark_disabled(user.id, deadline=deadline)

        logger.info("MFAを無効化しました: user_id=%s", user.id)
        self.events.record(AuditEventType.MFA_DISABLE, user.id, user.role, action="disable")
        return {"enabled": False}

    def regenerate_backup_codes(self, user: User, password: str, deadline: Optional[Deadline] = None) -> dict:
        """バックアップコードを再生成（旧コードはすべて無効になる）"""
        self._require_password(user, password)
        record = self.store.require(user.id)
        if not record.enabled:
            raise NotEnabledError()

        backup_codes = random_backup_codes(self.config.backup_code_count)
        self.store.replace_backup_codes(user.id, self._hash_codes(backup_codes), deadline=deadline)

        logger.info("バックアップコードを再生成しました: user_id=%s", user.id)
        self.events.record(
            AuditEventType.MFA_BACKUP_CODES_REGENERATE,
            user.id,
            user.role,
            action="regenerate",
            details={"count": len(backup_codes)},
        )
        return {"backup_codes": backup_codes}

    def get_status(self, user: User) -> dict:
        """MFAの状態を取得（期限切れのロックは解除済みとして扱う）"""
        required = user.role in self.config.enforced_roles
        record = self.store.get(user.id)
        if record is None:
            return {
                "enabled": False,
                "required": required,
                "enabled_at": None,
                "last_used_at": None,
                "backup_codes_remaining": 0,
                "locked": False,
                "locked_until": None,
                "failed_attempts": 0,
            }

        now: datetime = self.clock.now()
        state = LockoutState(record.failed_attempts or 0, record.locked_until)
        if state.locked_until is not None and not state.is_locked(now):
            state = LockoutState(0, None)

        return {
            "enabled": bool(record.enabled),
            "required": required,
            "enabled_at": record.enabled_at,
            "last_used_at": record.last_used_at,
            "backup_codes_remaining": record.backup_codes_remaining,
            "locked": state.is_locked(now),
            "locked_until": state.locked_until,
            "failed_attempts": state.failed_attempts,
        }

    # --- 信頼済みデバイス ---
    def list_trusted_devices(self, user: User) -> list[dict]:
        now = self.clock.now()
        return [
            {
                "id": device.id,
                "device_name": device.device_name,
                "ip_address": device.ip_address,
                "trusted_until": device.trusted_until,
                "last_used_at": device.last_used_at,
                "created_at": device.created_at,
                "active": device.trusted_until > now,
            }
            for device in self.devices.list_devices(user.id)
        ]

    def remove_trusted_device(self, user: User, device_id: str) -> dict:
        if not self.devices.remove(user.id, device_id):
            raise DeviceNotFoundError()
        self.events.record(
            AuditEventType.MFA_DEVICE_REMOVED,
            user.id,
            user.role,
            action="remove_device",
            details={"device_id": device_id},
        )
        return {"ok": True, "removed": 1}

    def remove_all_trusted_devices(self, user: User) -> dict:
        removed = self.devices.remove_all(user.id)
        self.events.record(
            AuditEventType.MFA_DEVICE_REMOVED,
            user.id,
            user.role,
            action="remove_all_devices",
            details={"removed": removed},
        )
        return {"ok": True, "removed": removed}
