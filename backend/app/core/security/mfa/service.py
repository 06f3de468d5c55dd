"""
MFAサービス - ビジネスロジックの窓口
  - 暗号プリミティブ・ストア・検証器・ロックアウト・チャレンジ・リセットを組み立て、
    HTTP層から呼ばれる操作（setup / enable / ... / admin_summary）を提供する。
  - リクエストごとにDBセッションを受け取って生成する。暗号化キーはプロセス全体で1つ。
"""

from datetime import timedelta
from functools import lru_cache
from typing import Callable, Optional

from sqlalchemy.orm import Session

from app.core.clock import Clock, system_clock
from app.core.config import settings
from app.core.security.audit.service import AuditService
from app.core.security.encryption import EnvelopeCipher, build_cipher
from app.core.security.jwt import TokenSigner, token_signer
from app.core.security.password import verify_password
from app.core.security.session import SessionManager, session_manager
from app.models.user import User
from app.services.mailer import MailDispatcher, mail_dispatcher

from .auth_flow import AuthenticationFlow
from .backup_codes import BackupCodeVerifier
from .challenge import ChallengeTokenService, RedeemedChallengeRegistry
from .config import MFAConfig, mfa_config
from .crud import MFASecretStore
from .deadline import Deadline
from .enrollment import EnrollmentService
from .events import ClientInfo, MFAEventRecorder
from .lockout import LockoutController
from .recovery import RecoveryService
from .totp import TOTPVerifier
from .trusted_devices import TrustedDeviceRegistry


@lru_cache
def get_cipher() -> EnvelopeCipher:
    """プロセス全体で共有する暗号化器（起動時に1度だけ鍵を読み込む）"""
    return build_cipher(mfa_config.encryption_key.get_secret_value())


class MFAService:
    """MFAサービスクラス"""

    def __init__(
        self,
        db: Session,
        config: MFAConfig = mfa_config,
        clock: Clock = system_clock,
        cipher: Optional[EnvelopeCipher] = None,
        signer: TokenSigner = token_signer,
        sessions: SessionManager = session_manager,
        dispatcher: MailDispatcher = mail_dispatcher,
        password_checker: Callable[[str, Optional[str]], bool] = verify_password,
        client: Optional[ClientInfo] = None,
        challenge_registry: Optional[RedeemedChallengeRegistry] = None,
        frontend_url: str = settings.frontend_url,
    ):
        self.db = db
        self.config = config
        self.clock = clock
        cipher = cipher or get_cipher()

        self.store = MFASecretStore(db, clock=clock, retry_limit=config.storage_retry_limit)
        self.events = MFAEventRecorder(AuditService(db), client)
        self.devices = TrustedDeviceRegistry(
            db, clock=clock, trust_days=config.trusted_device_days, max_devices=config.max_trusted_devices
        )
        self.lockout = LockoutController(
            max_attempts=config.max_attempts,
            lock_duration=timedelta(minutes=config.lock_duration_minutes),
        )
        totp = TOTPVerifier(cipher, digits=config.totp_digits, period=config.totp_period)
        backup_codes = BackupCodeVerifier(
            self.store,
            pepper=config.get_backup_code_pepper(),
            warning_threshold=config.backup_code_warning_threshold,
        )
        challenges = ChallengeTokenService(
            signer, clock=clock, ttl_seconds=config.challenge_ttl_seconds, registry=challenge_registry
        )

        self.enrollment = EnrollmentService(
            self.store, cipher, totp, config, password_checker, self.events, self.devices, clock=clock
        )
        self.auth_flow = AuthenticationFlow(
            db, self.store, challenges, totp, backup_codes, self.lockout,
            sessions, password_checker, self.events, config, self.devices, clock=clock,
        )
        self.recovery = RecoveryService(
            db, self.store, self.lockout, password_checker, dispatcher,
            self.events, config, frontend_url, sessions, self.devices, clock=clock,
        )

    # --- 登録 ---
    def setup(self, user: User, deadline: Optional[Deadline] = None) -> dict:
        return self.enrollment.setup(user, deadline=deadline)

    def enable(self, user: User, code: str, deadline: Optional[Deadline] = None) -> dict:
        return self.enrollment.enable(user, code, deadline=deadline)

    def disable(self, user: User, password: str, deadline: Optional[Deadline] = None) -> dict:
        return self.enrollment.disable(user, password, deadline=deadline)

    def regenerate_backup_codes(self, user: User, password: str, deadline: Optional[Deadline] = None) -> dict:
        return self.enrollment.regenerate_backup_codes(user, password, deadline=deadline)

    def get_status(self, user: User) -> dict:
        return self.enrollment.get_status(user)

    # --- 信頼済みデバイス ---
    def list_trusted_devices(self, user: User) -> list[dict]:
        return self.enrollment.list_trusted_devices(user)

    def remove_trusted_device(self, user: User, device_id: str) -> dict:
        return self.enrollment.remove_trusted_device(user, device_id)

    def remove_all_trusted_devices(self, user: User) -> dict:
        return self.enrollment.remove_all_trusted_devices(user)

    # --- ログイン ---
    def begin_login(self, email: str, password: str, deadline: Optional[Deadline] = None) -> dict:
        return self.auth_flow.begin_login(email, password, deadline=deadline)

    def verify_totp(
        self, code: str, challenge_token: str, trust_device: bool = False, deadline: Optional[Deadline] = None
    ) -> dict:
        return self.auth_flow.verify_totp(code, challenge_token, trust_device=trust_device, deadline=deadline)

    def verify_backup(
        self, code: str, challenge_token: str, trust_device: bool = False, deadline: Optional[Deadline] = None
    ) -> dict:
        return self.auth_flow.verify_backup(code, challenge_token, trust_device=trust_device, deadline=deadline)

    # --- リセット・管理 ---
    def request_reset(self, user: User, password: str, deadline: Optional[Deadline] = None) -> dict:
        return self.recovery.request_reset(user, password, deadline=deadline)

    def confirm_reset(self, token: str, deadline: Optional[Deadline] = None) -> dict:
        return self.recovery.confirm_reset(token, deadline=deadline)

    def admin_unlock(self, actor: User, user_id: str, deadline: Optional[Deadline] = None) -> dict:
        return self.recovery.admin_unlock(actor, user_id, deadline=deadline)

    def admin_summary(self, actor: User) -> dict:
        return self.recovery.admin_summary(actor)
