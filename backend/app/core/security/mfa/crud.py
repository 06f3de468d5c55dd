"""
MFAレコード（mfa_secrets）の永続化を担うストア
  - 1ユーザーにつき1レコードのみ。MFAレコードへの書き込みはすべてこのストアを経由する。
  - 更新は「行ロック付きSELECT → 変更 → version列付きUPDATE」の1ループで行い、
    StaleDataError / 一時的な OperationalError はロールバックして最大 retry_limit 回まで再試行する。
  - ロックアウトとバックアップコード消費は原子的プリミティブ（update_lockout / consume_backup_code）として提供する。
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable, Optional, TypeVar

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.core.clock import Clock, system_clock
from app.models.mfa_secret import MFASecret

from .crypto import constant_time_equals
from .deadline import Deadline, check_deadline
from .errors import AlreadyEnabledError, InvalidCodeError, MFAError, NotEnabledError, NotEnrolledError, StorageError
from .lockout import LockoutState, Transition

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class BackupCodeConsumption:
    consumed: bool
    remaining: int


@dataclass(frozen=True)
class MFASummary:
    total: int
    enabled: int
    pending: int
    locked: int


def _canonical_digests(digests: Iterable[str]) -> list[str]:
    return sorted(set(digests))


def find_digest(digests: list[str], digest: str) -> Optional[int]:
    """全要素を定数時間で比較し、一致した位置を返す（途中で打ち切らない）"""
    match = None
    for index, candidate in enumerate(digests):
        if constant_time_equals(candidate, digest) and match is None:
            match = index
    return match


class MFASecretStore:
    """MFAレコードのストア"""

    def __init__(self, db: Session, clock: Clock = system_clock, retry_limit: int = 3):
        self.db = db
        self.clock = clock
        self.retry_limit = retry_limit

    # ------------------------------------------------------------------
    # 読み取り
    # ------------------------------------------------------------------
    def get(self, user_id: str) -> Optional[MFASecret]:
        try:
            return self.db.get(MFASecret, user_id, populate_existing=True)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("MFAレコードの取得に失敗しました: user_id=%s, error=%s", user_id, e)
            raise StorageError() from e

    def require(self, user_id: str) -> MFASecret:
        record = self.get(user_id)
        if record is None:
            raise NotEnrolledError()
        return record

    def summary(self, now: Optional[datetime] = None) -> MFASummary:
        """管理画面向けの集計"""
        now = now or self.clock.now()
        try:
            total = self.db.query(func.count(MFASecret.user_id)).scalar() or 0
            enabled = (
                self.db.query(func.count(MFASecret.user_id)).filter(MFASecret.enabled.is_(True)).scalar() or 0
            )
            locked = (
                self.db.query(func.count(MFASecret.user_id))
                .filter(MFASecret.locked_until.isnot(None), MFASecret.locked_until > now)
                .scalar()
                or 0
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("MFA集計に失敗しました: %s", e)
            raise StorageError() from e
        return MFASummary(total=total, enabled=enabled, pending=total - enabled, locked=locked)

    # ------------------------------------------------------------------
    # 更新ループ
    # ------------------------------------------------------------------
    def _mutate(
        self,
        user_id: str,
        fn: Callable[[MFASecret], T],
        deadline: Optional[Deadline] = None,
    ) -> T:
        """行ロック + version列による楽観的更新。fn は変更を加えて結果を返す"""
        last_error: Optional[Exception] = None
        for attempt in range(1, self.retry_limit + 1):
            check_deadline(deadline, "mfa_store")
            try:
                record = self.db.get(MFASecret, user_id, populate_existing=True, with_for_update=True)
                if record is None:
                    self.db.rollback()
                    raise NotEnrolledError()
                result = fn(record)
                record.updated_at = self.clock.now()
                self.db.commit()
                return result
            except MFAError:
                self.db.rollback()
                raise
            except (StaleDataError, OperationalError) as e:
                self.db.rollback()
                last_error = e
                logger.warning(
                    "MFAレコードの更新が競合しました（%d/%d回目）: user_id=%s", attempt, self.retry_limit, user_id
                )
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error("MFAレコードの更新に失敗しました: user_id=%s, error=%s", user_id, e)
                raise StorageError() from e

        logger.error("MFAレコードの更新がリトライ上限に達しました: user_id=%s, error=%s", user_id, last_error)
        raise StorageError() from last_error

    # ------------------------------------------------------------------
    # ライフサイクル
    # ------------------------------------------------------------------
    def provision(
        self,
        user_id: str,
        secret_ct: bytes,
        digests: Iterable[str],
        deadline: Optional[Deadline] = None,
    ) -> None:
        """
        保留状態（enabled=False）のレコードを作成、または既存の保留レコードを置き換える。
        有効化済みの場合は AlreadyEnabledError。
        """
        codes = _canonical_digests(digests)

        def replace(record: MFASecret) -> None:
            if record.enabled:
                raise AlreadyEnabledError()
            record.secret_ct = secret_ct
            record.backup_codes = codes
            record.enabled_at = None
            record.last_used_at = None
            record.failed_attempts = 0
            record.locked_until = None

        if self.get(user_id) is not None:
            self._mutate(user_id, replace, deadline)
            return

        check_deadline(deadline, "mfa_store")
        now = self.clock.now()
        try:
            self.db.add(
                MFASecret(
                    user_id=user_id,
                    secret_ct=secret_ct,
                    backup_codes=codes,
                    enabled=False,
                    failed_attempts=0,
                    created_at=now,
                    updated_at=now,
                )
            )
            self.db.commit()
        except IntegrityError:
            # 同時に別リクエストが作成した場合は置き換えとして扱う
            self.db.rollback()
            logger.info("MFAレコードが同時に作成されたため置き換えます: user_id=%s", user_id)
            self._mutate(user_id, replace, deadline)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("MFAレコードの作成に失敗しました: user_id=%s, error=%s", user_id, e)
            raise StorageError() from e

    def mark_enabled(
        self,
        user_id: str,
        expected_secret_ct: bytes,
        enabled_at: datetime,
        deadline: Optional[Deadline] = None,
    ) -> datetime:
        """検証に使った秘密鍵のまま保留状態であれば有効化する"""

        def enable(record: MFASecret) -> datetime:
            if record.enabled:
                raise AlreadyEnabledError()
            if record.secret_ct != expected_secret_ct:
                # 検証後に setup が走り秘密鍵が差し替わった
                raise InvalidCodeError()
            record.enabled = True
            record.enabled_at = enabled_at
            record.failed_attempts = 0
            record.locked_until = None
            return enabled_at

        return self._mutate(user_id, enable, deadline)

    def mark_disabled(
        self,
        user_id: str,
        require_enabled: bool = True,
        within: Optional[Callable[[], None]] = None,
        deadline: Optional[Deadline] = None,
    ) -> None:
        """
        MFAを無効化する。暗号化済みの秘密鍵は残すが使用されない。
        within は同一トランザクション内で実行する追加処理（リセットトークンの消去など）。
        """

        def disable(record: MFASecret) -> None:
            if require_enabled and not record.enabled:
                raise NotEnabledError()
            if within is not None:
                within()
            record.enabled = False
            record.enabled_at = None
            record.failed_attempts = 0
            record.locked_until = None

        self._mutate(user_id, disable, deadline)

    def replace_backup_codes(
        self,
        user_id: str,
        digests: Iterable[str],
        deadline: Optional[Deadline] = None,
    ) -> int:
        codes = _canonical_digests(digests)

        def replace(record: MFASecret) -> int:
            if not record.enabled:
                raise NotEnabledError()
            record.backup_codes = codes
            return len(codes)

        return self._mutate(user_id, replace, deadline)

    def delete(self, user_id: str) -> bool:
        record = self.get(user_id)
        if record is None:
            return False
        try:
            self.db.delete(record)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("MFAレコードの削除に失敗しました: user_id=%s, error=%s", user_id, e)
            raise StorageError() from e
        return True

    # ------------------------------------------------------------------
    # 原子的プリミティブ
    # ------------------------------------------------------------------
    def consume_backup_code(
        self,
        user_id: str,
        digest: str,
        verified_at: Optional[datetime] = None,
        deadline: Optional[Deadline] = None,
    ) -> BackupCodeConsumption:
        """
        digest が存在する場合のみ取り除き、残数を返す。
        verified_at を指定すると、同じ書き込みで検証成功（カウンタ初期化・last_used_at更新）も記録する。
        """

        def consume(record: MFASecret) -> BackupCodeConsumption:
            codes = list(record.backup_codes or [])
            match = find_digest(codes, digest)
            if match is None:
                return BackupCodeConsumption(consumed=False, remaining=len(codes))
            del codes[match]
            record.backup_codes = _canonical_digests(codes)
            if verified_at is not None:
                record.failed_attempts = 0
                record.locked_until = None
                record.last_used_at = verified_at
            return BackupCodeConsumption(consumed=True, remaining=len(codes))

        return self._mutate(user_id, consume, deadline)

    def update_lockout(
        self,
        user_id: str,
        transition: Transition,
        verified_at: Optional[datetime] = None,
        deadline: Optional[Deadline] = None,
    ) -> LockoutState:
        """ロックアウト状態に純粋な遷移関数を適用し、新しい状態を返す"""

        def apply(record: MFASecret) -> LockoutState:
            current = LockoutState(record.failed_attempts or 0, record.locked_until)
            updated = transition(current)
            record.failed_attempts = updated.failed_attempts
            record.locked_until = updated.locked_until
            if verified_at is not None:
                record.last_used_at = verified_at
            return updated

        return self._mutate(user_id, apply, deadline)
