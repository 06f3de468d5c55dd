"""
バックアップコード検証
  - 入力は XXXX-XXXX（16進・大文字小文字を問わない）。大文字に正規化してからハッシュ化する。
  - 検証と消費はストアの consume_backup_code による1回の書き込みで行う。
"""

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .crud import MFASecretStore
from .crypto import hash_backup_code, normalize_backup_code
from .deadline import Deadline

BACKUP_CODE_PATTERN = re.compile(r"[A-Fa-f0-9]{4}-[A-Fa-f0-9]{4}")


def is_valid_backup_code_format(code: str) -> bool:
    return isinstance(code, str) and BACKUP_CODE_PATTERN.fullmatch(code) is not None


@dataclass(frozen=True)
class BackupCodeResult:
    accepted: bool
    remaining: int
    warning: Optional[str] = None


class BackupCodeVerifier:
    """バックアップコードの検証と消費"""

    def __init__(self, store: MFASecretStore, pepper: Optional[bytes] = None, warning_threshold: int = 3):
        self.store = store
        self.pepper = pepper
        self.warning_threshold = warning_threshold

    def digest(self, code: str) -> str:
        return hash_backup_code(normalize_backup_code(code), self.pepper)

    def verify_and_consume(
        self,
        user_id: str,
        code: str,
        verified_at: Optional[datetime] = None,
        deadline: Optional[Deadline] = None,
    ) -> BackupCodeResult:
        """
        コードが登録済みなら取り除いて受理する。
        verified_at を渡すと、同じ書き込みで失敗回数の初期化と last_used_at の更新も行う。
        """
        if not is_valid_backup_code_format(code):
            return BackupCodeResult(accepted=False, remaining=0)

        consumption = self.store.consume_backup_code(
            user_id, self.digest(code), verified_at=verified_at, deadline=deadline
        )
        if not consumption.consumed:
            return BackupCodeResult(accepted=False, remaining=consumption.remaining)

        warning = None
        if consumption.remaining < self.warning_threshold:
            warning = f"バックアップコードの残りが{consumption.remaining}個です。再生成をおすすめします。"
        return BackupCodeResult(accepted=True, remaining=consumption.remaining, warning=warning)
