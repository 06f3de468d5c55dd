# app/core/security/mfa/deadline.py
"""
呼び出し元から伝播される処理期限（デッドライン）
  - ストレージ・トークン・メール操作の直前に check() を呼び、期限切れなら DeadlineExceededError を送出する。
  - 期限切れの操作はコミットされないため、失敗カウンタも増えない。
"""

import time
from typing import Optional

from .errors import DeadlineExceededError


class Deadline:
    """単調時計ベースの処理期限"""

    def __init__(self, expires_at: float):
        self.expires_at = expires_at

    @classmethod
    def after(cls, seconds: float) -> "Deadline":
        return cls(time.monotonic() + seconds)

    def expired(self) -> bool:
        return time.monotonic() >= self.expires_at

    def check(self, operation: str = "") -> None:
        if self.expired():
            raise DeadlineExceededError(f"処理期限を超過しました: {operation}" if operation else None)


def check_deadline(deadline: Optional[Deadline], operation: str = "") -> None:
    """deadline が指定されている場合のみ期限を確認する"""
    if deadline is not None:
        deadline.check(operation)
