"""
ロックアウト制御
  - 連続失敗回数が上限に達すると一定時間ロックする
  - locked_until が過去なら「ロック解除済み」と同じ扱い。期限後の最初のチェックで回数を0に戻す
  - 状態遷移はすべて純粋関数として定義し、ストアの原子的更新（update_lockout）に渡す
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional


@dataclass(frozen=True)
class LockoutState:
    failed_attempts: int = 0
    locked_until: Optional[datetime] = None

    def is_locked(self, now: datetime) -> bool:
        return self.locked_until is not None and now < self.locked_until


Transition = Callable[[LockoutState], LockoutState]

CLEARED = LockoutState(0, None)


class LockoutController:
    """ロックアウトの状態遷移"""

    def __init__(self, max_attempts: int = 5, lock_duration: timedelta = timedelta(minutes=15)):
        self.max_attempts = max_attempts
        self.lock_duration = lock_duration

    def on_failure(self, now: datetime) -> Transition:
        def transition(state: LockoutState) -> LockoutState:
            if state.is_locked(now):
                # ロック中の失敗は何も変えない（最初に locked_until を書いた側が勝つ）
                return state
            if state.locked_until is not None:
                state = CLEARED
            attempts = state.failed_attempts + 1
            if attempts >= self.max_attempts:
                return LockoutState(attempts, now + self.lock_duration)
            return LockoutState(attempts, None)

        return transition

    def release_if_expired(self, now: datetime) -> Transition:
        def transition(state: LockoutState) -> LockoutState:
            if state.locked_until is not None and now >= state.locked_until:
                return CLEARED
            return state

        return transition

    @staticmethod
    def on_success(state: LockoutState) -> LockoutState:
        return CLEARED

    @staticmethod
    def admin_unlock(state: LockoutState) -> LockoutState:
        return CLEARED
