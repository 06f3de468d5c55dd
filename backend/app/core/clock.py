# app/core/clock.py
"""
 - 現在時刻を提供する時計コラボレーター。
 - MFAエンジンは datetime.now() を直接呼ばず、必ずこのインターフェース経由で時刻を取得する。
   （テストでは時刻を自由に進められる FakeClock を差し込む）
"""

from datetime import datetime, timezone


class Clock:
    """時計インターフェース"""

    def now(self) -> datetime:
        raise NotImplementedError


class SystemClock(Clock):
    """システム時刻（UTC / タイムゾーン付き）を返す時計"""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


system_clock = SystemClock()
