# app/db/types.py
"""
DB固有の型定義
"""

from datetime import datetime, timezone

from sqlalchemy import DateTime
from sqlalchemy.types import TypeDecorator


class UTCDateTime(TypeDecorator):
    """
    タイムゾーン付き datetime を naive UTC として保存し、読み出し時に UTC を付与する型。
    MySQL の DATETIME / SQLite はタイムゾーンを保持しないため、
    アプリ側では常に aware な UTC として扱えるようにする。
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("naive datetime は保存できません（UTCのタイムゾーンを付与してください）")
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, datetime) and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
