"""
信頼済みデバイス
  - 二要素目の検証に成功した端末を一定期間信頼し、次回以降のログインでチャレンジを省略する。
  - 端末の識別は User-Agent と Accept-Language から作るフィンガープリントで行う（IPアドレスは変わりやすいため使わない）。
  - User-Agent が取れないリクエストは信頼の登録も照合も行わない。
"""

import hashlib
import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.clock import Clock, system_clock
from app.models.trusted_device import TrustedDevice

from .errors import StorageError
from .events import ClientInfo

logger = logging.getLogger(__name__)

_BROWSERS = (("Edg/", "Edge"), ("Chrome/", "Chrome"), ("Firefox/", "Firefox"), ("Safari/", "Safari"))
_SYSTEMS = (
    ("Windows", "Windows"),
    ("iPhone", "iOS"),
    ("iPad", "iOS"),
    ("Mac OS X", "macOS"),
    ("Android", "Android"),
    ("Linux", "Linux"),
)


def device_fingerprint(client: ClientInfo) -> Optional[str]:
    if not client.user_agent:
        return None
    data = f"{client.user_agent}|{client.accept_language or ''}"
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def describe_device(user_agent: Optional[str]) -> str:
    """User-Agent から "Chrome on Windows" のような表示名を作る"""
    ua = user_agent or ""
    browser = next((name for marker, name in _BROWSERS if marker in ua), "Unknown")
    system = next((name for marker, name in _SYSTEMS if marker in ua), "Unknown")
    return f"{browser} on {system}"


class TrustedDeviceRegistry:
    """信頼済みデバイスの登録・照合・削除"""

    def __init__(self, db: Session, clock: Clock = system_clock, trust_days: int = 30, max_devices: int = 5):
        self.db = db
        self.clock = clock
        self.trust_period = timedelta(days=trust_days)
        self.max_devices = max_devices

    def _find(self, user_id: str, fingerprint: str) -> Optional[TrustedDevice]:
        return (
            self.db.query(TrustedDevice)
            .filter(TrustedDevice.user_id == user_id, TrustedDevice.device_fingerprint == fingerprint)
            .first()
        )

    def is_trusted(self, user_id: str, client: ClientInfo) -> bool:
        """信頼期間内の端末なら True（最終使用日時も更新する）"""
        fingerprint = device_fingerprint(client)
        if fingerprint is None:
            return False
        now = self.clock.now()
        try:
            device = self._find(user_id, fingerprint)
            if device is None or device.trusted_until <= now:
                return False
            device.last_used_at = now
            device.updated_at = now
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("信頼済みデバイスの照合に失敗しました: user_id=%s, error=%s", user_id, e)
            raise StorageError() from e
        return True

    def trust(self, user_id: str, client: ClientInfo) -> Optional[TrustedDevice]:
        """端末を信頼済みとして登録（既存なら期限を延長）。識別できない端末は None"""
        fingerprint = device_fingerprint(client)
        if fingerprint is None:
            return None
        now = self.clock.now()
        try:
            device = self._find(user_id, fingerprint)
            if device is None:
                device = TrustedDevice(user_id=user_id, device_fingerprint=fingerprint, created_at=now)
                self.db.add(device)
            device.device_name = describe_device(client.user_agent)
            device.ip_address = client.ip_address
            device.trusted_until = now + self.trust_period
            device.last_used_at = now
            device.updated_at = now
            self.db.flush()
            self._enforce_limit(user_id)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("信頼済みデバイスの登録に失敗しました: user_id=%s, error=%s", user_id, e)
            raise StorageError() from e
        return device

    def _enforce_limit(self, user_id: str) -> None:
        """上限を超えた分を最終使用日時の古い順に削除"""
        for device in self.list_devices(user_id)[self.max_devices:]:
            self.db.delete(device)

    def list_devices(self, user_id: str) -> list[TrustedDevice]:
        return (
            self.db.query(TrustedDevice)
            .filter(TrustedDevice.user_id == user_id)
            .order_by(TrustedDevice.last_used_at.desc())
            .all()
        )

    def remove(self, user_id: str, device_id: str) -> bool:
        try:
            deleted = (
                self.db.query(TrustedDevice)
                .filter(TrustedDevice.id == device_id, TrustedDevice.user_id == user_id)
                .delete(synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("信頼済みデバイスの削除に失敗しました: user_id=%s, error=%s", user_id, e)
            raise StorageError() from e
        return deleted > 0

    def remove_all(self, user_id: str) -> int:
        try:
            deleted = (
                self.db.query(TrustedDevice)
                .filter(TrustedDevice.user_id == user_id)
                .delete(synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("信頼済みデバイスの削除に失敗しました: user_id=%s, error=%s", user_id, e)
            raise StorageError() from e
        return deleted
