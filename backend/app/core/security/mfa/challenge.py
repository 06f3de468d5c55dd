"""
MFAチャレンジトークン
  - パスワード認証の成功と二要素目の検証を結びつける短命の署名付きトークン（JWT）。
  - 永続化しない。jti はプロセス内のレジストリで1回のみ引き換え可能とする。
  - 検証失敗の理由（期限切れ・用途違い・署名不正・形式不正・再利用）はすべて ChallengeInvalidError に集約する。
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Dict, Optional

from app.core.clock import Clock, system_clock
from app.core.security.jwt import TokenError, TokenSigner

from .deadline import Deadline, check_deadline
from .errors import ChallengeInvalidError

logger = logging.getLogger(__name__)

CHALLENGE_PURPOSE = "mfa-challenge"


@dataclass(frozen=True)
class ChallengeClaims:
    user_id: str
    jti: str
    issued_at: datetime
    expires_at: datetime


class RedeemedChallengeRegistry:
    """引き換え済み jti の記録（期限切れのものは順次削除）"""

    def __init__(self):
        self._redeemed: Dict[str, datetime] = {}
        self._lock = Lock()

    def claim(self, jti: str, expires_at: datetime, now: datetime) -> bool:
        """初回の引き換えなら True"""
        with self._lock:
            self._prune(now)
            if jti in self._redeemed:
                return False
            self._redeemed[jti] = expires_at
            return True

    def _prune(self, now: datetime) -> None:
        expired = [jti for jti, exp in self._redeemed.items() if exp < now]
        for jti in expired:
            del self._redeemed[jti]

    def __len__(self) -> int:
        return len(self._redeemed)


# プロセス全体で共有する引き換えレジストリ
challenge_registry = RedeemedChallengeRegistry()


class ChallengeTokenService:
    """チャレンジトークンの発行と引き換え"""

    def __init__(
        self,
        signer: TokenSigner,
        clock: Clock = system_clock,
        ttl_seconds: int = 300,
        registry: Optional[RedeemedChallengeRegistry] = None,
    ):
        self.signer = signer
        self.clock = clock
        self.ttl = timedelta(seconds=ttl_seconds)
        self.registry = registry if registry is not None else challenge_registry

    def issue(self, user_id: str, deadline: Optional[Deadline] = None) -> str:
        check_deadline(deadline, "challenge_issue")
        now = self.clock.now()
        claims = {
            "sub": user_id,
            "purpose": CHALLENGE_PURPOSE,
            "iat": int(now.timestamp()),
            "exp": int((now + self.ttl).timestamp()),
            "jti": uuid.uuid4().hex,
        }
        return self.signer.encode(claims)

    def redeem(self, token: str, deadline: Optional[Deadline] = None) -> ChallengeClaims:
        """トークンを検証し、1回限り引き換える"""
        check_deadline(deadline, "challenge_redeem")
        if not token or not isinstance(token, str):
            raise ChallengeInvalidError()

        try:
            # 期限はエンジンの時計で判定する
            payload = self.signer.decode(token, verify_exp=False)
        except TokenError:
            logger.info("チャレンジトークンの署名検証に失敗しました")
            raise ChallengeInvalidError()

        try:
            user_id = payload["sub"]
            jti = payload["jti"]
            issued_at = datetime.fromtimestamp(int(payload["iat"]), tz=timezone.utc)
            expires_at = datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc)
        except (KeyError, TypeError, ValueError):
            logger.info("チャレンジトークンのクレームが不正です")
            raise ChallengeInvalidError()

        if payload.get("purpose") != CHALLENGE_PURPOSE or not isinstance(user_id, str) or not user_id:
            logger.info("チャレンジトークンの用途が不正です")
            raise ChallengeInvalidError()

        now = self.clock.now()
        if now > expires_at:
            logger.info("チャレンジトークンの有効期限切れ: user_id=%s", user_id)
            raise ChallengeInvalidError()

        if not self.registry.claim(jti, expires_at, now):
            logger.warning("使用済みのチャレンジトークンが再提示されました: user_id=%s", user_id)
            raise ChallengeInvalidError()

        return ChallengeClaims(user_id=user_id, jti=jti, issued_at=issued_at, expires_at=expires_at)
