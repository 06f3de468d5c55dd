# app/core/security/jwt.py
"""
 - JWT（JSON Web Token）の署名・検証を行うユーティリティモジュール。
 - セッションのアクセストークンと、MFAのチャレンジトークンの両方がこの署名器を経由する。
 - 署名器は小さなインターフェース（TokenSigner）として定義し、テストや鍵の差し替えを容易にする。
"""

from jose import JWTError, jwt
from app.core.config import settings


class TokenError(Exception):
    """署名不正・形式不正・期限切れなど、トークンを検証できない場合のエラー"""


class TokenSigner:
    """トークン署名器インターフェース"""

    def encode(self, claims: dict) -> str:
        raise NotImplementedError

    def decode(self, token: str, verify_exp: bool = True) -> dict:
        raise NotImplementedError


class JoseTokenSigner(TokenSigner):
    """python-jose による HS256 署名器"""

    def __init__(self, secret_key: str, algorithm: str = "HS256"):
        self._secret_key = secret_key
        self.algorithm = algorithm

    def __repr__(self) -> str:
        return f"JoseTokenSigner(algorithm={self.algorithm!r})"

    def encode(self, claims: dict) -> str:
        return jwt.encode(claims, self._secret_key, algorithm=self.algorithm)

    def decode(self, token: str, verify_exp: bool = True) -> dict:
        # verify_exp=False の場合、期限は呼び出し側の時計で判定する
        try:
            return jwt.decode(
                token,
                self._secret_key,
                algorithms=[self.algorithm],
                options={"verify_exp": verify_exp},
            )
        except JWTError as e:
            raise TokenError(str(e)) from e


# アプリ全体で共有する署名器
token_signer = JoseTokenSigner(settings.secret_key, settings.algorithm)


# JWTトークンを検証し、有効であればペイロードを返す関数 (無効な場合は None を返す。)
def verify_access_token(token: str) -> dict | None:
    try:
        payload = token_signer.decode(token)
    except TokenError:
        return None
    if payload.get("token_type") != "access":
        return None
    return payload
