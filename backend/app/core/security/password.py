""" 
 - パスワードのハッシュ化および検証を行うモジュール。
 - セキュリティ上、パスワードを平文で保存せず、安全な形式で保存するために使用。
 - ユーザーが存在しない場合もダミーハッシュと照合し、応答時間からユーザーの有無を推測されないようにする。
"""

from passlib.context import CryptContext
from typing import Optional
import logging
from app.core.config import settings

# ロガーの設定
logger = logging.getLogger(__name__)

# bcryptアルゴリズムを使用するハッシュコンテキストを定義
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.password_bcrypt_rounds,
)

# ユーザー不在時の照合に使うダミーハッシュ（起動時に1度だけ計算）
_DUMMY_HASH = pwd_context.hash("dummy-password-for-timing-equalization")

# パスワードをハッシュ化する関数 (与えられた平文パスワードを bcrypt でハッシュ化して返す)
def hash_password(password: str) -> str:
    return pwd_context.hash(password)

# 入力されたパスワードとハッシュ値を照合する関数
def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """
    平文パスワードとハッシュ化されたパスワードを比較して検証する関数
    hashed_password が None の場合はダミーハッシュと照合し、常に False を返す
    """
    if not hashed_password:
        pwd_context.verify(plain_password or "", _DUMMY_HASH)
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError) as e:
        # ハッシュ形式が不正（移行前データなど）
        logger.error(f"パスワード検証でエラー: {e}")
        return False
