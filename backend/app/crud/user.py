# app/crud/user.py
"""
 - ユーザーに関するDB操作（CRUD）を定義するモジュール。
 - 主に SQLAlchemy を通じて User モデルとデータベースをやり取りする。
 - MFAエンジンからはユーザー検索とリセットトークン列の更新のみで使用する。
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.models.user import User


# 新規ユーザーを登録する関数　（事前にハッシュ化されたパスワードを引数として受け取る)
def create_user(
    db: Session,
    email: str,
    username: str,
    password_hash: str,
    role: str = "user",
) -> User:
    now = datetime.now(timezone.utc)
    user = User(
        id=str(uuid4()),
        email=email.lower(),
        username=username,
        password_hash=password_hash,
        role=role,
        is_active=True,
        created_at=now,
        updated_at=now,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


# メールアドレスでユーザーを検索する関数（大文字小文字を区別しない）
def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(User.email == email.strip().lower()).first()


# IDでユーザーを検索する関数
def get_user_by_id(db: Session, user_id: str) -> Optional[User]:
    return db.get(User, user_id)


# リセットトークンのダイジェストでユーザーを検索する関数
def get_user_by_reset_token_digest(db: Session, digest: str) -> Optional[User]:
    return db.query(User).filter(User.mfa_reset_token == digest).first()


# MFAリセットトークンを保存する関数（コミットは呼び出し元）
def set_mfa_reset_token(db: Session, user_id: str, digest: str, expires_at: datetime) -> None:
    db.execute(
        update(User)
        .where(User.id == user_id)
        .values(mfa_reset_token=digest, mfa_reset_token_expires=expires_at)
    )


# トークンが一致し有効期限内の場合のみリセットトークンを消去する関数（消去できた件数を返す）
def clear_mfa_reset_token_if_valid(db: Session, user_id: str, digest: str, now: datetime) -> int:
    result = db.execute(
        update(User)
        .where(
            User.id == user_id,
            User.mfa_reset_token == digest,
            User.mfa_reset_token_expires.isnot(None),
            User.mfa_reset_token_expires >= now,
        )
        .values(mfa_reset_token=None, mfa_reset_token_expires=None)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


# 最終ログイン日時を更新する関数
def touch_last_login(db: Session, user: User, now: datetime) -> None:
    user.last_login_at = now
    db.commit()
