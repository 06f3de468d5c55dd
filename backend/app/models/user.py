from sqlalchemy import Column, String, Boolean, Enum
from sqlalchemy.dialects.mysql import CHAR
from datetime import datetime, timezone
from app.db.base_class import Base
from app.db.types import UTCDateTime
import uuid


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """
    - 認証対象ユーザーの情報を格納するテーブル。
    - UUIDベースのIDを主キーとして使用し、メール・パスワードハッシュ・ロールを保持。
    - MFAリセット用トークン（ダイジェスト）と有効期限もこのテーブルに保持する。
    """

    __tablename__ = "users"

    # ユーザーID （UUID / 主キー / 固定長）
    id = Column(CHAR(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # ログインID （メールアドレス） ※一意制約
    email = Column(String(255), unique=True, nullable=False)

    # 表示名
    username = Column(String(50), nullable=False)

    # ハッシュ化されたパスワード（bcrypt）
    password_hash = Column(String(255), nullable=False)

    # 利用可能フラグ
    is_active = Column(Boolean, default=True, nullable=False)

    # ユーザーロール：user=一般, admin=管理者, super_admin=特権管理者
    role = Column(Enum('user', 'admin', 'super_admin', name='user_roles'), nullable=False, default='user')

    # MFAリセットトークン（SHA-256ダイジェスト。平文はメールのリンクにのみ含まれる）
    mfa_reset_token = Column(String(64), nullable=True, index=True)

    # MFAリセットトークンの有効期限
    mfa_reset_token_expires = Column(UTCDateTime, nullable=True)

    # 最終ログイン日時 （セッション発行時に更新）
    last_login_at = Column(UTCDateTime)

    # レコード作成日時（UTC）
    created_at = Column(UTCDateTime, default=_utcnow)

    # レコード更新日時（更新時に自動更新 / UTC）
    updated_at = Column(UTCDateTime, default=_utcnow, onupdate=_utcnow)

    def __repr__(self):
        return f"<User(id={self.id}, role={self.role})>"
