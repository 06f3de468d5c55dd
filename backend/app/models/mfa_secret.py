from sqlalchemy import Column, Boolean, Integer, LargeBinary, JSON, ForeignKey
from sqlalchemy.dialects.mysql import CHAR
from datetime import datetime, timezone
from app.db.base_class import Base
from app.db.types import UTCDateTime


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MFASecret(Base):
    """
    - ユーザーごとのMFA（TOTP）設定を格納するテーブル。1ユーザーにつき最大1レコード。
    - TOTP秘密鍵は AES-256-GCM のエンベロープ（nonce ∥ tag ∥ ciphertext）でのみ保存する。
    - バックアップコードは SHA-256 ダイジェストのソート済みリストとして保存する。
    - version 列による楽観的排他制御で、ロックアウトやバックアップコード消費を原子的に更新する。
    """

    __tablename__ = "mfa_secrets"

    # ユーザーID（主キー / users.id への外部キー）
    user_id = Column(CHAR(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)

    # 暗号化されたTOTP秘密鍵
    secret_ct = Column(LargeBinary, nullable=False)

    # ハッシュ化されたバックアップコード群
    backup_codes = Column(JSON, nullable=False, default=list)

    # MFAを有効化済みか
    enabled = Column(Boolean, default=False, nullable=False)

    # 有効化日時
    enabled_at = Column(UTCDateTime, nullable=True)

    # 最後に二要素目の検証に成功した日時
    last_used_at = Column(UTCDateTime, nullable=True)

    # 連続失敗回数
    failed_attempts = Column(Integer, default=0, nullable=False)

    # この時刻まではロック中
    locked_until = Column(UTCDateTime, nullable=True)

    # 楽観的排他制御用のバージョン
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(UTCDateTime, default=_utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=_utcnow, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def backup_codes_remaining(self) -> int:
        return len(self.backup_codes or [])

    def __repr__(self):
        # 暗号文やダイジェストは表示しない
        return f"<MFASecret(user_id={self.user_id}, enabled={self.enabled}, failed_attempts={self.failed_attempts})>"
