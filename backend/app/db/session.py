from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from app.core.config import settings
from typing import Generator
import logging

# ロガーの設定
logger = logging.getLogger(__name__)

# すでにconfig.pyで定義済みのURLを使う
DATABASE_URL = settings.get_database_url()


def _build_engine():
    if settings.is_sqlite:
        # SQLite（開発・テスト用）: スレッド間で同一接続を共有する
        logger.warning("SQLiteでデータベースに接続（開発・テスト用途）")
        return create_engine(
            DATABASE_URL,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    ssl_ca_path = settings.get_ssl_ca_absolute_path()
    if ssl_ca_path:
        # SSL証明書が存在する場合
        logger.info(f"SSL証明書を使用してデータベースに接続: {ssl_ca_path}")
        return create_engine(
            DATABASE_URL,
            connect_args={"ssl": {"ca": ssl_ca_path}},
            pool_pre_ping=True,
        )

    logger.warning("SSL証明書なしでデータベースに接続")
    return create_engine(DATABASE_URL, pool_pre_ping=True)


engine = _build_engine()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
