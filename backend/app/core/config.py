from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from dotenv import load_dotenv
from typing import Optional
import logging
from pathlib import Path

# ロガーの設定
logger = logging.getLogger(__name__)

load_dotenv()

# このファイルは `backend/app/core/config.py` 配下にあるため、
# BASE_DIR は `backend/app` を指す
BASE_DIR = Path(__file__).resolve().parent.parent

# .envファイルの絶対パスを明示的に設定（backend/.env）
ENV_FILE_PATH = BASE_DIR.parent / ".env"

class Settings(BaseSettings):
    # Database（DATABASE_URL が設定されていればそちらを優先）
    database_url: str = Field(default="", alias="DATABASE_URL")
    database_host: str = Field(default="localhost", alias="DATABASE_HOST")
    database_port: int = Field(default=3306, alias="DATABASE_PORT")
    database_name: str = Field(default="auth_system", alias="DATABASE_NAME")
    database_username: str = Field(default="auth", alias="DATABASE_USERNAME")
    database_password: str = Field(default="password123", alias="DATABASE_PASSWORD")
    ssl_ca_path: str = Field(default="", alias="DATABASE_SSL_CA_PATH")
    auto_create_tables: bool = Field(default=True, alias="AUTO_CREATE_TABLES")

    # 認証
    secret_key: str = Field(default="your-secret-key-here-make-it-long-and-secure", alias="SECRET_KEY")
    algorithm: str = Field(default="HS256", alias="ALGORITHM")
    access_token_expire_minutes: int = Field(default=15, alias="ACCESS_TOKEN_EXPIRE_MINUTES")
    refresh_token_expire_days: int = Field(default=7, alias="REFRESH_TOKEN_EXPIRE_DAYS")
    password_bcrypt_rounds: int = Field(default=12, alias="PASSWORD_BCRYPT_ROUNDS")

    # フロントエンド（MFAリセットリンクの組み立てにのみ使用）
    frontend_url: str = Field(default="http://localhost:3000", alias="FRONTEND_URL")

    # メール送信（SMTP）
    mail_enabled: bool = Field(default=False, alias="MAIL_ENABLED")
    smtp_host: str = Field(default="localhost", alias="SMTP_HOST")
    smtp_port: int = Field(default=587, alias="SMTP_PORT")
    smtp_username: str = Field(default="", alias="SMTP_USERNAME")
    smtp_password: str = Field(default="", alias="SMTP_PASSWORD")
    smtp_from_email: str = Field(default="no-reply@example.com", alias="SMTP_FROM_EMAIL")
    smtp_timeout_seconds: float = Field(default=10.0, alias="SMTP_TIMEOUT_SECONDS")

    # ログ
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # 環境設定
    environment: str = Field(default="development", alias="ENVIRONMENT")

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE_PATH),  # 🔒 絶対パスを指定
        extra="ignore",  # 未定義の環境変数は無視
        env_parse_none_str=None,  # 空文字列をNoneとして扱う
    )

    def get_database_url(self) -> str:
        if self.database_url:
            return self.database_url
        return (
            f"mysql+pymysql://{self.database_username}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    def get_ssl_ca_absolute_path(self) -> Optional[str]:
        """SSL証明書の絶対パスを取得する。ファイルが存在しない場合はNoneを返す"""
        if not self.ssl_ca_path:
            logger.info("SSL証明書パスが設定されていません")
            return None

        ssl_path = Path(self.ssl_ca_path)

        # 相対パスの場合、プロジェクトルートからの絶対パスに変換
        if not ssl_path.is_absolute():
            ssl_path = BASE_DIR.parent.parent / self.ssl_ca_path

        if ssl_path.exists():
            logger.info(f"SSL証明書ファイルが見つかりました: {ssl_path}")
            return str(ssl_path.resolve())
        else:
            logger.warning(f"SSL証明書ファイルが見つかりません: {ssl_path}")
            return None

    def get_mail_config(self) -> dict:
        """SMTP設定を取得（パスワードは含めない）"""
        return {
            "enabled": self.mail_enabled,
            "host": self.smtp_host,
            "port": self.smtp_port,
            "from_email": self.smtp_from_email,
            "timeout": self.smtp_timeout_seconds,
        }

    @property
    def is_sqlite(self) -> bool:
        return self.get_database_url().startswith("sqlite")

    @property
    def is_production(self) -> bool:
        """本番環境かどうかを判定"""
        return self.environment.lower() in ["production", "prod"]

    @property
    def is_development(self) -> bool:
        """開発環境かどうかを判定"""
        return self.environment.lower() in ["development", "dev"]

settings = Settings()

# 秘密情報を含むため設定値の全件出力はしない
logger.info("Loaded settings: environment=%s, mail=%s", settings.environment, settings.get_mail_config())

@lru_cache
def get_settings() -> Settings:
    return settings
