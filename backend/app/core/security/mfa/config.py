# app/core/security/mfa/config.py
"""
MFA（多要素認証）設定管理
  - このファイルでは、TOTPの許容ウィンドウ、ロックアウト、チャレンジトークン、リセットトークンなどの
    MFA関連の設定を集中管理する。
  - すべての値は環境変数（.env）で上書き可能。
  - 環境変数の接頭辞は "MFA_"。（例: MFA_ENCRYPTION_KEY, MFA_MAX_ATTEMPTS）
"""

from typing import List

from pydantic import SecretStr
from pydantic_settings import BaseSettings

class MFAConfig(BaseSettings):
    """MFA設定クラス"""

    # 暗号化キー（64桁の16進数 = 256bit）。未設定なら起動時に一時キーを生成して警告する
    encryption_key: SecretStr = SecretStr("")

    # TOTP（ワンタイムパスワード）設定
    totp_digits: int = 6    # ワンタイムパスワードの桁数
    totp_period: int = 30   # 1ステップの秒数
    totp_window_login: int = 1    # ログイン時に許容する前後ステップ数（±30秒）
    totp_window_enroll: int = 10    # 有効化時に許容する前後ステップ数（初回ペアリングの時計ずれ対策）
    issuer: str = "AuthSystem"    # 認証アプリに表示されるサービス名

    # バックアップコード設定
    backup_code_count: int = 10    # 発行するバックアップコードの数
    backup_code_pepper: SecretStr = SecretStr("")    # 設定時は HMAC-SHA256 でハッシュ化
    backup_code_warning_threshold: int = 3    # 残数がこれ未満なら警告を返す

    # ロックアウト設定
    max_attempts: int = 5    # ロックアウトまでの最大試行回数
    lock_duration_minutes: int = 15    # ロックアウト時間（分）

    # トークン設定
    challenge_ttl_seconds: int = 300    # MFAチャレンジトークンの有効秒数
    reset_token_ttl_seconds: int = 3600    # MFAリセットトークンの有効秒数

    # 信頼済みデバイス設定（二要素目の検証時に「このデバイスを信頼する」を選んだ端末）
    trusted_device_days: int = 30    # 信頼の有効日数
    max_trusted_devices: int = 5    # 1ユーザーあたりの上限（超えたら最終使用が古いものから削除）

    # ロール別の強制設定（JSON配列で指定。例: MFA_ENFORCED_ROLES='["admin", "super_admin"]'）
    enforced_roles: List[str] = []    # MFA未設定ならセットアップ以外の操作を禁止するロール

    # ストレージ設定
    storage_retry_limit: int = 3    # 楽観的更新のリトライ上限

    # 処理期限
    request_timeout_seconds: float = 10.0    # HTTPリクエストごとの処理期限（0以下で無効）

    class Config:
        env_prefix = "MFA_"    # 環境変数の接頭辞
        env_file = ".env"    # 環境変数ファイルのパス
        env_file_encoding = "utf-8"    # 環境変数ファイルのエンコーディング
        extra = "ignore"    # 未定義のキーは無視

    def get_backup_code_pepper(self) -> bytes | None:
        value = self.backup_code_pepper.get_secret_value()
        return value.encode("utf-8") if value else None

# グローバル設定インスタンス
mfa_config = MFAConfig()    # MFA設定インスタンスを作成
