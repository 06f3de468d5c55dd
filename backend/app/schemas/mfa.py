"""
MFA（Multi-Factor Authentication）関連のデータスキーマを定義するモジュール

コード類は形式チェックをサービス層で行う（InvalidFormat を返すため、ここでは文字列として受け取る）
"""

from datetime import datetime
from pydantic import BaseModel, Field
from typing import List, Optional

# --- リクエスト ---
class MFAEnableRequest(BaseModel):
    """MFA有効化リクエスト用スキーマ"""
    code: str = Field(..., description="認証アプリに表示された6桁のコード")

class MFAPasswordRequest(BaseModel):
    """現在のパスワードによる確認が必要な操作用スキーマ（無効化・再生成・リセット要求）"""
    password: str = Field(..., description="現在のパスワード")

class MFAVerifyRequest(BaseModel):
    """TOTPコード検証リクエスト用スキーマ"""
    code: str = Field(..., description="6桁のTOTPコード")
    challenge_token: str = Field(..., description="ログイン時に発行されたチャレンジトークン")
    trust_device: bool = Field(default=False, description="このデバイスを信頼済みとして登録するか")

class MFABackupCodeRequest(BaseModel):
    """バックアップコード検証リクエスト用スキーマ"""
    backup_code: str = Field(..., description="XXXX-XXXX 形式のバックアップコード")
    challenge_token: str = Field(..., description="ログイン時に発行されたチャレンジトークン")
    trust_device: bool = Field(default=False, description="このデバイスを信頼済みとして登録するか")

class MFAResetConfirmRequest(BaseModel):
    """MFAリセット確定リクエスト用スキーマ"""
    token: str = Field(..., description="メールで受け取ったリセットトークン")

# --- レスポンス ---
class MFASetupResponse(BaseModel):
    """MFA初期設定レスポンス用スキーマ（平文のバックアップコードを返すのはこの1回のみ）"""
    secret: str = Field(..., description="TOTP秘密鍵（base32）")
    otpauth_uri: str = Field(..., description="otpauth URI")
    qr_code: str = Field(..., description="QRコード（PNGのdata URL）")
    backup_codes: List[str] = Field(..., description="バックアップコード")

class MFAEnableResponse(BaseModel):
    enabled: bool
    enabled_at: datetime

class MFADisableResponse(BaseModel):
    enabled: bool

class MFABackupCodesResponse(BaseModel):
    backup_codes: List[str]

class MFAStatusResponse(BaseModel):
    """MFA設定状況レスポンス用スキーマ"""
    enabled: bool = Field(..., description="MFAが有効化されているか")
    required: bool = Field(..., description="ロールによりMFAが必須か")
    enabled_at: Optional[datetime] = Field(default=None, description="有効化日時")
    last_used_at: Optional[datetime] = Field(default=None, description="最終使用日時")
    backup_codes_remaining: int = Field(..., description="未使用のバックアップコード数")
    locked: bool = Field(..., description="ロック中か")
    locked_until: Optional[datetime] = Field(default=None, description="ロック解除予定日時")
    failed_attempts: int = Field(..., description="連続失敗回数")

class MFASessionResponse(BaseModel):
    """二要素目の検証成功時のレスポンス"""
    access_token: str
    refresh_token: str
    session_id: str
    expires_in: int
    token_type: str = "Bearer"
    trusted_device: bool = Field(default=False, description="このデバイスを信頼済みとして登録したか")
    remaining: Optional[int] = Field(default=None, description="残りのバックアップコード数（バックアップコード使用時のみ）")
    warning: Optional[str] = Field(default=None, description="警告メッセージ")

class MFAResetRequestResponse(BaseModel):
    ok: bool
    expires_in: int

class MFAOkResponse(BaseModel):
    ok: bool

class MFAAdminUnlockResponse(BaseModel):
    ok: bool
    user_id: str
    unlocked_by: str
    unlocked_at: datetime

class TrustedDeviceResponse(BaseModel):
    """信頼済みデバイス（フィンガープリントは返さない）"""
    id: str
    device_name: Optional[str] = None
    ip_address: Optional[str] = None
    trusted_until: datetime
    last_used_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    active: bool = Field(..., description="信頼期間内か")

class TrustedDeviceRemoveResponse(BaseModel):
    ok: bool
    removed: int

class MFAAdminSummaryResponse(BaseModel):
    total: int
    enabled: int
    pending: int
    locked: int
