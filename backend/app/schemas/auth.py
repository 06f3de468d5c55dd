# app/schemas/auth.py
"""
 - ログインに関連するデータスキーマを定義するモジュール。
 - ログインAPI（POST /auth/login）の入力（メールアドレス・パスワード）と、
   出力（セッショントークン、またはMFAチャレンジトークン）の構造を定義する。
"""

from pydantic import BaseModel, EmailStr, Field
from typing import Optional

# ログインAPIのリクエストボディ用スキーマ
class LoginRequest(BaseModel):
    email: EmailStr
    password: str

# ログイン結果のレスポンススキーマ（MFA有効時は challenge_token のみ、それ以外はセッショントークン）
class LoginResponse(BaseModel):
    mfa_required: bool = Field(..., description="二要素目の認証が必要か")
    challenge_token: Optional[str] = Field(default=None, description="MFAチャレンジトークン")
    access_token: Optional[str] = Field(default=None, description="アクセストークン")
    refresh_token: Optional[str] = Field(default=None, description="リフレッシュトークン")
    session_id: Optional[str] = Field(default=None, description="セッションID")
    expires_in: int = Field(..., description="有効期限（秒）")
    token_type: Optional[str] = Field(default=None, description="トークンタイプ")
    mfa_setup_required: bool = Field(default=False, description="MFA必須ロールでMFAが未設定か（設定以外の操作は拒否される）")
    trusted_device: bool = Field(default=False, description="信頼済みデバイスのため二要素目を省略したか")

# トークン更新APIのリクエストボディ用スキーマ
class RefreshTokenRequest(BaseModel):
    refresh_token: str

# トークン更新APIのレスポンススキーマ
class RefreshTokenResponse(BaseModel):
    access_token: str
    expires_in: int
    token_type: str = "Bearer"
