# app/core/security/mfa/errors.py
"""
MFAエンジンのエラー定義
  - すべてのエラーは MFAError を継承し、「種別（kind）」と「コード（code）」を持つ。
  - HTTP境界（router）は kind ごとに1種類のユーザー向けメッセージへ変換する。
  - 内部的な理由（スタックトレース・復号失敗の詳細など）はクライアントへ返さない。
"""

from datetime import datetime
from enum import Enum
from typing import Optional


class MFAErrorKind(str, Enum):
    """エラー種別"""

    VALIDATION = "validation"          # 入力形式エラー（カウンタは増やさない）
    CREDENTIAL = "credential"          # パスワード・コードの誤り
    STATE = "state"                    # 未登録・未有効化・有効化済みなど
    NOT_FOUND = "not_found"            # 対象（信頼済みデバイスなど）が存在しない
    AUTHORIZATION = "authorization"    # 権限不足
    LOCKED = "locked"                  # ロックアウト中
    EXPIRED = "expired"                # チャレンジ/リセットトークンの期限切れ・不正
    STORAGE = "storage"                # 永続化層のエラー
    INTERNAL = "internal"              # 内部エラー（詳細は返さない）


class MFAError(Exception):
    """MFAエンジンの基底エラー"""

    kind: MFAErrorKind = MFAErrorKind.INTERNAL
    code: str = "InternalError"
    message: str = "処理中にエラーが発生しました。"

    def __init__(self, message: Optional[str] = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"success": False, "error": self.code, "detail": self.message}


# --- Validation ---
class InvalidFormatError(MFAError):
    kind = MFAErrorKind.VALIDATION
    code = "InvalidFormat"
    message = "入力形式が正しくありません。"


# --- Credential ---
class InvalidCredentialsError(MFAError):
    kind = MFAErrorKind.CREDENTIAL
    code = "InvalidCredentials"
    message = "メールアドレスまたはパスワードが正しくありません。"


class WrongPasswordError(MFAError):
    kind = MFAErrorKind.CREDENTIAL
    code = "WrongPassword"
    message = "パスワードが正しくありません。"


class InvalidCodeError(MFAError):
    kind = MFAErrorKind.CREDENTIAL
    code = "InvalidCode"
    message = "認証コードが正しくないか、有効期限が切れています。"


# --- State ---
class NotEnrolledError(MFAError):
    kind = MFAErrorKind.STATE
    code = "NotEnrolled"
    message = "MFAが設定されていません。"


class NotEnabledError(MFAError):
    kind = MFAErrorKind.STATE
    code = "NotEnabled"
    message = "MFAが有効化されていません。"


class AlreadyEnabledError(MFAError):
    kind = MFAErrorKind.STATE
    code = "AlreadyEnabled"
    message = "MFAは既に有効化されています。"


class DeviceNotFoundError(MFAError):
    kind = MFAErrorKind.NOT_FOUND
    code = "DeviceNotFound"
    message = "指定されたデバイスが見つかりません。"


# --- Authorization ---
class ForbiddenError(MFAError):
    kind = MFAErrorKind.AUTHORIZATION
    code = "Forbidden"
    message = "権限がありません。"


class MFASetupRequiredError(MFAError):
    kind = MFAErrorKind.AUTHORIZATION
    code = "MFASetupRequired"
    message = "このアカウントはMFAの設定が必要です。設定後に再度ログインしてください。"


# --- Locked ---
class LockedError(MFAError):
    kind = MFAErrorKind.LOCKED
    code = "Locked"
    message = "試行回数が上限に達しました。しばらくしてから再度お試しください。"

    def __init__(self, locked_until: Optional[datetime] = None, message: Optional[str] = None):
        self.locked_until = locked_until
        super().__init__(message)


# --- Expired ---
class ChallengeInvalidError(MFAError):
    kind = MFAErrorKind.EXPIRED
    code = "ChallengeInvalid"
    message = "MFAチャレンジの有効期限が切れています。最初からログインし直してください。"


class InvalidOrExpiredTokenError(MFAError):
    kind = MFAErrorKind.EXPIRED
    code = "InvalidOrExpiredToken"
    message = "リセットリンクが無効か、有効期限が切れています。"


# --- Storage ---
class StorageError(MFAError):
    kind = MFAErrorKind.STORAGE
    code = "StorageError"
    message = "一時的なエラーが発生しました。時間をおいて再度お試しください。"


# --- Internal ---
class DeadlineExceededError(MFAError):
    kind = MFAErrorKind.INTERNAL
    code = "Timeout"
    message = "処理がタイムアウトしました。"


class InternalError(MFAError):
    kind = MFAErrorKind.INTERNAL
    code = "InternalError"
