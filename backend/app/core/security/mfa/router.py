"""
MFA APIルーター
  - /auth/mfa/* : 本人によるMFAの設定・検証・リセット・信頼済みデバイスの管理
  - /admin/mfa/* : 管理者によるロック解除・集計
  - MFAError は例外ハンドラで種別ごとのHTTPステータスと1種類のメッセージに変換する
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from app.core.dependencies import (
    get_compliant_user,
    get_current_user,
    get_mfa_service,
    get_request_deadline,
    require_permissions,
)
from app.core.security.rbac.permissions import Permission
from app.models.user import User
from app.schemas.mfa import (
    MFAAdminSummaryResponse,
    MFAAdminUnlockResponse,
    MFABackupCodeRequest,
    MFABackupCodesResponse,
    MFADisableResponse,
    MFAEnableRequest,
    MFAEnableResponse,
    MFAOkResponse,
    MFAPasswordRequest,
    MFAResetConfirmRequest,
    MFAResetRequestResponse,
    MFASessionResponse,
    MFASetupResponse,
    MFAStatusResponse,
    MFAVerifyRequest,
    TrustedDeviceRemoveResponse,
    TrustedDeviceResponse,
)

from .deadline import Deadline
from .errors import LockedError, MFAError, MFAErrorKind
from .service import MFAService

logger = logging.getLogger(__name__)

# エラー種別 → HTTPステータス
STATUS_BY_KIND = {
    MFAErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    MFAErrorKind.CREDENTIAL: status.HTTP_401_UNAUTHORIZED,
    MFAErrorKind.STATE: status.HTTP_400_BAD_REQUEST,
    MFAErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    MFAErrorKind.AUTHORIZATION: status.HTTP_403_FORBIDDEN,
    MFAErrorKind.LOCKED: status.HTTP_429_TOO_MANY_REQUESTS,
    MFAErrorKind.EXPIRED: status.HTTP_401_UNAUTHORIZED,
    MFAErrorKind.STORAGE: status.HTTP_503_SERVICE_UNAVAILABLE,
    MFAErrorKind.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def mfa_exception_handler(request: Request, exc: MFAError) -> JSONResponse:
    """MFAError をHTTPレスポンスに変換（内部的な理由はログにのみ残す）"""
    status_code = STATUS_BY_KIND.get(exc.kind, status.HTTP_500_INTERNAL_SERVER_ERROR)
    body = exc.to_dict()
    if exc.kind in (MFAErrorKind.STORAGE, MFAErrorKind.INTERNAL):
        logger.error("MFA処理でエラーが発生しました: path=%s, code=%s, cause=%r", request.url.path, exc.code, exc.__cause__)
        body["detail"] = type(exc).message
    headers = None
    if isinstance(exc, LockedError) and exc.locked_until is not None:
        body["locked_until"] = exc.locked_until.isoformat()
    if exc.kind == MFAErrorKind.CREDENTIAL or exc.kind == MFAErrorKind.EXPIRED:
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(status_code=status_code, content=body, headers=headers)


router = APIRouter(prefix="/auth/mfa", tags=["MFA"])

@router.post("/setup", response_model=MFASetupResponse)
def setup_mfa(
    current_user: User = Depends(require_permissions(Permission.MFA_MANAGE_SELF, allow_pending_setup=True)),
    service: MFAService = Depends(get_mfa_service),
    deadline: Optional[Deadline] = Depends(get_request_deadline),
):
    """MFAの初期設定（秘密鍵・QRコード・バックアップコードを発行）"""
    return service.setup(current_user, deadline=deadline)

@router.post("/enable", response_model=MFAEnableResponse)
def enable_mfa(
    body: MFAEnableRequest,
    current_user: User = Depends(require_permissions(Permission.MFA_MANAGE_SELF, allow_pending_setup=True)),
    service: MFAService = Depends(get_mfa_service),
    deadline: Optional[Deadline] = Depends(get_request_deadline),
):
    """認証アプリのコードを確認してMFAを有効化"""
    return service.enable(current_user, body.code, deadline=deadline)

@router.post("/disable", response_model=MFADisableResponse)
def disable_mfa(
    body: MFAPasswordRequest,
    current_user: User = Depends(require_permissions(Permission.MFA_MANAGE_SELF)),
    service: MFAService = Depends(get_mfa_service),
    deadline: Optional[Deadline] = Depends(get_request_deadline),
):
    """MFAを無効化"""
    return service.disable(current_user, body.password, deadline=deadline)

@router.post("/backup-codes/regenerate", response_model=MFABackupCodesResponse)
def regenerate_backup_codes(
    body: MFAPasswordRequest,
    current_user: User = Depends(require_permissions(Permission.MFA_MANAGE_SELF)),
    service: MFAService = Depends(get_mfa_service),
    deadline: Optional[Deadline] = Depends(get_request_deadline),
):
    """バックアップコードを再生成"""
    return service.regenerate_backup_codes(current_user, body.password, deadline=deadline)

@router.post("/verify", response_model=MFASessionResponse)
def verify_totp(
    body: MFAVerifyRequest,
    service: MFAService = Depends(get_mfa_service),
    deadline: Optional[Deadline] = Depends(get_request_deadline),
):
    """ログイン時のTOTPコード検証"""
    return service.verify_totp(body.code, body.challenge_token, trust_device=body.trust_device, deadline=deadline)

@router.post("/verify-backup", response_model=MFASessionResponse)
def verify_backup_code(
    body: MFABackupCodeRequest,
    service: MFAService = Depends(get_mfa_service),
    deadline: Optional[Deadline] = Depends(get_request_deadline),
):
    """ログイン時のバックアップコード検証"""
    return service.verify_backup(
        body.backup_code, body.challenge_token, trust_device=body.trust_device, deadline=deadline
    )

@router.get("/status", response_model=MFAStatusResponse)
def get_mfa_status(
    current_user: User = Depends(get_current_user),
    service: MFAService = Depends(get_mfa_service),
):
    """MFA設定状況を取得"""
    return service.get_status(current_user)

@router.get("/trusted-devices", response_model=List[TrustedDeviceResponse])
def list_trusted_devices(
    current_user: User = Depends(require_permissions(Permission.MFA_MANAGE_SELF)),
    service: MFAService = Depends(get_mfa_service),
):
    """信頼済みデバイスの一覧（最終使用日時の新しい順）"""
    return service.list_trusted_devices(current_user)

@router.delete("/trusted-devices/{device_id}", response_model=TrustedDeviceRemoveResponse)
def remove_trusted_device(
    device_id: str,
    current_user: User = Depends(require_permissions(Permission.MFA_MANAGE_SELF)),
    service: MFAService = Depends(get_mfa_service),
):
    """信頼済みデバイスを1件削除"""
    return service.remove_trusted_device(current_user, device_id)

@router.delete("/trusted-devices", response_model=TrustedDeviceRemoveResponse)
def remove_all_trusted_devices(
    current_user: User = Depends(require_permissions(Permission.MFA_MANAGE_SELF)),
    service: MFAService = Depends(get_mfa_service),
):
    """信頼済みデバイスをすべて削除"""
    return service.remove_all_trusted_devices(current_user)

@router.post("/reset-request", response_model=MFAResetRequestResponse)
def request_mfa_reset(
    body: MFAPasswordRequest,
    current_user: User = Depends(require_permissions(Permission.MFA_MANAGE_SELF)),
    service: MFAService = Depends(get_mfa_service),
    deadline: Optional[Deadline] = Depends(get_request_deadline),
):
    """MFAリセットを要求（リセットリンクをメールで送信）"""
    return service.request_reset(current_user, body.password, deadline=deadline)

@router.post("/reset-confirm", response_model=MFAOkResponse)
def confirm_mfa_reset(
    body: MFAResetConfirmRequest,
    service: MFAService = Depends(get_mfa_service),
    deadline: Optional[Deadline] = Depends(get_request_deadline),
):
    """メールのリセットトークンでMFAを無効化"""
    return service.confirm_reset(body.token, deadline=deadline)


admin_router = APIRouter(prefix="/admin/mfa", tags=["MFA Admin"])

@admin_router.post("/unlock/{user_id}", response_model=MFAAdminUnlockResponse)
def admin_unlock_mfa(
    user_id: str,
    current_user: User = Depends(get_compliant_user),
    service: MFAService = Depends(get_mfa_service),
    deadline: Optional[Deadline] = Depends(get_request_deadline),
):
    """管理者によるMFAロック解除"""
    return service.admin_unlock(current_user, user_id, deadline=deadline)

@admin_router.get("/summary", response_model=MFAAdminSummaryResponse)
def admin_mfa_summary(
    current_user: User = Depends(get_compliant_user),
    service: MFAService = Depends(get_mfa_service),
):
    """MFA利用状況の集計"""
    return service.admin_summary(current_user)
