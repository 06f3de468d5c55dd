from .auth import LoginRequest, LoginResponse
from .mfa import (
    MFAEnableRequest, MFAPasswordRequest, MFAVerifyRequest, MFABackupCodeRequest,
    MFAResetConfirmRequest, MFASetupResponse, MFAEnableResponse, MFADisableResponse,
    MFABackupCodesResponse, MFAStatusResponse, MFASessionResponse, MFAResetRequestResponse,
    MFAOkResponse, MFAAdminUnlockResponse, MFAAdminSummaryResponse
)

__all__ = [
    "LoginRequest",
    "LoginResponse",
    "MFAEnableRequest",
    "MFAPasswordRequest",
    "MFAVerifyRequest",
    "MFABackupCodeRequest",
    "MFAResetConfirmRequest",
    "MFASetupResponse",
    "MFAEnableResponse",
    "MFADisableResponse",
    "MFABackupCodesResponse",
    "MFAStatusResponse",
    "MFASessionResponse",
    "MFAResetRequestResponse",
    "MFAOkResponse",
    "MFAAdminUnlockResponse",
    "MFAAdminSummaryResponse",
]
