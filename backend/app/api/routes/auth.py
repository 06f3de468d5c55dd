# app/api/routes/auth.py
"""
 - ユーザーのログイン認証用APIルートを定義するモジュール。
 - 入力されたメールアドレス・パスワードを検証し、
   MFAが無効ならセッショントークンを、有効ならMFAチャレンジトークンを返す。
 - リフレッシュトークンによるアクセストークンの更新もここで扱う。
"""

import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status
from app.schemas.auth import LoginRequest, LoginResponse, RefreshTokenRequest, RefreshTokenResponse
from app.core.dependencies import get_mfa_service, get_request_deadline
from app.core.security.mfa.deadline import Deadline
from app.core.security.mfa.service import MFAService
from app.core.security.session import session_manager

# ロガーの設定
logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])

# ログインAPI（ユーザー不在・パスワード誤りはどちらも同じ InvalidCredentials を返す）
@router.post("/login", response_model=LoginResponse)
def login_user(
    request: LoginRequest,
    service: MFAService = Depends(get_mfa_service),
    deadline: Optional[Deadline] = Depends(get_request_deadline),
):
    return service.begin_login(request.email, request.password, deadline=deadline)

# リフレッシュトークンを使用してアクセストークンを更新
@router.post("/refresh", response_model=RefreshTokenResponse)
def refresh_token(request: RefreshTokenRequest):
    """リフレッシュトークンを使用してアクセストークンを更新（セッションが失効していれば401）"""
    if not request.refresh_token:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="リフレッシュトークンが必要です"
        )

    session_response = session_manager.refresh_access_token(request.refresh_token)
    if session_response is None:
        logger.info("リフレッシュトークンによる更新を拒否しました")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="無効なリフレッシュトークンです",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return {
        "access_token": session_response.access_token,
        "expires_in": session_response.expires_in,
        "token_type": session_response.token_type,
    }
