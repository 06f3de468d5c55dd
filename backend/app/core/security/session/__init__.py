"""
セッション管理モジュール
"""

from .manager import SessionManager, session_manager
from .models import SessionData, TokenResponse

__all__ = [
    "SessionManager",
    "session_manager",
    "SessionData",
    "TokenResponse"
]
