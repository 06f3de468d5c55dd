"""
RBACサービスクラス
RBACモデル（権限定義 + マッピング）を実際にアプリのロジックで使える形にするための“実行部” 
"""

from typing import List, Set
from app.models.user import User
from app.core.security.mfa.errors import ForbiddenError
from .models import UserRole, RolePermissionMapping
from .permissions import Permission

class RBACService:
    """RBACロジックを提供するサービス層"""

    # --- 権限チェック（True/False返す系） ---
    @staticmethod
    def check_user_permission(user: User, permission: Permission) -> bool:
        if not user or not user.role:
            return False
        try:
            return RolePermissionMapping.has_user_permission(UserRole(user.role), permission)
        except ValueError:
            return False

    @staticmethod
    def get_user_permissions(user: User) -> Set[Permission]:
        if not user or not user.role:
            return set()
        try:
            return RolePermissionMapping.get_user_permissions(UserRole(user.role))
        except ValueError:
            return set()

    # --- 権限なしなら即 ForbiddenError を送出する系 ---
    @staticmethod
    def enforce_user_permission(user: User, permission: Permission):
        if not RBACService.check_user_permission(user, permission):
            raise ForbiddenError()

    @staticmethod
    def enforce_user_permissions(user: User, permissions: List[Permission]):
        user_permissions = RBACService.get_user_permissions(user)
        if not all(p in user_permissions for p in permissions):
            raise ForbiddenError("必要な権限が不足しています")
