# app/core/security/rbac/models.py
"""
RBAC（Role-Based Access Control）のモデル定義

  - このファイルでは、アプリの「ロール」と「権限」の関係を定義します。
  - DBのユーザーテーブルに保存しているロールの値と
    このコード内のロール定義（Enum）が一致するようにしています。
"""

from enum import Enum
from typing import Set
from .permissions import Permission, PERMISSION_GROUPS, ALL_PERMISSIONS

""" Userテーブルに対応するロール """
class UserRole(str, Enum):

    USER = "user"                  # 一般ユーザー：自分のMFAのみ操作可能
    ADMIN = "admin"                # 管理者：MFAロック解除・集計閲覧
    SUPER_ADMIN = "super_admin"    # 特権管理者：全権限


""" 各ロールに割り当てる権限一覧 """
class RolePermissionMapping:

    USER_ROLE_PERMISSIONS = {
        UserRole.USER: {Permission.MFA_MANAGE_SELF},
        UserRole.ADMIN: {Permission.MFA_MANAGE_SELF} | set(PERMISSION_GROUPS["mfa_administration"]),
        UserRole.SUPER_ADMIN: set(ALL_PERMISSIONS),
    }

    # Userロールの権限を取得するメソッド
    @classmethod
    def get_user_permissions(cls, role: UserRole) -> Set[Permission]:
        return cls.USER_ROLE_PERMISSIONS.get(role, set())

    # Userロールが指定された権限を持っているかチェックするメソッド
    @classmethod
    def has_user_permission(cls, role: UserRole, permission: Permission) -> bool:
        return permission in cls.get_user_permissions(role)
