# app/core/security/rbac/__init__.py

"""
RBAC (Role-Based Access Control) モジュール
MFA管理操作の認可基盤
"""

from .permissions import Permission, PERMISSION_GROUPS
from .models import UserRole, RolePermissionMapping
from .service import RBACService

__all__ = [
    "Permission",
    "PERMISSION_GROUPS",
    "UserRole",
    "RolePermissionMapping",
    "RBACService",
]
