# app/core/security/rbac/permissions.py
"""
操作権限の定義
"""

from enum import Enum

""" 操作権限一覧 """
class Permission(str, Enum):

    # --- 自分のMFA設定 ---
    MFA_MANAGE_SELF = "mfa:manage_self"    # 自分のMFAの設定・無効化・リセット

    # --- MFA管理（管理者） ---
    MFA_ADMIN_UNLOCK = "mfa:admin_unlock"    # 他ユーザーのMFAロック解除
    MFA_ADMIN_READ = "mfa:admin_read"        # MFA利用状況の集計閲覧

""" 権限グループ（関連する権限をまとめる） """
PERMISSION_GROUPS = {

    # MFA管理関連
    "mfa_administration": [
        Permission.MFA_ADMIN_UNLOCK, Permission.MFA_ADMIN_READ
    ],
}

""" 全権限セット（SUPER_ADMIN用：全ての操作が可能） """
ALL_PERMISSIONS = set(Permission)
