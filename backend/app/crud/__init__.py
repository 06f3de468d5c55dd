from .user import (
    create_user,
    get_user_by_email,
    get_user_by_id,
    get_user_by_reset_token_digest,
    set_mfa_reset_token,
    clear_mfa_reset_token_if_valid,
    touch_last_login,
)


__all__ = [
    "create_user",
    "get_user_by_email",
    "get_user_by_id",
    "get_user_by_reset_token_digest",
    "set_mfa_reset_token",
    "clear_mfa_reset_token_if_valid",
    "touch_last_login",
]
