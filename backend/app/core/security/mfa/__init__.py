"""
MFA（Multi-Factor Authentication）モジュール
"""

from .config import MFAConfig, mfa_config
from .errors import MFAError, MFAErrorKind

__all__ = [
    "MFAConfig",
    "mfa_config",
    "MFAError",
    "MFAErrorKind",
]
