"""Error taxonomy for directory authentication"""

from enum import Enum
from typing import Optional


class FailureReason(Enum):
    """Reason code attached to every authentication failure"""
    BAD_CREDENTIALS = "bad_credentials"
    FORBIDDEN_BLACKLIST = "forbidden_blacklist"
    FORBIDDEN_WHITELIST = "forbidden_whitelist"
    CONFIGURATION_ERROR = "configuration_error"
    DIRECTORY_ERROR = "directory_error"


class ForbiddenKind(Enum):
    """Which group list rejected the login"""
    BLACKLIST = "blacklist"
    WHITELIST = "whitelist"


class DirectoryAuthError(Exception):
    """Base class for everything raised by dirauth"""
    reason: Optional[FailureReason] = None


class AuthenticationError(DirectoryAuthError):
    """Authentication was refused. Carries a distinguishable reason code."""

    def __init__(self, message: str, reason: Optional[FailureReason] = None):
        super().__init__(message)
        if reason is not None:
            self.reason = reason


class InvalidCredentials(AuthenticationError):
    """Bind rejected by the directory."""
    reason = FailureReason.BAD_CREDENTIALS

    def __init__(self, message: str = "Username or password is not valid"):
        super().__init__(message)


class ConfigurationError(AuthenticationError):
    """
    Memberships were required but never loaded into user data.

    This points at a setup defect (handler missing, attribute not returned by
    the directory) rather than a real access denial.
    """
    reason = FailureReason.CONFIGURATION_ERROR


class Forbidden(AuthenticationError):
    """Policy-driven rejection based on group membership"""

    def __init__(self, message: str, kind: ForbiddenKind, group: Optional[str] = None):
        reason = (
            FailureReason.FORBIDDEN_BLACKLIST
            if kind is ForbiddenKind.BLACKLIST
            else FailureReason.FORBIDDEN_WHITELIST
        )
        super().__init__(message, reason)
        self.kind = kind
        self.group = group


class UserInRefuseGroup(Forbidden):
    """User is a member of a refused group"""

    def __init__(self, group: str):
        super().__init__(
            f"Members of {group} are not allowed to login.",
            ForbiddenKind.BLACKLIST,
            group,
        )


class UserNotInAllowedGroup(Forbidden):
    """User is not a member of any allowed group"""

    def __init__(self):
        super().__init__(
            "You are not member of allowed groups that can login.",
            ForbiddenKind.WHITELIST,
        )


class DirectoryCommunicationError(DirectoryAuthError):
    """The directory could not be queried. Never retried here."""
    reason = FailureReason.DIRECTORY_ERROR
