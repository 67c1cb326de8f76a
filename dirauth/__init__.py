"""
dirauth - directory (LDAP / Active Directory) authentication.

Provides:
- Bind against the directory with the user's own credentials
- Post-bind enrichment handlers (user attributes, nested groups, thumbnail)
- Group based access policy (allow / refuse lists, admin groups, role mapping)
"""

__version__ = "1.0.0"

from dirauth.authenticator import Authenticator
from dirauth.directory import DirectoryQuery, Entry, LDAPDirectory
from dirauth.exceptions import (
    AuthenticationError,
    ConfigurationError,
    DirectoryAuthError,
    DirectoryCommunicationError,
    FailureReason,
    Forbidden,
    ForbiddenKind,
    InvalidCredentials,
    UserInRefuseGroup,
    UserNotInAllowedGroup,
)
from dirauth.models import Allowed, GroupRecord, Identity, PolicyConfig, Rejected
from dirauth.policy import AccessPolicyEngine, assert_access, derive_roles, evaluate
from dirauth.utils import extract_name

__all__ = [
    'Authenticator',
    'DirectoryQuery',
    'Entry',
    'LDAPDirectory',
    'AuthenticationError',
    'ConfigurationError',
    'DirectoryAuthError',
    'DirectoryCommunicationError',
    'FailureReason',
    'Forbidden',
    'ForbiddenKind',
    'InvalidCredentials',
    'UserInRefuseGroup',
    'UserNotInAllowedGroup',
    'Allowed',
    'GroupRecord',
    'Identity',
    'PolicyConfig',
    'Rejected',
    'AccessPolicyEngine',
    'assert_access',
    'derive_roles',
    'evaluate',
    'extract_name',
]
