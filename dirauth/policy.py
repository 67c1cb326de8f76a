"""
Access Policy Engine
====================
Turns a resolved membership map into an access decision and a role list.

Pure functions over (user_data, PolicyConfig): no directory access, so they
can be exercised with synthetic membership maps.

Evaluation order:
1. Memberships required but not loaded -> ConfigurationError
2. Memberships not loaded -> no group based policy applies
3. Any refused group -> Forbidden (blacklist), checked before the allow list
4. Allow list configured but no allowed group -> Forbidden (whitelist)
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from dirauth.exceptions import (
    AuthenticationError,
    ConfigurationError,
    UserInRefuseGroup,
    UserNotInAllowedGroup,
)
from dirauth.models import (
    Allowed,
    AuthorizationDecision,
    MembershipMap,
    PolicyConfig,
    Rejected,
)

logger = logging.getLogger(__name__)

MEMBER_OF_KEY = 'memberOf'
ADMIN_ROLE = 'admin'

MEMBERSHIPS_NOT_LOADED = (
    'LDAP did not load any memberships (even empty ones) for this user. '
    'Make sure you return groups into "memberOf" key of userdata.'
)


def _memberships(user_data: Dict[str, Any]) -> Optional[MembershipMap]:
    return user_data.get(MEMBER_OF_KEY)


def flatten_memberships(member_of: Optional[MembershipMap]) -> List[str]:
    """
    Group identifiers a policy list may refer to: DN then short name of each
    group, in traversal order, without duplicates.
    """
    flattened: List[str] = []
    seen = set()
    for dn, record in (member_of or {}).items():
        for identifier in (dn, record.name):
            if identifier and identifier not in seen:
                seen.add(identifier)
                flattened.append(identifier)
    return flattened


def _first_match(flattened: Iterable[str], groups) -> Optional[str]:
    for identifier in flattened:
        if identifier in groups:
            return identifier
    return None


def assert_access(user_data: Dict[str, Any], config: PolicyConfig) -> None:
    """
    Allow or refuse login based on group membership.

    Raises:
        ConfigurationError: memberships required but absent from user data
        UserInRefuseGroup: member of a refused group (names the first match)
        UserNotInAllowedGroup: allow list configured and no group matches
    """
    member_of = _memberships(user_data)

    if config.requires_memberships and member_of is None:
        logger.error(f"[POLICY] {MEMBERSHIPS_NOT_LOADED}")
        raise ConfigurationError(MEMBERSHIPS_NOT_LOADED)
    if member_of is None:
        return

    flattened = flatten_memberships(member_of)

    # Blacklist: ANY refused group rejects
    refused = _first_match(flattened, config.refuse_groups or ())
    if refused is not None:
        logger.warning(f"[POLICY] {user_data.get('username')} refused: member of {refused}")
        raise UserInRefuseGroup(refused)

    # Whitelist: only enforced when configured
    if config.allow_groups is not None and _first_match(flattened, config.allow_groups) is None:
        logger.warning(f"[POLICY] {user_data.get('username')} refused: not in any allowed group")
        raise UserNotInAllowedGroup()


def _append_unique(roles: List[str], role: Optional[str]) -> None:
    if role and role not in roles:
        roles.append(role)


def _mail_roles(member_of: MembershipMap) -> List[str]:
    return [record.mail for record in member_of.values() if record.mail]


def _mapped_roles(member_of: MembershipMap, role_map: Dict[str, str]) -> List[str]:
    roles = []
    for dn, record in member_of.items():
        # DN, then short name, then mail alias; every hit counts
        for identifier in (dn, record.name, record.mail):
            if identifier and identifier in role_map:
                roles.append(role_map[identifier])
    return roles


def is_admin_member(member_of: Optional[MembershipMap], admin_groups) -> bool:
    flattened = flatten_memberships(member_of)
    return any(group in flattened for group in admin_groups)


def derive_roles(user_data: Dict[str, Any], config: PolicyConfig) -> List[str]:
    """
    Derive the role list from memberships.

    Order: mail alias roles, mapped roles, then "admin". Duplicates are
    dropped keeping the first occurrence. Never raises.
    """
    roles: List[str] = []
    member_of = _memberships(user_data) or {}

    if config.derive_mail_roles:
        for role in _mail_roles(member_of):
            _append_unique(roles, role)

    if config.role_map:
        for role in _mapped_roles(member_of, config.role_map):
            _append_unique(roles, role)

    if config.admin_groups and ADMIN_ROLE not in roles and is_admin_member(member_of, config.admin_groups):
        roles.append(ADMIN_ROLE)

    return roles


def evaluate(user_data: Dict[str, Any], config: PolicyConfig) -> AuthorizationDecision:
    """assert_access + derive_roles folded into Allowed / Rejected."""
    try:
        assert_access(user_data, config)
    except AuthenticationError as e:
        return Rejected(
            reason=e.reason,
            message=str(e),
            kind=getattr(e, 'kind', None),
            group=getattr(e, 'group', None),
        )
    return Allowed(roles=derive_roles(user_data, config))


class AccessPolicyEngine:
    """Binds a PolicyConfig to the policy functions."""

    def __init__(self, config: PolicyConfig):
        self.config = config

    def assert_access(self, user_data: Dict[str, Any]) -> None:
        assert_access(user_data, self.config)

    def derive_roles(self, user_data: Dict[str, Any]) -> List[str]:
        return derive_roles(user_data, self.config)

    def evaluate(self, user_data: Dict[str, Any]) -> AuthorizationDecision:
        return evaluate(user_data, self.config)
