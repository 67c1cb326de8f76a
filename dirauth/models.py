"""Data model shared by the membership resolver, policy engine and authenticator"""

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Union

from dirauth.exceptions import FailureReason, ForbiddenKind


@dataclass(frozen=True)
class GroupRecord:
    """A directory group, keyed by its distinguished name"""
    dn: str
    name: str
    mail: Optional[str] = None   # local part only: "sales" for sales@corp.local


# group DN -> GroupRecord
MembershipMap = Dict[str, GroupRecord]


def _as_group_set(groups: Optional[Iterable[str]]) -> Optional[FrozenSet[str]]:
    if groups is None:
        return None
    if isinstance(groups, str):
        return frozenset([groups])
    return frozenset(groups)


@dataclass(frozen=True)
class PolicyConfig:
    """
    Declarative access policy, supplied once at startup.

    A list set to None is "not configured", which is different from an empty
    list: an empty allow list rejects everybody, a missing one rejects nobody.
    """
    allow_groups: Optional[FrozenSet[str]] = None
    refuse_groups: Optional[FrozenSet[str]] = None
    admin_groups: Optional[FrozenSet[str]] = None
    role_map: Optional[Dict[str, str]] = None
    derive_mail_roles: bool = False
    load_groups: Optional[bool] = None

    def __post_init__(self):
        # Accept plain lists/tuples from callers and store them as frozensets
        object.__setattr__(self, "allow_groups", _as_group_set(self.allow_groups))
        object.__setattr__(self, "refuse_groups", _as_group_set(self.refuse_groups))
        object.__setattr__(self, "admin_groups", _as_group_set(self.admin_groups))
        if self.role_map is not None:
            object.__setattr__(self, "role_map", dict(self.role_map))

    @property
    def requires_memberships(self) -> bool:
        """True when memberships must be loaded before policy evaluation."""
        if self.load_groups is not None:
            return self.load_groups
        return (
            self.allow_groups is not None
            or self.refuse_groups is not None
            or self.admin_groups is not None
            or self.role_map is not None
            or self.derive_mail_roles
        )

    @classmethod
    def from_settings(cls, settings) -> "PolicyConfig":
        """Build the policy from a :class:`dirauth.config.Settings` instance."""
        return cls(
            allow_groups=settings.allow_login,
            refuse_groups=settings.refuse_login,
            admin_groups=settings.admin_groups,
            role_map=settings.roles_map,
            derive_mail_roles=settings.load_roles_as_mail_groups,
            load_groups=settings.load_groups,
        )


@dataclass
class Allowed:
    """Access granted with the derived roles"""
    roles: List[str] = field(default_factory=list)


@dataclass
class Rejected:
    """Access refused"""
    reason: FailureReason
    message: str
    kind: Optional[ForbiddenKind] = None
    group: Optional[str] = None


AuthorizationDecision = Union[Allowed, Rejected]


@dataclass
class Identity:
    """Principal handed back to the host application"""
    id: str
    roles: List[str]
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly view, with group records flattened to dicts."""
        data = dict(self.data)
        member_of = data.get("memberOf")
        if isinstance(member_of, dict):
            data["memberOf"] = {
                dn: {"dn": record.dn, "name": record.name, "mail": record.mail}
                for dn, record in member_of.items()
            }
        return {"id": self.id, "roles": list(self.roles), "data": data}
