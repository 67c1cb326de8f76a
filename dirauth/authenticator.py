"""
Directory Authenticator
=======================
Sequences bind, post-bind enrichment handlers and policy evaluation into a
single authenticate() call.

Flow:
    credentials -> username generator -> bind -> handlers (in registration
    order) accumulate user_data -> assert_access -> identity generator

Handlers are plain callables ``(directory, user_data) -> value`` registered
under the user_data key they own. A handler returning None leaves its key
unset, which policy evaluation treats as "not loaded".
"""

import logging
from typing import Any, Callable, Dict, Optional

from dirauth.directory import DirectoryQuery, LDAPDirectory
from dirauth.exceptions import ConfigurationError
from dirauth.handlers import GroupsLoader, ThumbnailLoader, UserInfoLoader
from dirauth.models import Identity, PolicyConfig
from dirauth.policy import MEMBER_OF_KEY, MEMBERSHIPS_NOT_LOADED, assert_access, derive_roles
from dirauth.utils import normalize_username

logger = logging.getLogger(__name__)

Handler = Callable[[DirectoryQuery, Dict[str, Any]], Any]
UsernameGenerator = Callable[[DirectoryQuery, str], str]
IdentityGenerator = Callable[[DirectoryQuery, Dict[str, Any]], Any]


class Authenticator:
    """
    Authenticates users against a directory and builds their identity.

    One instance owns one directory session, so authenticate() calls on the
    same instance must not overlap.
    """

    def __init__(
        self,
        directory: DirectoryQuery,
        policy: Optional[PolicyConfig] = None,
        domain: str = "",
        fqdn: str = "",
        username_generator: Optional[UsernameGenerator] = None,
        identity_generator: Optional[IdentityGenerator] = None,
    ):
        """
        Args:
            directory: Directory capability used for bind and searches
            policy: Group based access policy, defaults to "no policy"
            domain: E-mail domain stripped from logins (jsmith@corp.com -> jsmith)
            fqdn: Directory domain appended on bind, defaults to `domain`
            username_generator: Replaces create_username
            identity_generator: Replaces create_identity
        """
        self.directory = directory
        self.policy = policy or PolicyConfig()
        self.domain = domain
        self.fqdn = fqdn or domain
        self.handlers: Dict[str, Handler] = {}
        self.username_generator: UsernameGenerator = username_generator or self.create_username
        self.identity_generator: IdentityGenerator = identity_generator or self.create_identity

    @classmethod
    def from_settings(
        cls,
        settings,
        directory: Optional[DirectoryQuery] = None,
        policy: Optional[PolicyConfig] = None,
    ) -> "Authenticator":
        """Build an authenticator with the default handlers wired from settings."""
        policy = policy or PolicyConfig.from_settings(settings)
        if directory is None:
            directory = LDAPDirectory.from_settings(settings)

        authenticator = cls(directory, policy, domain=settings.domain, fqdn=settings.fqdn)
        authenticator.register_default_handlers(
            user_attributes=settings.user_attributes,
            load_thumbnail=settings.load_thumbnail,
            nested_group_workers=settings.nested_group_workers,
        )
        return authenticator

    def register_default_handlers(
        self,
        user_attributes: Optional[Dict[str, str]] = None,
        load_thumbnail: bool = False,
        nested_group_workers: int = 1,
    ) -> None:
        """
        Register userinfo always, memberOf when the policy needs memberships
        and thumbnail on request.
        """
        self.add_handler('userinfo', UserInfoLoader(user_attributes).get_user_info)
        if self.policy.requires_memberships:
            self.add_handler(MEMBER_OF_KEY, GroupsLoader(nested_group_workers).get_user_groups)
        if load_thumbnail:
            self.add_handler('thumbnail', ThumbnailLoader().get_thumbnail)

    def set_username_generator(self, handler: UsernameGenerator) -> None:
        self.username_generator = handler

    def set_identity_generator(self, handler: IdentityGenerator) -> None:
        self.identity_generator = handler

    def add_handler(self, key: str, handler: Handler) -> None:
        """Register (or replace, keeping its position) the handler owning user_data[key]."""
        self.handlers[key] = handler

    def remove_handler(self, key: str) -> None:
        self.handlers.pop(key, None)

    def authenticate(self, username: str, password: str):
        """
        Authenticate against the directory.

        Returns:
            Whatever the identity generator returns (Identity by default)

        Raises:
            InvalidCredentials: bind rejected
            ConfigurationError: memberships required but not loaded
            UserInRefuseGroup / UserNotInAllowedGroup: refused by group policy
            DirectoryCommunicationError: directory failure, not retried
        """
        username = self.username_generator(self.directory, username)
        bind_user = f"{username}@{self.fqdn}" if self.fqdn and '@' not in username else username

        try:
            self.directory.bind(bind_user, password)
            data: Dict[str, Any] = {
                'username': username,
                'fqdn': self.fqdn,
            }

            for key, handler in self.handlers.items():
                value = handler(self.directory, dict(data))
                if value is None:
                    data.pop(key, None)
                else:
                    data[key] = value

            assert_access(data, self.policy)
            identity = self.identity_generator(self.directory, data)
        finally:
            self.directory.unbind()

        logger.info(f"[AUTH] {username} authenticated")
        return identity

    def create_username(self, directory: DirectoryQuery, username: str) -> str:
        """
        Default username generator. Allows logins via both the account name
        and the e-mail address in the configured domain.
        """
        return normalize_username(username, self.domain)

    def create_identity(self, directory: DirectoryQuery, user_data: Dict[str, Any]) -> Identity:
        if self.policy.requires_memberships and user_data.get(MEMBER_OF_KEY) is None:
            raise ConfigurationError(MEMBERSHIPS_NOT_LOADED)

        roles = derive_roles(user_data, self.policy)
        return Identity(
            id=user_data.get('id') or user_data['username'],
            roles=roles,
            data=user_data,
        )
