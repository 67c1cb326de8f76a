"""Base class for post-bind enrichment handlers"""

import logging
from typing import Dict, Optional, Sequence

from ldap3.utils.conv import escape_filter_chars

from dirauth.directory import DirectoryQuery, Entry

logger = logging.getLogger(__name__)

# Accepts the login either as a principal name or as the pre-2000 account name
USER_LOOKUP = '(|(userprincipalname={upn})(sAMAccountName={username}))'


def build_user_lookup(username: str, upn: Optional[str] = None) -> str:
    """
    Build the user lookup filter.

    Args:
        username: Short account name (already normalized)
        upn: userPrincipalName to match, defaults to the username itself
    """
    return USER_LOOKUP.format(
        upn=escape_filter_chars(upn or username),
        username=escape_filter_chars(username),
    )


def user_principal_name(user_data: Dict) -> Optional[str]:
    """username@fqdn when the bind domain is known, else None."""
    username = user_data.get('username') or ''
    fqdn = user_data.get('fqdn')
    if fqdn and '@' not in username:
        return f"{username}@{fqdn}"
    return None


class BaseHandler:
    """
    Shared plumbing for enrichment handlers.

    A handler is any callable ``(directory, user_data) -> value``; subclasses
    expose one bound method of that shape and register it on the
    Authenticator under the key they own.
    """

    def find_user(
        self,
        directory: DirectoryQuery,
        user_data: Dict,
        attributes: Optional[Sequence[str]] = None,
    ) -> Optional[Entry]:
        """Look up the authenticated user's entry, projecting `attributes`."""
        username = user_data['username']
        search_filter = build_user_lookup(username, user_principal_name(user_data))
        entry = directory.search_one(None, search_filter, attributes)
        if entry is None:
            logger.warning(f"User {username} authenticated but not found with {search_filter}")
        return entry
