"""Static user information loader"""

import logging
from typing import Any, Dict, Optional

from dirauth.directory import DirectoryQuery
from dirauth.handlers.base import BaseHandler
from dirauth.utils import convert_sid_to_string

logger = logging.getLogger(__name__)

SID_ATTRIBUTE = 'objectSid'

# directory attribute -> user_data key
DEFAULT_USER_ATTRIBUTES = {
    # Useful attributes
    'givenName': 'firstName',
    'sn': 'lastName',
    'name': 'fullName',
    'mail': 'mail',
    'company': 'company',
    'streetAddress': 'street',
    'l': 'city',
    'postalCode': 'zip',
    'c': 'country',
    'st': 'state',

    'mobile': 'mobile',
    'manager': 'manager',
    'department': 'department',

    # Directory attributes
    'sAMAccountName': 'sAMAccountName',
    'userPrincipalName': 'UPN',
    'proxyAddresses': 'proxyAddresses',
    'location': 'ldapLocation',
    'pwdLastSet': 'changePasswordOnLogon',
    SID_ATTRIBUTE: 'sid',
}


class UserInfoLoader(BaseHandler):
    """
    Projects directory attributes of the user onto user_data keys.

    Attributes the directory returns but the map does not name are skipped,
    single-valued attributes are unwrapped and binary objectSid values are
    decoded to their S-1-... string form.
    """

    def __init__(self, load_info: Optional[Dict[str, str]] = None):
        """
        Args:
            load_info: directory attribute -> user_data key, defaults to
                DEFAULT_USER_ATTRIBUTES
        """
        self.load_info = dict(load_info) if load_info is not None else dict(DEFAULT_USER_ATTRIBUTES)
        self._keys = {attribute.lower(): key for attribute, key in self.load_info.items()}

    def _decode_sid(self, entry) -> Optional[str]:
        raw = entry.get_raw(SID_ATTRIBUTE)
        value = raw[0] if raw else entry.first(SID_ATTRIBUTE)
        if isinstance(value, (bytes, bytearray)):
            return convert_sid_to_string(bytes(value))
        # ldap3 already formats objectSid when the schema is known
        return str(value) if value else None

    def get_user_info(self, directory: DirectoryQuery, user_data: Dict) -> Dict[str, Any]:
        entry = self.find_user(directory, user_data, list(self.load_info))
        if entry is None:
            return {}

        info: Dict[str, Any] = {}
        for attribute in entry.attributes:
            key = self._keys.get(attribute.lower())
            if key is None:
                continue

            if attribute.lower() == SID_ATTRIBUTE.lower():
                sid = self._decode_sid(entry)
                if sid:
                    info[key] = sid
                continue

            values = entry.get(attribute)
            if not values:
                continue
            info[key] = values[0] if len(values) == 1 else values

        logger.debug(f"Loaded {len(info)} attribute(s) for {user_data['username']}")
        return info
