"""Pure helpers: DN parsing, filter escaping, username normalisation, SID decoding"""

import logging
import re
from typing import Optional

from ldap3.utils.conv import escape_filter_chars

logger = logging.getLogger(__name__)

# One RDN of a DN: runs of unescaped characters and backslash escapes
_DN_COMPONENT = re.compile(r'(?:\\.|[^,\\])+', re.DOTALL)

# RFC 4514 escape inside an attribute value: "\," or a hex pair "\2c"
_DN_VALUE_ESCAPE = re.compile(r'\\([0-9A-Fa-f]{2}|.)', re.DOTALL)

# Characters that are special inside a DN value (RFC 4514). Backslash is
# already handled by the RFC 4515 filter pass.
_DN_SPECIAL_CHARS = {
    ',': r'\2c',
    '=': r'\3d',
    '+': r'\2b',
    '<': r'\3c',
    '>': r'\3e',
    ';': r'\3b',
    '"': r'\22',
    '#': r'\23',
}


def unescape_dn_value(value: str) -> str:
    """Undo RFC 4514 escaping in an attribute value: "Doe\\, John" -> "Doe, John"."""
    if '\\' not in value:
        return value

    decoded = bytearray()
    pos = 0
    for match in _DN_VALUE_ESCAPE.finditer(value):
        decoded += value[pos:match.start()].encode('utf-8')
        escaped = match.group(1)
        if len(escaped) == 2:
            # Hex pairs are UTF-8 octets; multi-byte characters span several pairs
            decoded.append(int(escaped, 16))
        else:
            decoded += escaped.encode('utf-8')
        pos = match.end()
    decoded += value[pos:].encode('utf-8')
    return decoded.decode('utf-8', errors='replace')


def extract_name(dn: str) -> str:
    """
    Return the unescaped value of the first CN component of a DN.

    Examples:
        extract_name("CN=Admins,OU=Groups,DC=corp,DC=local") -> "Admins"
        extract_name("CN=Doe\\, John,OU=Users,DC=corp") -> "Doe, John"
        extract_name("OU=NoCN,DC=x") -> ""
    """
    if not dn:
        return ""

    for component in _DN_COMPONENT.findall(dn):
        key, sep, value = component.partition('=')
        if sep and key.strip().upper() == 'CN':
            return unescape_dn_value(value.strip())
    return ""


def escape_dn_filter_value(dn: str) -> str:
    """
    Escape a DN for use as an assertion value inside a search filter.

    Applies RFC 4515 filter escaping first (backslash, *, (, ), NUL), then
    hex-escapes the DN special characters and a leading/trailing space so a
    crafted group DN cannot alter the surrounding filter.
    """
    escaped = escape_filter_chars(dn)
    for char, replacement in _DN_SPECIAL_CHARS.items():
        escaped = escaped.replace(char, replacement)

    if escaped.startswith(' '):
        escaped = r'\20' + escaped[1:]
    if escaped.endswith(' '):
        escaped = escaped[:-1] + r'\20'
    return escaped


def normalize_username(username: str, domain: Optional[str] = None) -> str:
    """
    Normalize a login name to the short account name used for bind and lookup.

    Handles:
    - NT-style: CORP\\jsmith -> jsmith
    - Mail/UPN in the configured domain: jsmith@corp.local -> jsmith
    - Bare: JSmith -> jsmith

    A UPN in a different domain is left untouched; it may still match the
    userPrincipalName half of the user lookup.
    """
    name = username.strip().lower()

    if '\\' in name:
        name = name.split('\\', 1)[1]

    if domain:
        suffix = '@' + domain.strip().lower()
        if name.endswith(suffix):
            name = name[:-len(suffix)]

    return name


def mail_local_part(mail: Optional[str]) -> Optional[str]:
    """Return the part of an address before '@', or None for empty input."""
    if not mail:
        return None
    local, _, _ = str(mail).partition('@')
    return local or None


def convert_sid_to_string(sid_binary: bytes) -> Optional[str]:
    """
    Convert Windows binary SID to string format (S-1-5-21-...).

    Args:
        sid_binary: Binary SID bytes from the objectSid attribute

    Returns:
        String SID, or None when the input is too short to be a SID
    """
    if not sid_binary or len(sid_binary) < 8:
        logger.warning(f"[SID] Invalid SID binary: too short ({len(sid_binary) if sid_binary else 0} bytes)")
        return None

    revision = sid_binary[0]
    sub_auth_count = sid_binary[1]

    # Authority is 6 bytes, big-endian
    authority = int.from_bytes(sid_binary[2:8], 'big')

    # Sub-authorities are 4 bytes each, little-endian
    sub_authorities = []
    for i in range(sub_auth_count):
        offset = 8 + i * 4
        if offset + 4 > len(sid_binary):
            logger.warning(f"[SID] SID binary truncated at sub-authority {i}")
            break
        sub_authorities.append(int.from_bytes(sid_binary[offset:offset + 4], 'little'))

    parts = [f"S-{revision}", str(authority)] + [str(s) for s in sub_authorities]
    sid_string = '-'.join(parts)
    logger.debug(f"[SID] Converted binary SID to string: {sid_string}")
    return sid_string
