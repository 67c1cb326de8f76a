"""
Directory Query Capability
==========================
The only seam between dirauth and the LDAP wire protocol.

Everything above this module (membership resolution, handlers, the
authenticator) talks to a :class:`DirectoryQuery`: bind, search, unbind.
:class:`LDAPDirectory` implements it with ldap3 and supports:
- LDAPS with optional CA certificate validation
- Multiple servers combined into a ServerPool (first reachable wins)
- Simple paged results for directory-wide scans (group catalog)
- A thread-safe client strategy for parallel nested group resolution
"""

import ssl
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ldap3 import (
    ALL,
    ALL_ATTRIBUTES,
    FIRST,
    LEVEL,
    SAFE_SYNC,
    SUBTREE,
    SYNC,
    Connection,
    Server,
    ServerPool,
    Tls,
)
from ldap3.core.exceptions import LDAPBindError, LDAPException, LDAPInvalidCredentialsResult

from dirauth.exceptions import DirectoryCommunicationError, InvalidCredentials

logger = logging.getLogger(__name__)

# Simple Paged Results control (RFC 2696)
PAGED_RESULTS_OID = '1.2.840.113556.1.4.319'


@dataclass
class Entry:
    """A directory entry: DN plus multi-valued attributes"""
    dn: str
    attributes: Dict[str, List[Any]] = field(default_factory=dict)
    raw_attributes: Dict[str, List[bytes]] = field(default_factory=dict)

    def __post_init__(self):
        # LDAP attribute names are case-insensitive
        self._names = {name.lower(): name for name in self.attributes}
        self._raw_names = {name.lower(): name for name in self.raw_attributes}

    def has(self, name: str) -> bool:
        """True if the directory returned the attribute at all (even with no values)."""
        return name.lower() in self._names

    def get(self, name: str) -> List[Any]:
        """All values of an attribute, [] when absent."""
        key = self._names.get(name.lower())
        if key is None:
            return []
        return list(self.attributes[key])

    def first(self, name: str, default: Any = None) -> Any:
        values = self.get(name)
        return values[0] if values else default

    def get_raw(self, name: str) -> List[bytes]:
        key = self._raw_names.get(name.lower())
        if key is None:
            return []
        return list(self.raw_attributes[key])


class DirectoryQuery:
    """
    Search capability consumed by the resolver and the handlers.

    Implementations must raise DirectoryCommunicationError for transport or
    protocol failures and InvalidCredentials for a rejected bind.
    """

    def bind(self, user: str, password: str) -> None:
        raise NotImplementedError

    def unbind(self) -> None:
        pass

    def search(
        self,
        base_dn: Optional[str],
        search_filter: str,
        subtree: bool = True,
        attributes: Optional[Sequence[str]] = None,
    ) -> List[Entry]:
        """
        Run a search.

        Args:
            base_dn: Search base, None for the directory's default base
            search_filter: RFC 4515 filter string
            subtree: Whole subtree when True, one level when False
            attributes: Attributes to project, None for all user attributes

        Returns:
            Matching entries (possibly empty)
        """
        raise NotImplementedError

    def search_one(
        self,
        base_dn: Optional[str],
        search_filter: str,
        attributes: Optional[Sequence[str]] = None,
    ) -> Optional[Entry]:
        """First matching entry, or None."""
        entries = self.search(base_dn, search_filter, True, attributes)
        return entries[0] if entries else None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.unbind()
        return False


class LDAPDirectory(DirectoryQuery):
    """
    ldap3-backed directory session.

    One instance holds at most one bound connection; bind() opens it with the
    user's own credentials and unbind() closes it.
    """

    def __init__(
        self,
        servers: Sequence[str],
        base_dn: str,
        port: Optional[int] = None,
        use_ssl: bool = False,
        verify_certificate: bool = True,
        ca_certificate: Optional[str] = None,
        connection_timeout: int = 10,
        page_size: int = 500,
        thread_safe: bool = False,
    ):
        """
        Args:
            servers: One or more hostnames or ldap(s):// URLs
            base_dn: Default search base (e.g., 'dc=corp,dc=local')
            port: Port override, None for the protocol default
            use_ssl: Use LDAPS
            verify_certificate: Verify the server certificate when using LDAPS
            ca_certificate: Path to CA certificate file for validation
            connection_timeout: Connect timeout in seconds
            page_size: Paged search size, 0 disables paging
            thread_safe: Use ldap3's SAFE_SYNC strategy so searches can run
                from several threads
        """
        if isinstance(servers, str):
            servers = [s.strip() for s in servers.split(',') if s.strip()]
        if not servers:
            raise ValueError("At least one LDAP server is required")

        self.servers = list(servers)
        self.base_dn = base_dn
        self.port = port
        self.use_ssl = use_ssl
        self.verify_certificate = verify_certificate
        self.ca_certificate = ca_certificate
        self.connection_timeout = connection_timeout
        self.page_size = page_size
        self.thread_safe = thread_safe

        self._server = None
        self._conn: Optional[Connection] = None
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings, thread_safe: Optional[bool] = None) -> "LDAPDirectory":
        if thread_safe is None:
            thread_safe = settings.nested_group_workers > 1
        return cls(
            servers=settings.servers,
            base_dn=settings.base_dn,
            port=settings.port,
            use_ssl=settings.use_ssl,
            verify_certificate=settings.verify_certificate,
            ca_certificate=settings.ca_certificate,
            connection_timeout=settings.connection_timeout,
            page_size=settings.page_size,
            thread_safe=thread_safe,
        )

    def _get_server(self):
        """Get or create the LDAP server (or server pool)."""
        if self._server is None:
            tls_config = None
            if self.use_ssl:
                tls_config = Tls(
                    validate=ssl.CERT_REQUIRED if self.verify_certificate else ssl.CERT_NONE,
                    ca_certs_file=self.ca_certificate if self.ca_certificate else None,
                )

            servers = [
                Server(
                    host,
                    port=self.port,
                    use_ssl=self.use_ssl,
                    tls=tls_config,
                    get_info=ALL,
                    connect_timeout=self.connection_timeout,
                )
                for host in self.servers
            ]
            if len(servers) == 1:
                self._server = servers[0]
            else:
                logger.info(f"Creating LDAP server pool: {', '.join(self.servers)}")
                self._server = ServerPool(servers, FIRST, active=True, exhaust=False)
        return self._server

    @property
    def bound(self) -> bool:
        return self._conn is not None

    def bind(self, user: str, password: str) -> None:
        # An empty password would be an anonymous ("unauthenticated") bind
        # that most directories accept; never treat that as a login.
        if not password:
            raise InvalidCredentials()

        if self._conn is not None:
            self.unbind()

        try:
            self._conn = Connection(
                self._get_server(),
                user=user,
                password=password,
                auto_bind=True,
                raise_exceptions=True,
                read_only=True,
                return_empty_attributes=False,
                client_strategy=SAFE_SYNC if self.thread_safe else SYNC,
            )
        except (LDAPBindError, LDAPInvalidCredentialsResult) as e:
            logger.error(f"LDAP bind failed for {user}: {e}")
            raise InvalidCredentials() from e
        except LDAPException as e:
            logger.error(f"LDAP error binding {user}: {e}")
            raise DirectoryCommunicationError(f"LDAP error: {e}") from e

        logger.info(f"LDAP bind successful for {user}")

    def unbind(self) -> None:
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        try:
            conn.unbind()
        except LDAPException as e:
            logger.warning(f"LDAP unbind failed: {e}")

    def _run_search(self, conn: Connection, kwargs: Dict[str, Any]) -> Tuple[Dict, List[Dict]]:
        if self.thread_safe:
            _status, result, response, _request = conn.search(**kwargs)
            return result or {}, response or []

        with self._lock:
            conn.search(**kwargs)
            return conn.result or {}, list(conn.response or [])

    @staticmethod
    def _page_cookie(result: Dict) -> Optional[bytes]:
        controls = result.get('controls') or {}
        paged = controls.get(PAGED_RESULTS_OID) or {}
        return (paged.get('value') or {}).get('cookie') or None

    @staticmethod
    def _to_entry(item: Dict) -> Entry:
        attributes = {}
        for name, value in (item.get('attributes') or {}).items():
            attributes[name] = list(value) if isinstance(value, (list, tuple)) else [value]
        raw_attributes = {
            name: list(value) for name, value in (item.get('raw_attributes') or {}).items()
        }
        return Entry(dn=str(item.get('dn', '')), attributes=attributes, raw_attributes=raw_attributes)

    def search(
        self,
        base_dn: Optional[str],
        search_filter: str,
        subtree: bool = True,
        attributes: Optional[Sequence[str]] = None,
    ) -> List[Entry]:
        conn = self._conn
        if conn is None:
            raise DirectoryCommunicationError("LDAP search attempted before bind")

        kwargs: Dict[str, Any] = {
            'search_base': base_dn or self.base_dn,
            'search_filter': search_filter,
            'search_scope': SUBTREE if subtree else LEVEL,
            'attributes': list(attributes) if attributes else ALL_ATTRIBUTES,
        }

        entries: List[Entry] = []
        cookie = None
        try:
            while True:
                if self.page_size:
                    kwargs['paged_size'] = self.page_size
                    kwargs['paged_cookie'] = cookie

                result, response = self._run_search(conn, kwargs)
                for item in response:
                    if item.get('type') == 'searchResEntry':
                        entries.append(self._to_entry(item))

                cookie = self._page_cookie(result)
                if not self.page_size or not cookie:
                    break
        except LDAPException as e:
            logger.error(f"LDAP search failed for {search_filter}: {e}")
            raise DirectoryCommunicationError(f"LDAP search failed: {e}") from e

        logger.debug(f"LDAP search {search_filter} returned {len(entries)} entr{'y' if len(entries) == 1 else 'ies'}")
        return entries
