# # Copyright (c) 2024 LDAP Query Client
# # SPDX-License-Identifier: MIT
# #
# # LDAP Query Client
# # One-shot LDAPv3 directory search over STARTTLS

"""Directory session wrapping a single ldap3 connection."""

import ssl
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

import ldap3
from ldap3 import ANONYMOUS, NONE, SIMPLE, SUBTREE, SYNC, Connection, Server
from ldap3.core.exceptions import LDAPException

from ..config.models import BindCredentials, DirectoryConfig, SearchConfig, SecurityConfig
from .errors import (
    BindError,
    ConnectionInitError,
    DirectoryQueryError,
    OptionError,
    SearchError,
    TlsNegotiationError,
)
from .logging import get_logger, log_stage

logger = get_logger(__name__)

SUPPORTED_PROTOCOL_VERSIONS = (2, 3)
RESULT_SUCCESS = 0


def describe_result(result: dict[str, Any] | None) -> str:
    """
    Render an ldap3 result dictionary as error text.

    Args:
        result: ``connection.result`` after an operation

    Returns:
        Description, followed by the server diagnostic message when present
    """
    if not result:
        return "unknown error"

    description = result.get("description") or f"result code {result.get('result')}"
    message = result.get("message")
    if message:
        return f"{description} ({message})"
    return description


def decode_value(value: bytes | str) -> str:
    """Render an attribute value as text without interpreting its syntax."""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


@dataclass
class DirectoryEntry:
    """
    One entry of a search result.

    The entry is a view into the owning :class:`SearchResult` and holds the raw
    attribute values in the order the server returned them.
    """

    dn: str
    attributes: dict[str, list[bytes]] = field(default_factory=dict)

    def iter_values(self) -> Iterator[tuple[str, str]]:
        """Yield ``(attribute, value)`` pairs, one per value."""
        for name, values in self.attributes.items():
            for value in values or ():
                yield name, decode_value(value)


class SearchResult:
    """Entries returned by one search, released exactly once."""

    def __init__(self, entries: list[DirectoryEntry]):
        self._entries: list[DirectoryEntry] | None = entries

    @property
    def released(self) -> bool:
        return self._entries is None

    @property
    def count(self) -> int:
        return len(self._entries or [])

    def __iter__(self) -> Iterator[DirectoryEntry]:
        if self._entries is None:
            raise RuntimeError("Search result has already been released")
        return iter(self._entries)

    def release(self) -> None:
        """Drop the entries. Safe to call more than once."""
        if self._entries is not None:
            logger.debug(f"Releasing search result with {len(self._entries)} entries")
            self._entries = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()


class DirectorySession:
    """
    A single synchronous session with a directory server.

    Each workflow step is a method that either advances the session or raises
    the matching :class:`~ldap_query_client.core.errors.DirectoryQueryError`:

    - ``open`` creates the handle without network traffic
    - ``set_protocol_version`` sets the LDAP protocol version
    - ``start_tls`` opens the socket and upgrades it with STARTTLS
    - ``bind`` performs the simple bind
    - ``search`` runs the subtree search

    ``close`` unbinds and is a no-op when no handle was ever created or when the
    session is already closed.
    """

    def __init__(
        self,
        directory_config: DirectoryConfig,
        security_config: SecurityConfig,
        credentials: BindCredentials,
    ):
        """
        Initialize the directory session.

        Args:
            directory_config: Directory server configuration
            security_config: Transport security configuration
            credentials: Resolved bind identity
        """
        self.directory_config = directory_config
        self.security_config = security_config
        self.credentials = credentials

        self._server: Server | None = None
        self._connection: Connection | None = None

    @property
    def connection(self) -> Connection:
        if self._connection is None:
            raise RuntimeError("Directory session is not open")
        return self._connection

    @property
    def is_open(self) -> bool:
        return self._connection is not None

    def open(self) -> None:
        """
        Create the server description and the unbound connection handle.

        Raises:
            ConnectionInitError: If the URI is malformed or the handle cannot be created
        """
        uri = self.directory_config.server_uri

        try:
            tls_config = ldap3.Tls(
                validate=(
                    ssl.CERT_REQUIRED
                    if self.security_config.validate_certificate
                    else ssl.CERT_NONE
                ),
                ca_certs_file=self.security_config.ca_cert_file,
            )

            self._server = Server(
                uri,
                get_info=NONE,
                tls=tls_config,
                connect_timeout=self.directory_config.connect_timeout,
            )

            if self.credentials.password:
                authentication = SIMPLE
            else:
                # ldap3 refuses SIMPLE with an empty password; ANONYMOUS sends the
                # same simple bind with the given name and an empty password
                authentication = ANONYMOUS

            user = self.credentials.bind_dn or None
            password = self.credentials.password or None

            self._connection = Connection(
                self._server,
                user=user,
                password=password,
                authentication=authentication,
                client_strategy=SYNC,
                auto_bind=False,
                receive_timeout=self.directory_config.receive_timeout,
                return_empty_attributes=False,
                raise_exceptions=False,
            )

        except LDAPException as e:
            self._server = None
            raise self._failed("open", uri, ConnectionInitError(str(e))) from e

        log_stage("open", uri)

    def set_protocol_version(self, version: int) -> None:
        """
        Set the protocol version used by all subsequent requests.

        Raises:
            OptionError: If the version is not supported
        """
        uri = self.directory_config.server_uri

        if version not in SUPPORTED_PROTOCOL_VERSIONS:
            raise self._failed(
                "protocol_version",
                uri,
                OptionError(f"Bad parameter to an ldap routine (unsupported version {version})"),
            )

        self.connection.version = version
        log_stage("protocol_version", uri, details=f"LDAPv{version}")

    def start_tls(self) -> None:
        """
        Open the transport and, when configured, upgrade it with STARTTLS.

        An ``ldaps://`` URI is already encrypted and skips the upgrade.

        Raises:
            TlsNegotiationError: If the socket cannot be opened or the handshake fails
        """
        connection = self.connection
        uri = self.directory_config.server_uri
        implicit_tls = uri.lower().startswith("ldaps://")

        try:
            connection.open(read_server_info=False)

            if not self.security_config.start_tls or implicit_tls:
                log_stage("starttls", uri, details="skipped, transport left as opened")
                return

            started = connection.start_tls(read_server_info=False)

        except (LDAPException, OSError) as e:
            raise self._failed("starttls", uri, TlsNegotiationError(str(e))) from e

        if not started:
            raise self._failed(
                "starttls", uri, TlsNegotiationError(describe_result(connection.result))
            )

        log_stage("starttls", uri)

    def bind(self) -> None:
        """
        Perform the simple bind. Server credentials in the response are ignored.

        A DN with an empty password goes out as an unauthenticated bind and the
        server decides. A password without a DN cannot be expressed as a simple
        bind by ldap3, so it is refused here instead of being dropped.

        Raises:
            BindError: If the bind is rejected or the request cannot be sent
        """
        connection = self.connection
        dn = self.credentials.bind_dn or "anonymous"

        if self.credentials.anonymous and self.credentials.password:
            raise self._failed("bind", dn, BindError("password given without a bind DN"))

        try:
            bound = connection.bind(read_server_info=False)
        except LDAPException as e:
            raise self._failed("bind", dn, BindError(str(e))) from e

        if not bound:
            raise self._failed("bind", dn, BindError(describe_result(connection.result)))

        log_stage("bind", dn)

    def search(self, search_config: SearchConfig) -> SearchResult:
        """
        Perform the subtree search.

        Args:
            search_config: Base, filter, attributes and server-side limits

        Returns:
            SearchResult: Entries in arrival order

        Raises:
            SearchError: If the search fails, including size limit exceeded
        """
        connection = self.connection

        logger.debug(
            f"Searching: base={search_config.base_dn}, filter={search_config.search_filter}"
        )

        try:
            connection.search(
                search_base=search_config.base_dn,
                search_filter=search_config.search_filter,
                search_scope=SUBTREE,
                attributes=list(search_config.attributes),
                size_limit=search_config.size_limit,
                time_limit=search_config.time_limit,
                types_only=False,
            )
        except LDAPException as e:
            raise self._failed("search", search_config.base_dn, SearchError(str(e))) from e

        result = connection.result or {}
        if result.get("result") != RESULT_SUCCESS:
            raise self._failed(
                "search", search_config.base_dn, SearchError(describe_result(result))
            )

        entries = [
            self._process_entry(item)
            for item in connection.response or []
            if item.get("type") == "searchResEntry"
        ]

        log_stage("search", search_config.base_dn, details=f"{len(entries)} entries")
        return SearchResult(entries)

    def _failed(self, stage: str, target: str, error: DirectoryQueryError) -> DirectoryQueryError:
        """Audit a failed stage and hand the error back for raising."""
        log_stage(stage, target, error)
        return error

    def _process_entry(self, item: dict[str, Any]) -> DirectoryEntry:
        """
        Convert an ldap3 response item into a directory entry.

        Args:
            item: ``searchResEntry`` item from ``connection.response``

        Returns:
            DirectoryEntry with raw attribute values
        """
        raw_attributes = item.get("raw_attributes") or {}
        return DirectoryEntry(
            dn=item.get("dn", ""),
            attributes={name: list(values) for name, values in raw_attributes.items()},
        )

    def close(self) -> None:
        """Unbind and drop the connection handle."""
        if self._connection is None:
            return

        try:
            self._connection.unbind()
            log_stage("unbind", self.directory_config.server_uri)
        except (LDAPException, OSError) as e:
            logger.warning(f"Error during disconnect: {e}")
        finally:
            self._connection = None
            self._server = None

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
