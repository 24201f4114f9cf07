# # Copyright (c) 2024 LDAP Query Client
# # SPDX-License-Identifier: MIT
# #
# # LDAP Query Client
# # One-shot LDAPv3 directory search over STARTTLS

"""Error taxonomy for the directory query workflow."""


class DirectoryQueryError(Exception):
    """
    Base class for a failed workflow step.

    Attributes:
        operation: Label of the failing operation, used as the diagnostic prefix
        description: Human readable error text supplied by the LDAP library
    """

    operation = "ldap"

    def __init__(self, description: str = ""):
        super().__init__(description)
        self.description = description

    def diagnostic(self) -> str:
        """Return the one-line diagnostic printed on failure."""
        return f"{self.operation}: {self.description}"


class ConnectionInitError(DirectoryQueryError):
    """The connection handle could not be created from the server URI."""

    operation = "ldap_init"

    def diagnostic(self) -> str:
        return "ldap_init failed"


class OptionError(DirectoryQueryError):
    """The protocol version could not be set on the handle."""

    operation = "ldap_set_option(PROTOCOL_VERSION)"


class TlsNegotiationError(DirectoryQueryError):
    """The STARTTLS handshake failed."""

    operation = "ldap_start_tls_s()"


class BindError(DirectoryQueryError):
    """Authentication failed or was rejected."""

    operation = "LDAP bind error"


class SearchError(DirectoryQueryError):
    """The search request failed server-side or locally."""

    operation = "LDAP search error"
