# # Copyright (c) 2024 LDAP Query Client
# # SPDX-License-Identifier: MIT
# #
# # LDAP Query Client
# # One-shot LDAPv3 directory search over STARTTLS

"""LDAP Query Client - bind to a directory over STARTTLS and print one subtree search."""

import logging

__version__ = "0.1.0"
__description__ = "A one-shot LDAPv3 directory query client"

logging.getLogger("ldap-query-client").addHandler(logging.NullHandler())
