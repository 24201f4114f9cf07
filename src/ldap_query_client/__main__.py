# # Copyright (c) 2024 LDAP Query Client
# # SPDX-License-Identifier: MIT
# #
# # LDAP Query Client
# # One-shot LDAPv3 directory search over STARTTLS

import sys

from .cli import main

sys.exit(main())
