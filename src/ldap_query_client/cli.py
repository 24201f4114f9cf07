# # Copyright (c) 2024 LDAP Query Client
# # SPDX-License-Identifier: MIT
# #
# # LDAP Query Client
# # One-shot LDAPv3 directory search over STARTTLS

"""Console entry point for the LDAP query client."""

import sys

from .client import EXIT_FAILURE, run
from .config.loader import load_config
from .core.logging import get_logger, setup_logging

logger = get_logger(__name__)


def main() -> int:
    """Load configuration, run the query and return the exit status."""
    try:
        config = load_config()
    except (OSError, ValueError) as e:
        print(f"configuration error: {e}", file=sys.stderr)
        return EXIT_FAILURE

    setup_logging(config.logging)
    logger.info(f"Querying {config.directory.server_uri}")

    return run(config)


if __name__ == "__main__":
    sys.exit(main())
