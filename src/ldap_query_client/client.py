# # Copyright (c) 2024 LDAP Query Client
# # SPDX-License-Identifier: MIT
# #
# # LDAP Query Client
# # One-shot LDAPv3 directory search over STARTTLS

"""Directory query workflow: resolve, connect, secure, bind, search, print."""

import os
import sys
from collections.abc import Mapping
from typing import TextIO

from .config.loader import resolve_credentials
from .config.models import Config
from .core.directory import DirectoryEntry, DirectorySession
from .core.errors import DirectoryQueryError
from .core.logging import get_logger

logger = get_logger(__name__)

EXIT_SUCCESS = 0
EXIT_FAILURE = 1


def format_entry(entry: DirectoryEntry) -> str:
    """
    Render one entry as its ``DN:`` line followed by one indented line per value.

    Args:
        entry: Entry to render

    Returns:
        Text block terminated by a blank line
    """
    lines = [f"DN: {entry.dn}"]
    lines.extend(f"\t{name}: {value}" for name, value in entry.iter_values())
    return "\n".join(lines) + "\n\n"


def run(
    config: Config,
    environ: Mapping[str, str] | None = None,
    stdout: TextIO | None = None,
    stderr: TextIO | None = None,
) -> int:
    """
    Run the query workflow once.

    Args:
        config: Loaded configuration
        environ: Environment holding the bind identity (defaults to os.environ)
        stdout: Report stream (defaults to sys.stdout)
        stderr: Diagnostic stream (defaults to sys.stderr)

    Returns:
        Process exit status
    """
    if environ is None:
        environ = os.environ
    if stdout is None:
        stdout = sys.stdout
    if stderr is None:
        stderr = sys.stderr

    def notify(message: str) -> None:
        print(message, file=stdout)

    credentials = resolve_credentials(config.credentials, environ, notify)

    try:
        with DirectorySession(config.directory, config.security, credentials) as session:
            session.open()
            notify(f"connected to LDAP server {config.directory.server_uri}")

            session.set_protocol_version(config.directory.protocol_version)
            session.start_tls()
            session.bind()

            with session.search(config.search) as result:
                notify(f"Total results: {result.count}")
                for entry in result:
                    stdout.write(format_entry(entry))

    except DirectoryQueryError as e:
        logger.debug(f"Query aborted: {e.diagnostic()}")
        print(e.diagnostic(), file=stderr)
        return EXIT_FAILURE

    return EXIT_SUCCESS
