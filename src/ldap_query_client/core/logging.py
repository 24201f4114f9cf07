# # Copyright (c) 2024 LDAP Query Client
# # SPDX-License-Identifier: MIT
# #
# # LDAP Query Client
# # One-shot LDAPv3 directory search over STARTTLS

"""Logging setup and the per-stage audit trail of a query run."""

import logging
import sys
from typing import TextIO

from ..config.models import LoggingConfig
from .errors import DirectoryQueryError

LOGGER_NAME = "ldap-query-client"

# Workflow stages reported on the audit logger, in execution order
STAGES = ("open", "protocol_version", "starttls", "bind", "search", "unbind")


def setup_logging(config: LoggingConfig, stream: TextIO | None = None) -> logging.Logger:
    """
    Attach handlers for one run to the package logger.

    Diagnostics of a failed stage are printed by the client itself, so the
    handlers only carry the trail enabled by ``config.level`` (``ERROR`` keeps
    stderr quiet).

    Args:
        config: Logging configuration
        stream: Console stream (defaults to sys.stderr)

    Returns:
        The configured package logger
    """
    level = getattr(logging, config.level)
    formatter = logging.Formatter(config.format)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    handlers: list[logging.Handler] = [logging.StreamHandler(stream or sys.stderr)]
    file_error = None
    if config.file:
        try:
            handlers.append(logging.FileHandler(config.file, encoding="utf-8"))
        except OSError as e:
            file_error = e

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    if file_error is not None:
        logger.warning(f"Failed to setup file logging: {file_error}")
    elif config.file:
        logger.info(f"Logging to file: {config.file}")

    logger.info(f"Logging initialized at level: {config.level}")
    return logger


def get_logger(name: str) -> logging.Logger:
    """Return a child of the package logger."""
    return logging.getLogger(f"{LOGGER_NAME}.{name}")


def log_stage(
    stage: str,
    target: str,
    error: DirectoryQueryError | None = None,
    details: str | None = None,
) -> None:
    """
    Record the outcome of one workflow stage on the audit logger.

    Successes go out at INFO, failures at WARNING with the same diagnostic the
    client prints for the error.

    Args:
        stage: One of STAGES
        target: Server URI, bind DN or search base the stage worked on
        error: The error the stage is about to raise, None on success
        details: Extra text for a successful stage (e.g. the entry count)
    """
    if stage not in STAGES:
        raise ValueError(f"Unknown workflow stage: {stage}")

    logger = get_logger("audit")

    if error is None:
        message = f"{stage} ok [{target}]"
        if details:
            message += f": {details}"
        logger.info(message)
    else:
        logger.warning(f"{stage} failed [{target}]: {error.diagnostic()}")
