# # Copyright (c) 2024 LDAP Query Client
# # SPDX-License-Identifier: MIT
# #
# # LDAP Query Client
# # One-shot LDAPv3 directory search over STARTTLS

"""Configuration loader for the LDAP query client."""

import json
import os
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

from ..core.logging import get_logger
from .models import BindCredentials, Config, CredentialsConfig

logger = get_logger(__name__)

CONFIG_ENV = "LDAPQUERY_CONFIG"
LOG_LEVEL_ENV = "LDAPQUERY_LOG_LEVEL"

USER_NOT_FOUND_NOTICE = "(user not found... set to empty string)"
PASSWORD_NOT_FOUND_NOTICE = "(pw not found... set to empty string)"


def load_config(
    config_path: str | None = None, environ: Mapping[str, str] | None = None
) -> Config:
    """
    Load configuration from built-in defaults, an optional JSON file and the environment.

    Args:
        config_path: Path to a JSON configuration file. If None, the LDAPQUERY_CONFIG
                    environment variable is consulted; when that is unset too, only
                    the built-in defaults are used and no file is read.
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Config: Loaded and validated configuration

    Raises:
        FileNotFoundError: If the config file doesn't exist
        ValueError: If the config is invalid
        json.JSONDecodeError: If the config file is not valid JSON
    """
    if environ is None:
        environ = os.environ

    if config_path is None:
        config_path = environ.get(CONFIG_ENV) or None

    config_data: dict[str, Any] = {}

    if config_path is not None:
        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        logger.info(f"Loading configuration from: {config_path}")

        try:
            with open(config_file, encoding="utf-8") as f:
                config_data = json.load(f)
        except json.JSONDecodeError as e:
            logger.warning(f"Invalid JSON in configuration file: {e}")
            raise

        if not isinstance(config_data, dict):
            raise ValueError("Configuration file must contain a JSON object")

    log_level = environ.get(LOG_LEVEL_ENV)
    if log_level:
        logging_data = dict(config_data.get("logging") or {})
        logging_data["level"] = log_level
        config_data = {**config_data, "logging": logging_data}

    config = Config(**config_data)
    _log_config_summary(config)

    return config


def _log_config_summary(config: Config) -> None:
    """
    Log configuration summary without sensitive information.

    Args:
        config: Configuration object to summarize
    """
    logger.debug(f"LDAP Server: {config.directory.server_uri}")
    logger.debug(f"Protocol Version: {config.directory.protocol_version}")
    logger.debug(f"STARTTLS: {config.security.start_tls}")
    logger.debug(f"Search Base: {config.search.base_dn}")
    logger.debug(f"Search Filter: {config.search.search_filter}")
    logger.debug(f"Attributes: {', '.join(config.search.attributes)}")
    logger.debug(f"Size Limit: {config.search.size_limit}")
    logger.debug(f"Logging Level: {config.logging.level}")


def build_bind_dn(template: str, user: str) -> str:
    """
    Substitute the identity value into the bind DN template.

    The value is inserted verbatim: DN special characters such as ``,`` or ``+``
    are not escaped.
    """
    return template.replace("{user}", user)


def resolve_credentials(
    config: CredentialsConfig,
    environ: Mapping[str, str] | None = None,
    notify: Callable[[str], None] = print,
) -> BindCredentials:
    """
    Resolve the bind identity from the environment.

    An unset identity variable gives an empty (anonymous) bind DN, an unset
    secret variable gives an empty password. Each fallback is announced
    through ``notify``.

    Args:
        config: Credentials configuration
        environ: Environment mapping (defaults to os.environ)
        notify: Callable receiving the notice text

    Returns:
        BindCredentials: Resolved bind DN and password
    """
    if environ is None:
        environ = os.environ

    user = environ.get(config.identity_env)
    if user is None:
        notify(USER_NOT_FOUND_NOTICE)
        bind_dn = ""
    else:
        bind_dn = build_bind_dn(config.dn_template, user)

    password = environ.get(config.secret_env)
    if password is None:
        notify(PASSWORD_NOT_FOUND_NOTICE)
        password = ""

    credentials = BindCredentials(bind_dn=bind_dn, password=password)
    logger.debug(
        "Resolved bind identity: "
        + (credentials.bind_dn if not credentials.anonymous else "anonymous")
    )
    return credentials
