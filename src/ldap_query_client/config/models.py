# # Copyright (c) 2024 LDAP Query Client
# # SPDX-License-Identifier: MIT
# #
# # LDAP Query Client
# # One-shot LDAPv3 directory search over STARTTLS

"""Configuration models for the LDAP query client."""

from pydantic import BaseModel, Field, field_validator

DEFAULT_SERVER_URI = "ldap://ldap.technikum-wien.at:389"
DEFAULT_BASE_DN = "dc=technikum-wien,dc=at"
DEFAULT_DN_TEMPLATE = "uid={user},ou=people," + DEFAULT_BASE_DN


class DirectoryConfig(BaseModel):
    """Directory server connection configuration."""

    server_uri: str = Field(
        default=DEFAULT_SERVER_URI, description="LDAP server URI (ldap:// or ldaps://)"
    )
    protocol_version: int = Field(default=3, description="LDAP protocol version")
    connect_timeout: float | None = Field(
        default=None, description="Socket connect timeout in seconds (None = library default)"
    )
    receive_timeout: float | None = Field(
        default=None, description="Receive timeout in seconds (None = wait indefinitely)"
    )

    @field_validator("server_uri")
    @classmethod
    def validate_server_uri(cls, v):
        """Validate server URI scheme."""
        if not v.startswith(("ldap://", "ldaps://")):
            raise ValueError("Server URI must start with ldap:// or ldaps://")
        return v

    @field_validator("connect_timeout", "receive_timeout")
    @classmethod
    def validate_timeout(cls, v):
        """Validate optional timeouts."""
        if v is not None and v <= 0:
            raise ValueError("Timeout must be positive")
        return v


class SecurityConfig(BaseModel):
    """Transport security configuration."""

    start_tls: bool = Field(default=True, description="Upgrade the connection with STARTTLS")
    validate_certificate: bool = Field(default=True, description="Validate server certificate")
    ca_cert_file: str | None = Field(default=None, description="CA certificate file path")


class CredentialsConfig(BaseModel):
    """Where the bind identity comes from and how it becomes a DN."""

    identity_env: str = Field(default="ldapuser", description="Environment variable holding the uid")
    secret_env: str = Field(default="ldappw", description="Environment variable holding the password")
    dn_template: str = Field(
        default=DEFAULT_DN_TEMPLATE,
        description="Bind DN template, {user} is replaced by the identity value",
    )

    @field_validator("identity_env", "secret_env")
    @classmethod
    def validate_env_name(cls, v):
        """Validate environment variable names."""
        if not v:
            raise ValueError("Environment variable name must not be empty")
        return v

    @field_validator("dn_template")
    @classmethod
    def validate_dn_template(cls, v):
        """Validate the DN template placeholder."""
        if "{user}" not in v:
            raise ValueError("DN template must contain the {user} placeholder")
        return v


class SearchConfig(BaseModel):
    """Search request parameters."""

    base_dn: str = Field(default=DEFAULT_BASE_DN, description="Base DN for the subtree search")
    search_filter: str = Field(default="(uid=if19b00*)", description="LDAP filter string")
    attributes: list[str] = Field(
        default_factory=lambda: ["uid", "cn"], description="Attributes to retrieve"
    )
    size_limit: int = Field(default=500, description="Server-side size limit (0 = no limit)")
    time_limit: int = Field(default=0, description="Server-side time limit in seconds (0 = none)")

    @field_validator("attributes")
    @classmethod
    def validate_attributes(cls, v):
        """Validate requested attribute list."""
        if not v:
            raise ValueError("At least one attribute must be requested")
        return v

    @field_validator("size_limit", "time_limit")
    @classmethod
    def validate_non_negative(cls, v):
        """Validate non-negative limits."""
        if v < 0:
            raise ValueError("Limit must not be negative")
        return v


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="ERROR", description="Logging level")
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log message format",
    )
    file: str | None = Field(default=None, description="Log file path")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v):
        """Validate logging level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Level must be one of: {valid_levels}")
        return v.upper()


class Config(BaseModel):
    """Main configuration class for the LDAP query client."""

    directory: DirectoryConfig = Field(default_factory=DirectoryConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    credentials: CredentialsConfig = Field(default_factory=CredentialsConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


class BindCredentials(BaseModel):
    """Resolved bind identity, built once per run."""

    bind_dn: str = Field(default="", description="Bind DN (empty = anonymous)")
    password: str = Field(default="", description="Bind password", repr=False)

    @property
    def anonymous(self) -> bool:
        return not self.bind_dn
