"""
Configuration for building mutual TLS clients.

A configuration is an immutable value. It can be assembled with the fluent
builder, loaded from a YAML file, or read from MTLS_* environment variables.
"""

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Optional
from urllib.parse import urlsplit

import yaml

from .error_handling import ConfigurationError
from .resources import Locator

MODE_TRUST_ONLY = "trust_only"
MODE_MUTUAL = "mutual"
MODE_KEYSTORE = "keystore"

ENV_PREFIX = "MTLS_"
CONFIG_PATH_ENV = "MTLS_CONFIG_PATH"

_LOCATOR_KEYS = ("ca", "client_key", "client_cert", "keystore")


@dataclass(frozen=True)
class MutualTlsConfig:
    """Everything needed to build one client.

    Attributes:
        ca: Locator of the CA bundle (PEM or DER, may hold several certificates)
        client_key: Locator of the PKCS8 PEM client private key
        client_cert: Locator of the client certificate chain
        keystore: Locator of a PKCS#12 keystore, used instead of the PEM locators
        keystore_password: Password unlocking the keystore
        key_algorithm: Expected client key algorithm (e.g., "RSA", "EC"); None detects it
        key_password: Password of an encrypted PKCS8 client key
    """
    ca: Optional[Locator] = None
    client_key: Optional[Locator] = None
    client_cert: Optional[Locator] = None
    keystore: Optional[Locator] = None
    keystore_password: Optional[str] = field(default=None, repr=False)
    key_algorithm: Optional[str] = None
    key_password: Optional[str] = field(default=None, repr=False)

    @property
    def mode(self) -> Optional[str]:
        """The build mode selected by the configured locators."""
        if self.keystore is not None:
            return MODE_KEYSTORE
        if self.client_key is not None and self.client_cert is not None:
            return MODE_MUTUAL
        if self.ca is not None:
            return MODE_TRUST_ONLY
        return None

    def validate(self) -> None:
        """Check that the configured locators form exactly one consistent mode.

        Raises:
            ConfigurationError: If the configuration is incomplete or ambiguous
        """
        if self.keystore is not None:
            if any(v is not None for v in (self.ca, self.client_key, self.client_cert)):
                raise ConfigurationError(
                    "A keystore cannot be combined with CA, client key or client certificate locators"
                )
            if not self.keystore_password:
                raise ConfigurationError("A keystore requires a password")
            return

        if self.keystore_password is not None:
            raise ConfigurationError("A keystore password was set without a keystore")

        if (self.client_key is None) != (self.client_cert is None):
            missing = "client certificate" if self.client_cert is None else "client key"
            raise ConfigurationError(
                f"Client key and client certificate must be configured together; {missing} is missing"
            )

        if self.ca is None:
            raise ConfigurationError("No CA configured. Set a CA bundle or a keystore")

    @classmethod
    def from_config_file(cls, config_path: str) -> "MutualTlsConfig":
        """Load configuration from a YAML file.

        Relative file paths in the file are resolved against the file's directory.

        Raises:
            FileNotFoundError: If the file does not exist
            ConfigurationError: If the file is not a YAML mapping or has unknown keys
        """
        path = Path(config_path)
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration file {path} must contain a mapping")

        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(
                f"Unknown configuration keys in {path}: {', '.join(sorted(unknown))}"
            )

        values: dict[str, Any] = {}
        for key, value in data.items():
            if value is None:
                continue
            if key in _LOCATOR_KEYS:
                value = _resolve_locator(str(value), path.parent)
            else:
                value = str(value)
            values[key] = value
        return cls(**values)

    @classmethod
    def from_env(cls) -> "MutualTlsConfig":
        """Load configuration from MTLS_* environment variables."""
        values = {}
        for f in fields(cls):
            value = os.environ.get(ENV_PREFIX + f.name.upper())
            if value:
                values[f.name] = value
        return cls(**values)

    def with_changes(self, **changes: Any) -> "MutualTlsConfig":
        """Copy of this configuration with some fields replaced."""
        return replace(self, **changes)


def load_config() -> MutualTlsConfig:
    """Load configuration from the file named by MTLS_CONFIG_PATH, else from the environment.

    Returns:
        Validated configuration

    Raises:
        ConfigurationError: If the configuration is inconsistent
    """
    config_path = os.environ.get(CONFIG_PATH_ENV)
    if config_path:
        config = MutualTlsConfig.from_config_file(config_path)
    else:
        config = MutualTlsConfig.from_env()
    config.validate()
    return config


def _resolve_locator(value: str, base: Path) -> str:
    scheme = urlsplit(value).scheme
    if scheme and len(scheme) > 1:
        return value
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = base / path
    return str(path)
