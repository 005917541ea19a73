"""
Mutual TLS client builder.

Assembles a credential store from CA, client key and client certificate
resources (or from a PKCS#12 keystore), derives trust and key material from
it, and hands both to a TLS context constructor and an HTTP transport.

Example:
    client = (
        MutualTlsClientBuilder()
        .with_ca("certs/ca.crt")
        .with_client_key("certs/client.pk8")
        .with_client_cert("certs/client.crt")
        .build()
    )
    with client:
        response = client.get("https://nginx.local/index.html")
"""

import logging
import random
import secrets
import ssl
from typing import Any, Optional, Union

import grpc

from .certificates import read_certificates
from .config import MODE_KEYSTORE, MODE_MUTUAL, MutualTlsConfig
from .error_handling import (
    MutualTlsError,
    TlsInitializationError,
    TransportError,
    require,
    validate_locator,
    validate_password,
)
from .keys import read_private_key
from .keystore import CredentialStore, load_pkcs12
from .managers import (
    KeyMaterial,
    TrustMaterial,
    derive_key_managers,
    derive_trust_managers,
    single_key_manager,
    single_trust_manager,
)
from .resources import Locator, describe_locator, open_resource, read_resource
from .tls import TlsContextFactory, create_ssl_context
from .transport import TransportFactory, grpc_channel_credentials, grpc_target, httpx_transport

logger = logging.getLogger(__name__)

CLIENT_ALIAS = "client"


class MutualTlsClient:
    """A ready-to-use client and the material it was built from.

    Attributes:
        transport: The HTTP transport (an httpx.Client by default)
        ssl_context: The SSL context the transport uses
        trust_material: CA set servers are validated against
        key_material: Client key and chain, or None in server-trust-only mode
        mode: Build mode ("trust_only", "mutual" or "keystore")
    """

    def __init__(
        self,
        transport: Any,
        ssl_context: ssl.SSLContext,
        trust_material: TrustMaterial,
        key_material: Optional[KeyMaterial],
        mode: str,
    ):
        self.transport = transport
        self.ssl_context = ssl_context
        self.trust_material = trust_material
        self.key_material = key_material
        self.mode = mode

    @property
    def presents_client_certificate(self) -> bool:
        return self.key_material is not None

    def request(self, method: str, url: str, **kwargs: Any) -> Any:
        """Send a request through the transport."""
        return self.transport.request(method, url, **kwargs)

    def get(self, url: str, **kwargs: Any) -> Any:
        return self.request("GET", url, **kwargs)

    def post(self, url: str, **kwargs: Any) -> Any:
        return self.request("POST", url, **kwargs)

    def secure_channel(self, target: str) -> grpc.Channel:
        """Open a gRPC channel presenting the same client credentials.

        Args:
            target: host:port, or an http(s):// URL
        """
        credentials = grpc_channel_credentials(self.key_material, self.trust_material)
        return grpc.secure_channel(grpc_target(target), credentials)

    def close(self) -> None:
        """Close the transport."""
        close = getattr(self.transport, "close", None)
        if close is not None:
            close()

    def __enter__(self) -> "MutualTlsClient":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()

    def __repr__(self) -> str:
        presenting = self.key_material.leaf.subject.rfc4514_string() if self.key_material else None
        return (
            f"MutualTlsClient(mode={self.mode!r}, "
            f"trusted={len(self.trust_material.certificates)}, client={presenting!r})"
        )


class MutualTlsClientBuilder:
    """Fluent builder for MutualTlsClient.

    Every setter rejects a missing value immediately and returns the builder.
    The builder keeps an immutable MutualTlsConfig which each setter replaces,
    so build() can be called repeatedly to get independent clients.
    """

    def __init__(self, config: Optional[MutualTlsConfig] = None):
        self._config = config or MutualTlsConfig()
        self._tls_context_factory: TlsContextFactory = create_ssl_context
        self._transport_factory: TransportFactory = httpx_transport

    @classmethod
    def from_config(cls, config: MutualTlsConfig) -> "MutualTlsClientBuilder":
        """Seed a builder from an existing configuration."""
        return cls(config)

    def with_ca(self, ca: Locator) -> "MutualTlsClientBuilder":
        """Configure the builder with a list of root CAs.

        Args:
            ca: Locator of a file containing CA certificates. The file can
                contain multiple chained certificates.
        """
        return self._set(ca=validate_locator(ca, "CA file"))

    def with_client_key(self, client_key: Locator) -> "MutualTlsClientBuilder":
        """Configure the builder with a client key.

        Args:
            client_key: Locator of a file containing a PKCS8 encoded private key.
        """
        return self._set(client_key=validate_locator(client_key, "Client key file"))

    def with_client_cert(self, client_cert: Locator) -> "MutualTlsClientBuilder":
        """Configure the builder with a client certificate.

        Args:
            client_cert: Locator of a file containing a chain of certificates.
        """
        return self._set(client_cert=validate_locator(client_cert, "Client cert file"))

    def with_keystore(self, keystore: Locator) -> "MutualTlsClientBuilder":
        """Configure the builder with a PKCS#12 keystore holding key, chain and CAs."""
        return self._set(keystore=validate_locator(keystore, "Keystore file"))

    def with_password(self, password: Union[str, bytes]) -> "MutualTlsClientBuilder":
        """Configure the keystore unlock password."""
        return self._set(keystore_password=validate_password(password))

    def with_key_algorithm(self, algorithm: str) -> "MutualTlsClientBuilder":
        """Require the client key to use this algorithm (e.g., "RSA", "EC")."""
        return self._set(key_algorithm=require(algorithm, "Key algorithm"))

    def with_key_password(self, password: Union[str, bytes]) -> "MutualTlsClientBuilder":
        """Configure the password of an encrypted PKCS8 client key."""
        return self._set(key_password=validate_password(password, "Client key password"))

    def with_tls_context_factory(self, factory: TlsContextFactory) -> "MutualTlsClientBuilder":
        """Replace the TLS context constructor."""
        self._tls_context_factory = require(factory, "TLS context factory")
        return self

    def with_transport_factory(self, factory: TransportFactory) -> "MutualTlsClientBuilder":
        """Replace the HTTP transport wrapper."""
        self._transport_factory = require(factory, "Transport factory")
        return self

    def config(self) -> MutualTlsConfig:
        """The configuration assembled so far."""
        return self._config

    def build(self) -> MutualTlsClient:
        """Build a client with TLS configured.

        Raises:
            MutualTlsError: A typed subclass for each failure kind
        """
        return build_client(
            self._config,
            tls_context_factory=self._tls_context_factory,
            transport_factory=self._transport_factory,
        )

    def _set(self, **changes: Any) -> "MutualTlsClientBuilder":
        self._config = self._config.with_changes(**changes)
        return self


def build_client(
    config: MutualTlsConfig,
    tls_context_factory: TlsContextFactory = create_ssl_context,
    transport_factory: TransportFactory = httpx_transport,
    random_source: Optional[random.Random] = None,
) -> MutualTlsClient:
    """Build a client from a configuration.

    Args:
        config: The client configuration
        tls_context_factory: Turns key and trust material into an SSL context
        transport_factory: Wraps the SSL context into an HTTP transport
        random_source: Secure random source; a fresh SystemRandom by default

    Returns:
        The built client

    Raises:
        ConfigurationError: If the configuration is inconsistent
        ResourceError: If a resource cannot be read
        DecodeError: If certificates, key or keystore are malformed
        DerivationError: If trust or key material cannot be derived
        TlsInitializationError: If the TLS context constructor fails
        TransportError: If the transport factory fails
    """
    config.validate()
    random_source = random_source or secrets.SystemRandom()
    mode = config.mode
    logger.debug("Building %s client", mode)

    store, password = build_credential_store(config, random_source)

    trust_material = single_trust_manager(derive_trust_managers(store))
    key_material = single_key_manager(derive_key_managers(store, password))

    try:
        ssl_context = tls_context_factory(key_material, trust_material, random_source)
    except MutualTlsError:
        raise
    except Exception as e:
        raise TlsInitializationError(f"TLS context initialization failed: {e}") from e

    try:
        transport = transport_factory(ssl_context, trust_material)
    except MutualTlsError:
        raise
    except Exception as e:
        raise TransportError(f"Transport initialization failed: {e}") from e

    return MutualTlsClient(
        transport=transport,
        ssl_context=ssl_context,
        trust_material=trust_material,
        key_material=key_material,
        mode=mode,
    )


def build_credential_store(
    config: MutualTlsConfig, random_source: random.Random
) -> tuple[CredentialStore, str]:
    """Create and populate the credential store for one build.

    Returns:
        Tuple of (store, password protecting its key entries)
    """
    if config.mode == MODE_KEYSTORE:
        name = describe_locator(config.keystore)
        store = load_pkcs12(read_resource(config.keystore), config.keystore_password, source=name)
        return store, config.keystore_password

    password = _random_password(random_source)
    store = CredentialStore(password)
    load_ca(store, config.ca)
    if config.mode == MODE_MUTUAL:
        load_key(store, config)
    return store, password


def load_ca(store: CredentialStore, locator: Locator) -> None:
    """Load the CAs at a locator into the store, aliased by position."""
    name = describe_locator(locator)
    with open_resource(locator) as stream:
        certificates = read_certificates(stream, source=name)
    for index, certificate in enumerate(certificates):
        store.set_certificate_entry(str(index), certificate)


def load_key(store: CredentialStore, config: MutualTlsConfig) -> None:
    """Load the client key and its certificate chain into the store."""
    cert_name = describe_locator(config.client_cert)
    with open_resource(config.client_cert) as stream:
        chain = read_certificates(stream, source=cert_name)

    key_name = describe_locator(config.client_key)
    with open_resource(config.client_key) as stream:
        key = read_private_key(
            stream,
            algorithm=config.key_algorithm,
            password=config.key_password,
            source=key_name,
        )

    store.set_key_entry(CLIENT_ALIAS, key, chain)


def _random_password(random_source: random.Random) -> str:
    return "%064x" % random_source.getrandbits(256)
