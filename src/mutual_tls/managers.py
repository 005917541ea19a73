"""
Trust and key material derived from a credential store.

TrustMaterial decides whether a peer certificate chain is acceptable.
KeyMaterial is the private key and certificate chain presented to the peer.
Both are produced fresh for each build and are not shared between clients.
"""

import ipaddress
import logging
from dataclasses import dataclass, field
from typing import Optional

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.x509.verification import PolicyBuilder, Store, VerificationError

from .certificates import to_pem
from .error_handling import (
    CertificateRejectedError,
    CredentialStoreError,
    KeyDerivationError,
    TrustDerivationError,
)
from .keys import PrivateKey, key_algorithm
from .keystore import CredentialStore

logger = logging.getLogger(__name__)

DEFAULT_TRUST_ALGORITHM = "PKIX"
TRUST_ALGORITHMS = (DEFAULT_TRUST_ALGORITHM,)


@dataclass(frozen=True)
class TrustMaterial:
    """The CA set peers are validated against.

    Attributes:
        certificates: Trust anchors, in store order
        algorithm: Trust derivation algorithm that produced this material
    """
    certificates: tuple[x509.Certificate, ...]
    algorithm: str = DEFAULT_TRUST_ALGORITHM

    def to_pem(self) -> bytes:
        """Trust anchors as concatenated PEM."""
        return to_pem(list(self.certificates))

    def verify_server(self, chain: list[x509.Certificate], hostname: str) -> list[x509.Certificate]:
        """Validate a server certificate chain for a hostname.

        Args:
            chain: Peer chain, leaf first, as presented by the server
            hostname: DNS name or IP address the client connected to

        Returns:
            The validated chain from leaf to trust anchor

        Raises:
            CertificateRejectedError: If the chain does not validate
        """
        if not chain:
            raise CertificateRejectedError("Empty server certificate chain")
        verifier = self._policy().build_server_verifier(_subject_for(hostname))
        try:
            return verifier.verify(chain[0], list(chain[1:]))
        except VerificationError as e:
            raise CertificateRejectedError(
                f"Server certificate {chain[0].subject.rfc4514_string()} rejected: {e}"
            ) from e

    def verify_client(self, chain: list[x509.Certificate]) -> list[x509.Certificate]:
        """Validate a client certificate chain.

        Raises:
            CertificateRejectedError: If the chain does not validate
        """
        if not chain:
            raise CertificateRejectedError("Empty client certificate chain")
        verifier = self._policy().build_client_verifier()
        try:
            return verifier.verify(chain[0], list(chain[1:])).chain
        except VerificationError as e:
            raise CertificateRejectedError(
                f"Client certificate {chain[0].subject.rfc4514_string()} rejected: {e}"
            ) from e

    def _policy(self) -> PolicyBuilder:
        return PolicyBuilder().store(Store(list(self.certificates)))


@dataclass(frozen=True)
class KeyMaterial:
    """A private key and the certificate chain presented with it.

    Attributes:
        alias: Store alias the key was read from
        private_key: The private key
        chain: Certificate chain, leaf first
    """
    alias: str
    private_key: PrivateKey = field(repr=False)
    chain: tuple[x509.Certificate, ...]

    @property
    def leaf(self) -> x509.Certificate:
        return self.chain[0]

    @property
    def algorithm(self) -> str:
        return key_algorithm(self.private_key)

    def chain_pem(self) -> bytes:
        """Certificate chain as concatenated PEM, leaf first."""
        return to_pem(list(self.chain))

    def private_key_pem(self, password: Optional[bytes] = None) -> bytes:
        """Private key as PKCS8 PEM, encrypted when a password is given."""
        if password:
            encryption = serialization.BestAvailableEncryption(password)
        else:
            encryption = serialization.NoEncryption()
        return self.private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=encryption,
        )


def derive_trust_managers(
    store: CredentialStore, algorithm: str = DEFAULT_TRUST_ALGORITHM
) -> list[TrustMaterial]:
    """Derive trust material from the trusted certificates of a store.

    Returns:
        One TrustMaterial when the store holds trusted certificates, none otherwise

    Raises:
        TrustDerivationError: If the algorithm is unknown
    """
    if algorithm.upper() not in TRUST_ALGORITHMS:
        raise TrustDerivationError(f"Unsupported trust algorithm: {algorithm}")
    certificates = store.trusted_certificates()
    if not certificates:
        logger.debug("Credential store holds no trusted certificates")
        return []
    logger.debug("Derived %s trust material from %d certificate(s)", algorithm.upper(), len(certificates))
    return [TrustMaterial(tuple(certificates), algorithm.upper())]


def single_trust_manager(managers: list[TrustMaterial]) -> TrustMaterial:
    """Pick the only trust material.

    Raises:
        TrustDerivationError: Unless exactly one trust material is present
    """
    if len(managers) != 1:
        raise TrustDerivationError(f"Unexpected default trust managers: {managers!r}")
    return managers[0]


def derive_key_managers(store: CredentialStore, password: str) -> list[KeyMaterial]:
    """Derive key material from every key entry of a store.

    Raises:
        KeyDerivationError: If a key entry cannot be recovered with the password
    """
    managers = []
    for alias in store.key_aliases():
        try:
            key = store.get_key(alias, password)
        except CredentialStoreError as e:
            raise KeyDerivationError(f"Key manager initialization failed for '{alias}': {e}") from e
        managers.append(KeyMaterial(alias=alias, private_key=key, chain=store.get_certificate_chain(alias)))
        logger.debug("Derived key material for '%s'", alias)
    return managers


def single_key_manager(managers: list[KeyMaterial]) -> Optional[KeyMaterial]:
    """Pick the key material to present, if any.

    Returns:
        The only KeyMaterial, or None in server-trust-only mode

    Raises:
        KeyDerivationError: If more than one key entry is present
    """
    if len(managers) > 1:
        aliases = ", ".join(m.alias for m in managers)
        raise KeyDerivationError(f"Expected at most one client key, found: {aliases}")
    return managers[0] if managers else None


def _subject_for(hostname: str) -> x509.GeneralName:
    try:
        return x509.IPAddress(ipaddress.ip_address(hostname))
    except ValueError:
        return x509.DNSName(hostname)
