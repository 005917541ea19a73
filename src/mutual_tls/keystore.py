"""
In-memory credential store.

Maps aliases to trusted certificates or to private keys paired with their
certificate chain. Key entries are held encrypted under their entry password
for the lifetime of the store. A store is never persisted.
"""

import logging
from dataclasses import dataclass
from typing import Iterator, Optional, Union

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.serialization import pkcs12

from .error_handling import CredentialStoreError, KeystoreError, UnrecoverableKeyError
from .keys import PrivateKey, decoder_for_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrustedCertificateEntry:
    """A certificate trusted as an anchor for peer validation."""
    certificate: x509.Certificate


@dataclass(frozen=True)
class PrivateKeyEntry:
    """A private key with its certificate chain, leaf first.

    Attributes:
        protected_key: PKCS8 DER of the key, encrypted under the entry password
        chain: Certificate chain presented with the key
    """
    protected_key: bytes
    chain: tuple[x509.Certificate, ...]

    @property
    def leaf(self) -> x509.Certificate:
        """The certificate matching the private key."""
        return self.chain[0]


Entry = Union[TrustedCertificateEntry, PrivateKeyEntry]


class CredentialStore:
    """Password-protected, in-memory map of alias to credential entry."""

    def __init__(self, password: str):
        """Create an empty store.

        Args:
            password: Password protecting the store and, by default, its key entries
        """
        self._password = password
        self._entries: dict[str, Entry] = {}

    @property
    def password(self) -> str:
        return self._password

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, alias: str) -> bool:
        return alias in self._entries

    def aliases(self) -> Iterator[str]:
        """Iterate aliases in insertion order."""
        return iter(list(self._entries))

    def get_entry(self, alias: str) -> Optional[Entry]:
        return self._entries.get(alias)

    def is_certificate_entry(self, alias: str) -> bool:
        return isinstance(self._entries.get(alias), TrustedCertificateEntry)

    def is_key_entry(self, alias: str) -> bool:
        return isinstance(self._entries.get(alias), PrivateKeyEntry)

    def set_certificate_entry(self, alias: str, certificate: x509.Certificate) -> None:
        """Add a trusted certificate.

        Raises:
            CredentialStoreError: If the alias is already taken
        """
        self._check_alias(alias)
        self._entries[alias] = TrustedCertificateEntry(certificate)
        logger.debug("Stored trusted certificate '%s': %s", alias, certificate.subject.rfc4514_string())

    def set_key_entry(
        self,
        alias: str,
        key: PrivateKey,
        chain: list[x509.Certificate],
        password: Optional[str] = None,
    ) -> None:
        """Add a private key with its certificate chain.

        Args:
            alias: Entry alias
            key: The private key
            chain: Certificate chain, leaf first
            password: Entry password; defaults to the store password

        Raises:
            CredentialStoreError: If the alias is taken or the chain is empty
        """
        self._check_alias(alias)
        if not chain:
            raise CredentialStoreError(f"Key entry '{alias}' needs a non-empty certificate chain")

        protected = key.private_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.BestAvailableEncryption(
                (password or self._password).encode("utf-8")
            ),
        )
        self._entries[alias] = PrivateKeyEntry(protected_key=protected, chain=tuple(chain))
        logger.debug(
            "Stored %s key entry '%s' for %s (chain length %d)",
            decoder_for_key(key).name,
            alias,
            chain[0].subject.rfc4514_string(),
            len(chain),
        )

    def get_key(self, alias: str, password: str) -> PrivateKey:
        """Recover the private key of a key entry.

        Raises:
            CredentialStoreError: If the alias is not a key entry
            UnrecoverableKeyError: If the password is wrong
        """
        entry = self._entries.get(alias)
        if not isinstance(entry, PrivateKeyEntry):
            raise CredentialStoreError(f"'{alias}' is not a key entry")
        try:
            return serialization.load_der_private_key(
                entry.protected_key, password=password.encode("utf-8")
            )
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            raise UnrecoverableKeyError(f"Cannot recover key '{alias}': wrong password") from e

    def get_certificate_chain(self, alias: str) -> Optional[tuple[x509.Certificate, ...]]:
        entry = self._entries.get(alias)
        if isinstance(entry, PrivateKeyEntry):
            return entry.chain
        return None

    def trusted_certificates(self) -> list[x509.Certificate]:
        """All trusted certificates, in insertion order."""
        return [
            entry.certificate
            for entry in self._entries.values()
            if isinstance(entry, TrustedCertificateEntry)
        ]

    def key_aliases(self) -> list[str]:
        return [alias for alias, entry in self._entries.items() if isinstance(entry, PrivateKeyEntry)]

    def _check_alias(self, alias: str) -> None:
        if not alias:
            raise CredentialStoreError("Alias cannot be empty")
        if alias in self._entries:
            raise CredentialStoreError(f"Alias '{alias}' already exists in the credential store")


def load_pkcs12(data: bytes, password: str, source: str = "<keystore>") -> CredentialStore:
    """Load a PKCS#12 keystore into a new credential store.

    The store and its key entry are protected by the keystore password. The
    key entry chain is the key's certificate followed by whichever bundled
    certificates link up to it by issuer. Bundled certificates become trusted
    entries, except the intermediate CAs of that chain: a self-signed root
    stays a trust anchor, an intermediate only serves to present the chain.

    Args:
        data: PKCS#12 bytes
        password: Keystore unlock password
        source: Name of the keystore for error messages

    Returns:
        The populated credential store

    Raises:
        KeystoreError: If the keystore is malformed or the password is wrong
    """
    try:
        bundle = pkcs12.load_pkcs12(data, password.encode("utf-8"))
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise KeystoreError(f"Cannot open keystore {source}: invalid password or PKCS#12 data") from e

    store = CredentialStore(password)
    extra = [cert.certificate for cert in bundle.additional_certs]

    chain = None
    if bundle.key is not None:
        if bundle.cert is None:
            raise KeystoreError(f"Keystore {source} holds a private key without a certificate")
        chain = build_chain(bundle.cert.certificate, extra)
    # Intermediates of the key chain are presented, not trusted.
    intermediates = [cert for cert in (chain or [])[1:] if cert.issuer != cert.subject]

    for index, cert in enumerate(bundle.additional_certs):
        if cert.certificate in intermediates:
            continue
        alias = _friendly_name(cert) or str(index)
        if alias in store:
            alias = f"{alias}-{index}"
        store.set_certificate_entry(alias, cert.certificate)

    if chain is not None:
        alias = _friendly_name(bundle.cert) or "client"
        if alias in store:
            alias = f"{alias}-key"
        store.set_key_entry(alias, bundle.key, chain)

    logger.debug("Loaded keystore %s with %d entries", source, len(store))
    return store


def build_chain(leaf: x509.Certificate, candidates: list[x509.Certificate]) -> list[x509.Certificate]:
    """Order a certificate chain from leaf to root by issuer name."""
    chain = [leaf]
    remaining = [cert for cert in candidates if cert != leaf]
    current = leaf
    while current.issuer != current.subject:
        issuer = next((cert for cert in remaining if cert.subject == current.issuer), None)
        if issuer is None:
            break
        chain.append(issuer)
        remaining.remove(issuer)
        current = issuer
    return chain


def _friendly_name(cert: pkcs12.PKCS12Certificate) -> Optional[str]:
    if cert.friendly_name:
        return cert.friendly_name.decode("utf-8", errors="replace")
    return None
