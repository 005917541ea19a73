"""
Exception taxonomy for building mutual TLS clients.

Every failure raised while configuring or building a client derives from
MutualTlsError so callers can catch the whole family, or a single kind.
"""


class MutualTlsError(Exception):
    """Base class for all client building errors."""


class ConfigurationError(MutualTlsError, ValueError):
    """A locator or password is missing, or the configured modes conflict."""


class ResourceError(MutualTlsError, OSError):
    """A resource could not be opened or read.

    Attributes:
        locator: The locator that failed, as given by the caller
        remote: True if the locator pointed at a network resource
    """

    def __init__(self, message: str, locator=None, remote: bool = False):
        super().__init__(message)
        self.locator = locator
        self.remote = remote


class DecodeError(MutualTlsError, ValueError):
    """Certificate, key or keystore bytes could not be decoded."""


class CertificateDecodeError(DecodeError):
    """A certificate block is malformed."""


class NoCertificatesError(CertificateDecodeError):
    """A certificate resource decoded to an empty set."""


class KeyDecodeError(DecodeError):
    """A private key is malformed or uses an unsupported algorithm."""


class KeystoreError(DecodeError):
    """A keystore container could not be opened."""


class CredentialStoreError(MutualTlsError):
    """Invalid operation on the in-memory credential store."""


class UnrecoverableKeyError(CredentialStoreError):
    """A key entry could not be recovered with the supplied password."""


class DerivationError(MutualTlsError):
    """Trust or key material could not be derived from the store."""


class TrustDerivationError(DerivationError):
    """Trust derivation did not yield exactly one trust material."""


class KeyDerivationError(DerivationError):
    """Key material initialization failed."""


class TlsInitializationError(MutualTlsError):
    """The TLS context constructor rejected the supplied material."""


class CertificateRejectedError(MutualTlsError):
    """A peer certificate chain failed validation against the CA set."""


class TransportError(MutualTlsError):
    """The transport factory could not wrap the TLS context."""
