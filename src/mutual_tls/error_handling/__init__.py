"""
Error handling utilities for the mutual TLS client builder.

Provides the error taxonomy, setter validators and error hint mapping.
"""

from .errors import (
    MutualTlsError,
    ConfigurationError,
    ResourceError,
    DecodeError,
    CertificateDecodeError,
    NoCertificatesError,
    KeyDecodeError,
    KeystoreError,
    CredentialStoreError,
    UnrecoverableKeyError,
    DerivationError,
    TrustDerivationError,
    KeyDerivationError,
    TlsInitializationError,
    CertificateRejectedError,
    TransportError,
)
from .validators import (
    require,
    validate_locator,
    validate_password,
)
from .hints import (
    describe_error,
    is_retryable_error,
)

__all__ = [
    # Errors
    "MutualTlsError",
    "ConfigurationError",
    "ResourceError",
    "DecodeError",
    "CertificateDecodeError",
    "NoCertificatesError",
    "KeyDecodeError",
    "KeystoreError",
    "CredentialStoreError",
    "UnrecoverableKeyError",
    "DerivationError",
    "TrustDerivationError",
    "KeyDerivationError",
    "TlsInitializationError",
    "CertificateRejectedError",
    "TransportError",
    # Validators
    "require",
    "validate_locator",
    "validate_password",
    # Hints
    "describe_error",
    "is_retryable_error",
]
