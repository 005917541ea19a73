"""
Default TLS context constructor.

Builds an ssl.SSLContext for client connections from derived trust and key
material. Any callable with the same signature can replace it when building
a client.
"""

import logging
import os
import random
import ssl
import tempfile
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from .error_handling import TlsInitializationError
from .managers import KeyMaterial, TrustMaterial

logger = logging.getLogger(__name__)

TlsContextFactory = Callable[[Optional[KeyMaterial], TrustMaterial, random.Random], ssl.SSLContext]

MINIMUM_TLS_VERSION = ssl.TLSVersion.TLSv1_2


def create_ssl_context(
    key_material: Optional[KeyMaterial],
    trust_material: TrustMaterial,
    random_source: random.Random,
) -> ssl.SSLContext:
    """Create a client SSL context presenting key_material and trusting trust_material.

    Hostname checking and certificate verification are always on. The system
    trust store is not loaded: only the configured CA set is trusted.

    Args:
        key_material: Client key and chain, or None for server-trust-only mode
        trust_material: CA set for server validation
        random_source: Secure random source; used for the passphrase protecting
            the temporary key file handed to OpenSSL

    Returns:
        Configured SSL context

    Raises:
        TlsInitializationError: If OpenSSL rejects the material or the
            temporary credential files cannot be written
    """
    try:
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        context.minimum_version = MINIMUM_TLS_VERSION
        context.verify_mode = ssl.CERT_REQUIRED
        context.check_hostname = True
        context.load_verify_locations(cadata=trust_material.to_pem().decode("ascii"))
    except ssl.SSLError as e:
        raise TlsInitializationError(f"Cannot load trusted certificates: {e}") from e

    if key_material is not None:
        passphrase = "%064x" % random_source.getrandbits(256)
        try:
            with _temp_credential_files(key_material, passphrase.encode("ascii")) as (cert_path, key_path):
                context.load_cert_chain(certfile=cert_path, keyfile=key_path, password=passphrase)
        except ssl.SSLError as e:
            raise TlsInitializationError(
                f"Client key and certificate rejected for '{key_material.alias}': {e}"
            ) from e
        except OSError as e:
            raise TlsInitializationError(f"Cannot write temporary credential files: {e}") from e
        logger.debug(
            "TLS context presents %s key '%s' for %s",
            key_material.algorithm,
            key_material.alias,
            key_material.leaf.subject.rfc4514_string(),
        )

    logger.debug("TLS context trusts %d CA certificate(s)", len(trust_material.certificates))
    return context


@contextmanager
def _temp_credential_files(key_material: KeyMaterial, passphrase: bytes) -> Iterator[tuple[str, str]]:
    """Write the chain and the encrypted key to temporary files.

    OpenSSL only loads client credentials from file paths, so the PEM content
    is written to owner-only temp files which are removed on exit.
    """
    temp_files = []
    try:
        cert_file = tempfile.NamedTemporaryFile(mode="wb", suffix=".pem", delete=False)
        temp_files.append(cert_file.name)
        with cert_file:
            cert_file.write(key_material.chain_pem())

        key_file = tempfile.NamedTemporaryFile(mode="wb", suffix=".pem", delete=False)
        temp_files.append(key_file.name)
        with key_file:
            key_file.write(key_material.private_key_pem(passphrase))

        yield cert_file.name, key_file.name
    finally:
        for name in temp_files:
            try:
                os.unlink(name)
            except FileNotFoundError:
                pass
