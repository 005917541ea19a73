"""
X.509 certificate set decoding.

A certificate resource holds one or more certificates, either as PEM blocks
or as concatenated DER. The decoded set keeps file order and is never empty.
"""

import logging
from typing import BinaryIO

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.serialization import Encoding

from . import pem
from .error_handling import CertificateDecodeError, NoCertificatesError

logger = logging.getLogger(__name__)

CERTIFICATE_LABELS = ("CERTIFICATE", "X509 CERTIFICATE")

_SEQUENCE_TAG = 0x30


def read_certificates(stream: BinaryIO, source: str = "<stream>") -> list[x509.Certificate]:
    """Read every X.509 certificate from a stream.

    Args:
        stream: Binary stream holding PEM or DER certificates
        source: Name of the stream for error messages

    Returns:
        Certificates in file order

    Raises:
        CertificateDecodeError: If a certificate is malformed
        NoCertificatesError: If the stream holds no certificate
    """
    return decode_certificates(stream.read(), source=source)


def decode_certificates(data: bytes, source: str = "<bytes>") -> list[x509.Certificate]:
    """Decode every X.509 certificate from PEM or concatenated DER bytes.

    Raises:
        CertificateDecodeError: If a certificate is malformed
        NoCertificatesError: If the data holds no certificate
    """
    if pem.looks_like_pem(data):
        certificates = _decode_pem(data, source)
    elif _is_text(data):
        certificates = []
    else:
        certificates = [_load_der(der, source) for der in split_der(data, source)]

    if not certificates:
        raise NoCertificatesError(f"expected non-empty set of trusted certificates in {source}")

    logger.debug("Decoded %d certificate(s) from %s", len(certificates), source)
    for cert in certificates:
        logger.debug("  %s (sha256 %s)", cert.subject.rfc4514_string(), fingerprint(cert))
    return certificates


def split_der(data: bytes, source: str = "<bytes>") -> list[bytes]:
    """Split concatenated DER structures into their top-level SEQUENCEs.

    Raises:
        CertificateDecodeError: If the data is not a sequence of DER SEQUENCEs
    """
    chunks = []
    offset = 0
    while offset < len(data):
        if data[offset] != _SEQUENCE_TAG:
            raise CertificateDecodeError(
                f"Unexpected DER tag 0x{data[offset]:02x} at offset {offset} in {source}"
            )
        length, header = _der_length(data, offset + 1, source)
        end = offset + header + length
        if end > len(data):
            raise CertificateDecodeError(f"Truncated DER certificate at offset {offset} in {source}")
        chunks.append(data[offset:end])
        offset = end
    return chunks


def fingerprint(cert: x509.Certificate) -> str:
    """Get SHA256 fingerprint of certificate."""
    return cert.fingerprint(hashes.SHA256()).hex().upper()


def to_pem(certificates: list[x509.Certificate]) -> bytes:
    """Serialize certificates back to concatenated PEM."""
    return b"".join(cert.public_bytes(Encoding.PEM) for cert in certificates)


def _decode_pem(data: bytes, source: str) -> list[x509.Certificate]:
    if not pem.has_label(data, CERTIFICATE_LABELS):
        return []
    try:
        return x509.load_pem_x509_certificates(data)
    except ValueError as e:
        raise CertificateDecodeError(f"Malformed certificate in {source}: {e}") from e


def _is_text(data: bytes) -> bool:
    """Whitespace or comment text with no PEM armor holds no certificate."""
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError:
        return False
    return all(ch.isprintable() or ch.isspace() for ch in text)


def _load_der(der: bytes, source: str) -> x509.Certificate:
    try:
        return x509.load_der_x509_certificate(der)
    except ValueError as e:
        raise CertificateDecodeError(f"Malformed certificate in {source}: {e}") from e


def _der_length(data: bytes, offset: int, source: str) -> tuple[int, int]:
    """Decode a DER length field.

    Returns:
        Tuple of (content length, number of header bytes including the tag)
    """
    if offset >= len(data):
        raise CertificateDecodeError(f"Truncated DER length in {source}")
    first = data[offset]
    if first < 0x80:
        return first, 2
    count = first & 0x7F
    if count == 0 or count > 4 or offset + 1 + count > len(data):
        raise CertificateDecodeError(f"Unsupported DER length encoding in {source}")
    length = int.from_bytes(data[offset + 1:offset + 1 + count], "big")
    return length, 2 + count
