"""PEM armor helpers."""

import base64
import re
import textwrap

_ARMOR_LINE = re.compile(r"-----(BEGIN|END) [^-]*-----")
_WHITESPACE = re.compile(r"\s+")

LINE_LENGTH = 64


def strip_armor(text: str) -> str:
    """Remove BEGIN/END marker lines and every kind of line break.

    Newlines are stripped in all their forms (\\r\\n, \\r, \\n) along with
    any other whitespace, whatever platform produced the file.
    """
    return _WHITESPACE.sub("", _ARMOR_LINE.sub("", text))


def decode_body(text: str) -> bytes:
    """Strip the armor from PEM text and Base64-decode what remains.

    Raises:
        ValueError: If the body is not valid Base64, including non-ASCII
            characters (binascii.Error is a ValueError)
    """
    return base64.b64decode(strip_armor(text), validate=True)


def armor(der: bytes, label: str) -> str:
    """Wrap DER bytes into PEM text with 64-column lines."""
    body = base64.b64encode(der).decode("ascii")
    lines = textwrap.wrap(body, LINE_LENGTH)
    return "\n".join([f"-----BEGIN {label}-----", *lines, f"-----END {label}-----", ""])


def looks_like_pem(data: bytes) -> bool:
    """Check whether data carries PEM armor."""
    return b"-----BEGIN " in data


def has_label(data: bytes, labels: tuple[str, ...]) -> bool:
    """Check whether data holds a PEM block with one of the given labels."""
    return any(f"-----BEGIN {label}-----".encode("ascii") in data for label in labels)
