"""
Resource loading for certificate, key and keystore material.

A locator is turned into a readable binary stream. Supported locators:

- filesystem paths (str or os.PathLike)
- file:// URLs
- http:// and https:// URLs, fetched with httpx
- package://<package>/<path> resources, looked up with importlib.resources
- importlib.resources Traversable objects
"""

import io
import logging
import os
from contextlib import contextmanager
from importlib import resources as importlib_resources
from importlib.resources.abc import Traversable
from typing import BinaryIO, Iterator, Union
from urllib.parse import urlsplit
from urllib.request import url2pathname

import httpx

from .error_handling import ResourceError

logger = logging.getLogger(__name__)

Locator = Union[str, "os.PathLike[str]", Traversable]

DEFAULT_FETCH_TIMEOUT = 30.0


def describe_locator(locator: Locator) -> str:
    """Render a locator for log and error messages."""
    if isinstance(locator, os.PathLike):
        return os.fspath(locator)
    return str(locator)


@contextmanager
def open_resource(locator: Locator, timeout: float = DEFAULT_FETCH_TIMEOUT) -> Iterator[BinaryIO]:
    """Open a locator as a binary stream.

    The stream is closed when the context exits, on success or failure.

    Args:
        locator: Where to read the resource from
        timeout: Timeout in seconds for network fetches

    Yields:
        A readable binary stream

    Raises:
        ResourceError: If the resource cannot be opened or fetched
    """
    name = describe_locator(locator)
    logger.debug("Opening resource %s", name)

    if isinstance(locator, os.PathLike):
        stream = _open_path(os.fspath(locator), locator)
    elif isinstance(locator, str):
        stream = _open_string_locator(locator, timeout)
    elif hasattr(locator, "open"):
        try:
            stream = locator.open("rb")
        except OSError as e:
            raise ResourceError(f"Cannot open resource {name}: {e}", locator=locator) from e
    else:
        raise ResourceError(
            f"Unsupported locator type: {type(locator).__name__}", locator=locator
        )

    with stream:
        yield stream


def read_resource(locator: Locator, timeout: float = DEFAULT_FETCH_TIMEOUT) -> bytes:
    """Read a whole resource into memory.

    Raises:
        ResourceError: If the resource cannot be opened or read
    """
    with open_resource(locator, timeout=timeout) as stream:
        try:
            return stream.read()
        except OSError as e:
            raise ResourceError(
                f"Cannot read resource {describe_locator(locator)}: {e}", locator=locator
            ) from e


def _open_string_locator(locator: str, timeout: float) -> BinaryIO:
    parts = urlsplit(locator)
    scheme = parts.scheme.lower()

    # Single-letter schemes are Windows drive letters
    if not scheme or len(scheme) == 1:
        return _open_path(locator, locator)
    if scheme == "file":
        return _open_path(url2pathname(parts.path), locator)
    if scheme in ("http", "https"):
        return _fetch(locator, timeout)
    if scheme == "package":
        return _open_package_resource(parts.netloc, parts.path.lstrip("/"), locator)

    raise ResourceError(f"Unsupported locator scheme '{scheme}' in {locator}", locator=locator)


def _open_path(path: str, locator: Locator) -> BinaryIO:
    try:
        return open(path, "rb")
    except OSError as e:
        raise ResourceError(f"Cannot open file {path}: {e}", locator=locator) from e


def _fetch(url: str, timeout: float) -> BinaryIO:
    try:
        response = httpx.get(url, timeout=timeout, follow_redirects=True)
        response.raise_for_status()
    except httpx.HTTPError as e:
        raise ResourceError(f"Cannot fetch {url}: {e}", locator=url, remote=True) from e
    return io.BytesIO(response.content)


def _open_package_resource(package: str, path: str, locator: str) -> BinaryIO:
    if not package or not path:
        raise ResourceError(
            f"Package locator must look like package://<package>/<path>, got {locator}",
            locator=locator,
        )
    try:
        resource = importlib_resources.files(package).joinpath(path)
        return resource.open("rb")
    except (ModuleNotFoundError, OSError) as e:
        raise ResourceError(f"Cannot open package resource {locator}: {e}", locator=locator) from e
