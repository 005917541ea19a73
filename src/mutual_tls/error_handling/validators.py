"""
Argument validation for builder setters.

Setters fail fast: a missing locator or password is a programming error on
the caller's side and is reported at call time, never deferred to build().
"""

from typing import Any, Optional

from .errors import ConfigurationError


def require(value: Any, what: str, hint: Optional[str] = None) -> Any:
    """Reject an absent value.

    Args:
        value: The value passed to the setter
        what: Human-readable name of the value (e.g., "CA file")
        hint: Optional actionable hint appended to the message

    Returns:
        The value, unchanged

    Raises:
        ConfigurationError: If the value is None or an empty string
    """
    if value is None or (isinstance(value, (str, bytes)) and not value):
        message = f"{what} not found"
        if hint:
            message = f"{message}. Hint: {hint}"
        raise ConfigurationError(message)
    return value


def validate_locator(locator: Any, what: str) -> Any:
    """Validate a resource locator passed to a builder setter.

    Args:
        locator: Path, URL string or Traversable
        what: Human-readable name of the resource

    Returns:
        The validated locator

    Raises:
        ConfigurationError: If the locator is absent
    """
    return require(
        locator,
        what,
        "Pass a file path, a file:// or https:// URL, or a package:// resource.",
    )


def validate_password(password: Any, what: str = "Keystore password") -> str:
    """Validate a password passed to a builder setter.

    Passwords may be given as str or bytes; bytes are decoded as UTF-8.

    Raises:
        ConfigurationError: If the password is absent or not valid UTF-8
    """
    require(password, what, "Supply the password the keystore was exported with.")
    if isinstance(password, bytes):
        try:
            return password.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ConfigurationError(f"{what} is not valid UTF-8") from e
    return str(password)
