"""Utility functions for frpc site management."""

import re
from typing import Any

# Port range constants
MIN_PORT = 1
MAX_PORT = 65535

MAC_HEX_LENGTH = 12
_MAC_SEPARATORS = re.compile(r"[\s:\-.]")
_LEADING_INT = re.compile(r"^[+-]?\d+")

# Characters that would corrupt a pipe-delimited device registry line
REGISTRY_FORBIDDEN_CHARS = ("|", "\n", "\r")


def validate_port(port: int, port_name: str = "Port") -> None:
    """Validate port number range.

    Args:
        port: Port number to validate
        port_name: Name of the port for error messages

    Raises:
        ValueError: If port is not in valid range (1-65535)
    """
    if isinstance(port, bool) or not isinstance(port, int) or not (MIN_PORT <= port <= MAX_PORT):
        raise ValueError(f"{port_name} must be between {MIN_PORT} and {MAX_PORT}")


def validate_registry_text(value: str, field_name: str) -> str:
    """Reject text that cannot be stored in a device registry line.

    Raises:
        ValueError: If value contains a pipe or a line break
    """
    for char in REGISTRY_FORBIDDEN_CHARS:
        if char in value:
            raise ValueError(f"{field_name} cannot contain {char!r}")
    return value


def normalize_mac(value: str) -> str:
    """Normalize a MAC address to 12 upper-case hex characters.

    Accepts the common separator styles (``e7:21:ee:34:5a:01``,
    ``E7-21-EE-34-5A-01``, ``e721.ee34.5a01``) as well as the bare form.

    Args:
        value: MAC address as typed by an operator

    Returns:
        Canonical MAC address

    Raises:
        ValueError: If the value is not a 48-bit hex MAC address
    """
    compact = _MAC_SEPARATORS.sub("", value or "").upper()
    if len(compact) != MAC_HEX_LENGTH or not all(c in "0123456789ABCDEF" for c in compact):
        raise ValueError(f"Invalid MAC address '{value}'")
    return compact


def parse_int_prefix(value: str | None, default: int = 0) -> int:
    """Parse the leading integer of a string, falling back to default.

    ``"18015"`` and ``"18015 # ssh"`` both give 18015; ``"abc"`` gives default.
    """
    if not value:
        return default
    match = _LEADING_INT.match(value.strip())
    if match is None:
        return default
    return int(match.group(0))


def make_proxy_name(prefix: str, mac_address: str, service_port: int) -> str:
    """Build a proxy section name of the form ``<prefix>-<mac>-<service port>``."""
    return f"{prefix}-{mac_address}-{service_port}"


def extract_service_port(name: str | None) -> int | None:
    """Extract the service port from a proxy name such as ``R-E721EE345A01-22``.

    Returns:
        The service port, or None if the name does not follow the convention
    """
    if not name:
        return None
    parts = name.split("-")
    if len(parts) < 3 or not parts[-1].isdigit():
        return None
    return int(parts[-1])


def rename_proxy_mac(name: str, old_mac: str, new_mac: str) -> str:
    """Swap the MAC segment of a conventional proxy name, leaving other names alone."""
    token = f"-{old_mac}-"
    if not old_mac or token not in name:
        return name
    return name.replace(token, f"-{new_mac}-", 1)


def mask_sensitive_data(
    value: str | None, mask_char: str = "*", show_chars: int = 4
) -> str:
    """Mask sensitive data for logging while preserving some characters for debugging.

    Args:
        value: Sensitive string to mask (e.g., site password, auth token)
        mask_char: Character to use for masking
        show_chars: Number of characters to show at the end

    Returns:
        Masked string safe for logging
    """
    if not value:
        return "<None>"

    if len(value) <= show_chars:
        return mask_char * len(value)

    masked_length = len(value) - show_chars
    return mask_char * masked_length + value[-show_chars:]


def sanitize_log_data(data: dict[str, Any]) -> dict[str, Any]:
    """Sanitize dictionary data for safe logging by masking sensitive fields.

    Args:
        data: Dictionary potentially containing sensitive data

    Returns:
        Sanitized dictionary safe for logging
    """
    sensitive_fields = {"password", "token", "secret"}

    sanitized = {}
    for key, value in data.items():
        lowered = key.lower()
        if lowered == "sk" or any(field in lowered for field in sensitive_fields):
            sanitized[key] = mask_sensitive_data(str(value) if value else None)
        else:
            sanitized[key] = value

    return sanitized
