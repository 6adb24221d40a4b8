from __future__ import annotations

from typing import List, Tuple

DEFAULT_PORT = 64738

_TRUE = {"1", "t", "true", "y", "yes", "on"}


def split_host_port(address: str) -> Tuple[str, int]:
    """Split ``host:port``; a missing or unparsable port falls back to the default.

    Bracketed IPv6 literals (``[::1]:64738``) are supported.
    """
    address = address.strip()
    if address.startswith("["):
        host, sep, rest = address[1:].partition("]")
        if sep and rest.startswith(":") and rest[1:].isdigit():
            return host, int(rest[1:])
        return host if sep else address, DEFAULT_PORT
    host, sep, port = address.rpartition(":")
    if not sep or ":" in host or not port.isdigit():
        return address, DEFAULT_PORT
    return host, int(port)


def parse_channel_path(raw: str) -> List[str]:
    return [part for part in raw.split(",") if part]


def parse_bool(raw: str) -> bool:
    return raw.strip().lower() in _TRUE
