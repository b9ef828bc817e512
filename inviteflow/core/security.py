"""
Origin policy for template frames.

A template may only talk to the host from the host's own origin or from one of
the configured deployment domains. Origins are compared on scheme, host and
port exactly; there is no substring or suffix matching.
"""
from typing import Iterable, Optional, Tuple
from urllib.parse import urlsplit

from inviteflow.core.config import settings

_DEFAULT_PORTS = {"http": 80, "https": 443, "ws": 80, "wss": 443}

Origin = Tuple[str, str, int]


def normalize_origin(origin: Optional[str]) -> Optional[Origin]:
    """
    Parse an origin string into ``(scheme, host, port)``.

    Returns None for anything that is not a plain ``scheme://host[:port]``
    origin (paths, credentials, the opaque ``null`` origin of sandboxed frames).
    """
    if not origin or origin == "null":
        return None
    try:
        parts = urlsplit(origin.strip())
        port = parts.port
    except ValueError:
        return None
    scheme = parts.scheme.lower()
    host = (parts.hostname or "").lower()
    if scheme not in _DEFAULT_PORTS or not host:
        return None
    if parts.username or parts.password or parts.path not in ("", "/") or parts.query or parts.fragment:
        return None
    return scheme, host, port if port is not None else _DEFAULT_PORTS[scheme]


class OriginPolicy:
    """Exact-match allow-list of template origins."""

    def __init__(self, allowed: Iterable[str]):
        self._allowed = set()
        for origin in allowed:
            parsed = normalize_origin(origin)
            if parsed is not None:
                self._allowed.add(parsed)

    @classmethod
    def from_settings(cls) -> "OriginPolicy":
        return cls(settings.template_origins_list)

    def is_allowed(self, origin: Optional[str]) -> bool:
        parsed = normalize_origin(origin)
        return parsed is not None and parsed in self._allowed
