"""
Error taxonomy for the template protocol.

None of these ever cross the message-handling boundary: the router turns them
into a generic ``ERROR`` reply or drops the message silently.
"""
import enum


class EntityKind(str, enum.Enum):
    event = "event"
    guest = "guest"
    wish = "wish"


class InviteflowError(Exception):
    """Base class for protocol and storage failures."""


class ResolutionError(InviteflowError):
    """A public identifier could not be mapped to exactly one internal id."""

    def __init__(self, kind: EntityKind, public_id, reason: str = "not found"):
        self.kind = kind
        self.public_id = public_id
        self.reason = reason
        super().__init__(f"{kind.value} {public_id!r} {reason}")


class ValidationError(InviteflowError):
    """Required message fields are missing or malformed; nothing was mutated."""


class StorageError(InviteflowError):
    """Persistence failed. Detail stays in host-side logs."""


class SecurityRejection(InviteflowError):
    """Bad origin, unregistered channel or missing privilege. Dropped without a reply."""
