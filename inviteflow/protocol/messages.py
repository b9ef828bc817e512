"""
Template message envelope and the closed set of message types.

Every message is ``{"type": str, "payload": object}``. Inbound types form a
closed enumeration; anything else parses to an envelope with ``type=None``
that the router logs and ignores.
"""
import enum
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from pydantic import BaseModel, ValidationError as PydanticValidationError


class MessageType(str, enum.Enum):
    # Guest-facing wishes
    REQUEST_INITIAL_WISHES_DATA = "REQUEST_INITIAL_WISHES_DATA"
    SUBMIT_NEW_WISH = "SUBMIT_NEW_WISH"
    TOGGLE_WISH_LIKE = "TOGGLE_WISH_LIKE"
    SUBMIT_WISH_REPLY = "SUBMIT_WISH_REPLY"
    # Admin-facing wishes
    REQUEST_INITIAL_ADMIN_WISHES_DATA = "REQUEST_INITIAL_ADMIN_WISHES_DATA"
    APPROVE_WISH = "APPROVE_WISH"
    DELETE_WISH = "DELETE_WISH"
    REQUEST_WISHES_REFRESH = "REQUEST_WISHES_REFRESH"
    # RSVP
    TEMPLATE_READY = "TEMPLATE_READY"
    INVITATION_VIEWED = "INVITATION_VIEWED"
    RSVP_ACCEPTED = "RSVP_ACCEPTED"
    GUEST_ACCEPTANCE = "GUEST_ACCEPTANCE"
    RSVP_SUBMITTED = "RSVP_SUBMITTED"
    RSVP_UPDATED = "RSVP_UPDATED"
    GUEST_RSVP_UPDATE = "GUEST_RSVP_UPDATE"


class OutboundType(str, enum.Enum):
    INITIAL_WISHES_DATA = "INITIAL_WISHES_DATA"
    INITIAL_ADMIN_WISHES_DATA = "INITIAL_ADMIN_WISHES_DATA"
    WISH_SUBMITTED_SUCCESS = "WISH_SUBMITTED_SUCCESS"
    WISH_APPROVED = "WISH_APPROVED"
    WISH_DELETED = "WISH_DELETED"
    WISH_LIKE_UPDATED = "WISH_LIKE_UPDATED"
    WISH_REPLY_SUBMITTED = "WISH_REPLY_SUBMITTED"
    INVITATION_LOADED = "INVITATION_LOADED"
    INVITATION_PAYLOAD_UPDATE = "INVITATION_PAYLOAD_UPDATE"
    ERROR = "ERROR"


# Lower-case spelling some templates use
_ALIASES = {"template_ready": MessageType.TEMPLATE_READY}

ACCEPT_TYPES = frozenset({MessageType.RSVP_ACCEPTED, MessageType.GUEST_ACCEPTANCE})
SUBMIT_TYPES = frozenset({MessageType.RSVP_SUBMITTED, MessageType.RSVP_UPDATED, MessageType.GUEST_RSVP_UPDATE})
RSVP_TYPES = frozenset({MessageType.TEMPLATE_READY, MessageType.INVITATION_VIEWED}) | ACCEPT_TYPES | SUBMIT_TYPES
ADMIN_TYPES = frozenset({
    MessageType.REQUEST_INITIAL_ADMIN_WISHES_DATA,
    MessageType.APPROVE_WISH,
    MessageType.DELETE_WISH,
})

GENERIC_ERROR = "Failed to process message"


class _EnvelopeModel(BaseModel):
    type: str
    payload: Optional[Dict[str, Any]] = None
    data: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class Envelope:
    raw_type: str
    type: Optional[MessageType]
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class InboundMessage:
    """A message as received from a template frame, with the origin it came from."""
    origin: Optional[str]
    data: Any
    source: Optional[Any] = None


def message_type(raw: str) -> Optional[MessageType]:
    if raw in _ALIASES:
        return _ALIASES[raw]
    try:
        return MessageType(raw)
    except ValueError:
        return None


def parse_envelope(data: Any) -> Optional[Envelope]:
    """
    Validate the envelope shape. Returns None when ``data`` is not an envelope
    at all (browser-extension noise and the like).

    Older templates put the body under ``data`` instead of ``payload``; both
    are merged, ``payload`` winning.
    """
    if not isinstance(data, dict):
        return None
    try:
        model = _EnvelopeModel.model_validate(data)
    except PydanticValidationError:
        return None
    body = dict(model.data or {})
    body.update(model.payload or {})
    return Envelope(raw_type=model.type, type=message_type(model.type), payload=body)


def outbound(kind: OutboundType, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {"type": kind.value, "payload": payload or {}}


def error_message(text: str = GENERIC_ERROR) -> Dict[str, Any]:
    return outbound(OutboundType.ERROR, {"error": text})
