"""RSVP protocol: view, accept and submit messages from invitation templates."""
from typing import Optional
from uuid import UUID
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from inviteflow.core.errors import EntityKind, ResolutionError, ValidationError
from inviteflow.core.logging import logger
from inviteflow.db import repositories as repo
from inviteflow.db.models.base import utcnow
from inviteflow.events import publisher
from inviteflow.protocol.messages import (
    ACCEPT_TYPES,
    SUBMIT_TYPES,
    MessageType,
    OutboundType,
    outbound,
)
from inviteflow.schemas import InvitationPayload, RsvpMessage
from inviteflow.services.guest_state import derive
from inviteflow.services.id_resolver import IdResolver


class RSVPProtocolHandler:
    """
    Applies RSVP messages to guest rows.

    Status is never written; each message sets flags with a single UPDATE and
    the reply is derived from the row as re-read afterwards, so a template
    always renders confirmed server state.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.resolver = IdResolver(session)

    async def resolve(self, public_event_id, public_guest_id):
        event_id = await self.resolver.resolve_event(public_event_id)
        guest_id = await self.resolver.resolve_guest(public_guest_id)
        if not await repo.guest_belongs_to_event(self.session, guest_id, event_id):
            raise ResolutionError(EntityKind.guest, public_guest_id, "is not a guest of this event")
        return event_id, guest_id

    async def invitation_payload(
        self,
        event_id: UUID,
        guest_id: UUID,
        public_event_id: Optional[str] = None,
        public_guest_id: Optional[str] = None,
    ) -> InvitationPayload:
        event = await repo.get_event(self.session, event_id)
        guest = await repo.get_guest(self.session, guest_id)
        if event is None:
            raise ResolutionError(EntityKind.event, public_event_id or event_id)
        if guest is None:
            raise ResolutionError(EntityKind.guest, public_guest_id or guest_id)
        fields = await repo.list_rsvp_fields(self.session, event_id)
        state = derive(guest, event, fields)
        return state.to_payload(public_event_id or str(event_id), public_guest_id or str(guest_id))

    async def handle(self, message_type: MessageType, payload: dict, channel_event_id: Optional[str] = None) -> dict:
        """
        Apply one RSVP message and return the reply for the template.

        Raises ``ValidationError`` before touching storage when identifiers or
        submitted data are missing, ``ResolutionError`` when an identifier
        does not map to this event's guest or the message names another
        event than the channel it arrived on.
        """
        try:
            message = RsvpMessage.model_validate(payload or {})
        except PydanticValidationError as e:
            raise ValidationError("eventId and guestId are required") from e

        values = None
        now = utcnow()
        if message_type is MessageType.INVITATION_VIEWED:
            values = {"viewed": True, "viewed_at": now}
        elif message_type in ACCEPT_TYPES:
            values = {"accepted": True, "accepted_at": now}
        elif message_type in SUBMIT_TYPES:
            data = message.submitted_data()
            if data is None:
                raise ValidationError("rsvpData is required")
            values = {"accepted": True, "accepted_at": now, "rsvp_data": data}
        elif message_type is not MessageType.TEMPLATE_READY:
            raise ValidationError(f"{message_type.value} is not an RSVP message")

        event_id, guest_id = await self.resolve(message.event_id, message.guest_id)
        if channel_event_id is not None and await self.resolver.resolve_event(channel_event_id) != event_id:
            raise ResolutionError(EntityKind.event, message.event_id, "does not match the channel")

        if values is not None:
            await repo.update_guest(self.session, guest_id, **values)
            logger.info(f"{message_type.value} applied to guest {guest_id} of event {event_id}")
            await publisher.notify_change("guests", "update", event_id, guest_id)

        result = await self.invitation_payload(event_id, guest_id, message.event_id, message.guest_id)
        if message_type is MessageType.TEMPLATE_READY:
            return outbound(OutboundType.INVITATION_LOADED, await self._loaded_payload(event_id, guest_id, result))
        return outbound(OutboundType.INVITATION_PAYLOAD_UPDATE, result.to_wire())

    async def _loaded_payload(self, event_id: UUID, guest_id: UUID, result: InvitationPayload) -> dict:
        event = await repo.get_event(self.session, event_id)
        guest = await repo.get_guest(self.session, guest_id)
        body = result.to_wire()
        body.update({
            "eventDetails": event.details or {},
            "guestName": guest.name,
            "wishesEnabled": bool(event.wishes_enabled),
        })
        return body
