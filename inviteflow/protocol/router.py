"""
Message router between template frames and the host.

``MessageRouter.handle`` is the only entry point for template traffic and the
boundary nothing escapes from: rejected messages vanish without a reply,
handler failures become a single generic ``ERROR`` reply, and the caller never
sees an exception.
"""
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from inviteflow.core.errors import InviteflowError, SecurityRejection
from inviteflow.core.logging import logger
from inviteflow.core.security import OriginPolicy
from inviteflow.db.session import AsyncSessionLocal
from inviteflow.protocol.messages import (
    ADMIN_TYPES,
    RSVP_TYPES,
    Envelope,
    InboundMessage,
    MessageType,
    error_message,
    parse_envelope,
)
from inviteflow.protocol.registry import ChannelRegistry, Registration
from inviteflow.services.media_storage import MediaStorage
from inviteflow.services.rsvp_service import RSVPProtocolHandler
from inviteflow.services.wish_service import WishChannelHandler


class MessageRouter:
    def __init__(
        self,
        registry: ChannelRegistry,
        session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
        origin_policy: Optional[OriginPolicy] = None,
        storage: Optional[MediaStorage] = None,
    ):
        self.registry = registry
        self.session_factory = session_factory
        self.origin_policy = origin_policy or OriginPolicy.from_settings()
        self.storage = storage

    async def handle(self, message: InboundMessage, event_id: str) -> None:
        registration = self.registry.lookup(event_id, message.source)
        if registration is None:
            if message.source is None and self.registry.channel_count(event_id) > 1:
                logger.warning(
                    f"Dropping message without a source frame: event {event_id} has "
                    f"{self.registry.channel_count(event_id)} template channels"
                )
            else:
                # Same silence as a bad origin: nothing reveals which event ids exist
                logger.debug(f"Dropping message for unregistered channel {event_id}")
            return
        if not self.origin_policy.is_allowed(message.origin):
            logger.warning(f"Dropping message from unauthorized origin {message.origin!r}")
            return

        envelope = parse_envelope(message.data)
        if envelope is None:
            logger.debug(f"Ignoring non-envelope message on channel {event_id}")
            return
        if envelope.type is None:
            logger.warning(f"Ignoring unknown message type {envelope.raw_type!r} on channel {event_id}")
            return

        async with registration.lock:
            try:
                await self._dispatch(envelope, registration)
            except SecurityRejection as e:
                logger.warning(f"Rejected {envelope.raw_type} on channel {event_id}: {e}")
            except InviteflowError as e:
                logger.error(f"{envelope.raw_type} failed on channel {event_id}: {e!r}")
                await registration.reply(error_message())
            except Exception as e:
                logger.exception(f"Unexpected failure handling {envelope.raw_type} on channel {event_id}: {e}")
                await registration.reply(error_message())

    async def _dispatch(self, envelope: Envelope, registration: Registration):
        kind = envelope.type
        if kind in ADMIN_TYPES and not registration.is_admin:
            raise SecurityRejection(f"{kind.value} arrived on a guest channel")
        async with self.session_factory() as session:
            if kind in RSVP_TYPES:
                reply = await RSVPProtocolHandler(session).handle(kind, envelope.payload, registration.event_id)
                await registration.reply(reply)
                return

            wishes = WishChannelHandler(session, registration, self.storage)
            if kind is MessageType.REQUEST_INITIAL_WISHES_DATA:
                await wishes.initial_load(admin=False)
            elif kind is MessageType.REQUEST_INITIAL_ADMIN_WISHES_DATA:
                await wishes.initial_load(admin=True)
            elif kind is MessageType.REQUEST_WISHES_REFRESH:
                await wishes.refresh()
            elif kind is MessageType.SUBMIT_NEW_WISH:
                await wishes.submit(envelope.payload)
            elif kind is MessageType.APPROVE_WISH:
                await wishes.approve(envelope.payload)
            elif kind is MessageType.DELETE_WISH:
                await wishes.delete(envelope.payload)
            elif kind is MessageType.TOGGLE_WISH_LIKE:
                await wishes.toggle_like(envelope.payload)
            elif kind is MessageType.SUBMIT_WISH_REPLY:
                await wishes.reply(envelope.payload)
            else:
                logger.warning(f"No handler for message type {kind.value}")
