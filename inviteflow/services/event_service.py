from sqlalchemy.ext.asyncio import AsyncSession
from inviteflow.core.errors import EntityKind, ResolutionError
from inviteflow.core.logging import logger
from inviteflow.db import repositories as repo
from inviteflow.db.models.base import utcnow
from inviteflow.events import publisher
from inviteflow.schemas import GuestBucket, InvitationPayload
from inviteflow.services.id_resolver import IdResolver
from inviteflow.services.rsvp_service import RSVPProtocolHandler
from typing import List, Optional
from uuid import UUID


def bucket_values(status: GuestBucket) -> dict:
    """Flag values that put a guest in ``status``. Stored answers are only cleared by ``pending``."""
    now = utcnow()
    if status is GuestBucket.pending:
        return {"viewed": False, "accepted": False, "rsvp_data": None}
    if status is GuestBucket.viewed:
        return {"viewed": True, "accepted": False, "viewed_at": now}
    # ``submitted`` cannot invent answers; it marks acceptance like ``accepted``
    return {"viewed": True, "accepted": True, "viewed_at": now, "accepted_at": now}


class EventService:
    """Host dashboard operations. Every path identifier may be internal or custom."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.resolver = IdResolver(session)

    async def list_events(self, host_id: Optional[str] = None) -> List[dict]:
        return await repo.list_events(self.session, host_id=host_id)

    async def stats(self, public_event_id: str) -> dict:
        event_id = await self.resolver.resolve_event(public_event_id)
        return await repo.event_stats(self.session, event_id)

    async def invitation(self, public_event_id: str, public_guest_id: str) -> InvitationPayload:
        handler = RSVPProtocolHandler(self.session)
        event_id, guest_id = await handler.resolve(public_event_id, public_guest_id)
        return await handler.invitation_payload(event_id, guest_id, public_event_id, public_guest_id)

    async def reset_guests(self, public_event_id: str) -> int:
        event_id = await self.resolver.resolve_event(public_event_id)
        values = {
            "viewed": False,
            "viewed_at": None,
            "accepted": False,
            "accepted_at": None,
            "rsvp_data": None,
        }
        updated = await repo.update_event_guests(self.session, event_id, values)
        logger.info(f"Reset {updated} guests of event {event_id} to pending")
        await publisher.notify_change("guests", "update", event_id)
        return updated

    async def bulk_status(self, public_event_id: str, public_guest_ids: List[str], status: GuestBucket) -> int:
        event_id = await self.resolver.resolve_event(public_event_id)
        guest_ids: List[UUID] = []
        for public_guest_id in public_guest_ids:
            guest_id = await self.resolver.resolve_guest(public_guest_id)
            if not await repo.guest_belongs_to_event(self.session, guest_id, event_id):
                raise ResolutionError(EntityKind.guest, public_guest_id, "is not a guest of this event")
            guest_ids.append(guest_id)
        updated = await repo.update_event_guests(self.session, event_id, bucket_values(status), guest_ids)
        logger.info(f"Moved {updated} guests of event {event_id} to {status.value}")
        await publisher.notify_change("guests", "update", event_id)
        return updated

    async def set_wishes_enabled(self, public_event_id: str, enabled: bool) -> bool:
        event_id = await self.resolver.resolve_event(public_event_id)
        await repo.set_wishes_enabled(self.session, event_id, enabled)
        logger.info(f"Wishes {'enabled' if enabled else 'disabled'} for event {event_id}")
        await publisher.notify_change("events", "update", event_id, event_id)
        return enabled

    async def list_wishes(self, public_event_id: str) -> List[dict]:
        event_id = await self.resolver.resolve_event(public_event_id)
        return await repo.list_wishes_for_dashboard(self.session, event_id)

    async def _wish_event(self, wish_id: UUID) -> UUID:
        wish = await repo.find_wish(self.session, wish_id)
        if wish is None:
            raise ResolutionError(EntityKind.wish, str(wish_id))
        return wish.event_id

    async def approve_wish(self, wish_id: UUID):
        event_id = await self._wish_event(wish_id)
        await repo.approve_wish(self.session, event_id, wish_id)
        logger.info(f"Wish {wish_id} approved from dashboard")
        await publisher.notify_change("wishes", "update", event_id, wish_id)

    async def delete_wish(self, wish_id: UUID):
        event_id = await self._wish_event(wish_id)
        await repo.delete_wish(self.session, event_id, wish_id)
        logger.info(f"Wish {wish_id} deleted from dashboard")
        await publisher.notify_change("wishes", "delete", event_id, wish_id)
