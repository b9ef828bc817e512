"""Public identifier resolution for events and guests."""
from typing import Optional
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession

from inviteflow.core.errors import EntityKind, ResolutionError
from inviteflow.core.logging import logger
from inviteflow.db.models import Event, Guest
from inviteflow.db.repositories import find_ids

_COLUMNS = {
    EntityKind.event: (Event, Event.custom_event_id),
    EntityKind.guest: (Guest, Guest.custom_guest_id),
}


def _as_uuid(value) -> Optional[UUID]:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        return None


class IdResolver:
    """
    Map a public (custom) or internal identifier to the internal id.

    The internal-id column is tried first, so an internal id passes through
    unchanged; then the custom-id column. Matching is exact. Anything other
    than exactly one row is a ``ResolutionError``, which callers treat as
    terminal for the message being processed.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def resolve(self, kind: EntityKind, public_id) -> UUID:
        if public_id is None or not str(public_id).strip():
            raise ResolutionError(kind, public_id, "is empty")
        model, custom_column = _COLUMNS[kind]
        value = str(public_id).strip()

        internal = _as_uuid(value)
        if internal is not None:
            if await find_ids(self.session, model, model.id, internal):
                return internal

        matches = await find_ids(self.session, model, custom_column, value)
        if len(matches) == 1:
            logger.debug(f"Resolved {kind.value} custom id {value!r} -> {matches[0]}")
            return matches[0]
        if len(matches) > 1:
            raise ResolutionError(kind, public_id, "is ambiguous")
        raise ResolutionError(kind, public_id)

    async def resolve_event(self, public_id) -> UUID:
        return await self.resolve(EntityKind.event, public_id)

    async def resolve_guest(self, public_id) -> UUID:
        return await self.resolve(EntityKind.guest, public_id)
