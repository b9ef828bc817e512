"""
Repository layer for database operations.

Async functions for the event, guest, RSVP-field and wish tables. Every
mutation is committed as one transaction; SQLAlchemy failures are rolled back
and re-raised as ``StorageError``. The row-level rules of the invitation
platform live here too: a wish may only reference a guest of the same event,
and guest-facing wish reads only see approved wishes of events that have
wishes enabled.
"""
from sqlalchemy import select, update, delete, func, and_
from sqlalchemy.exc import SQLAlchemyError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional, List, Tuple, Iterable
from uuid import UUID
from inviteflow.cache.cache_decorators import cached
from inviteflow.core.errors import StorageError
from inviteflow.core.logging import logger
from inviteflow.db.models import Event, Guest, RSVPFieldDefinition, Wish, WishLike, WishReply
from inviteflow.schemas import WishOut
from inviteflow.services.guest_state import analytics_bucket


async def _commit(db: AsyncSession, action: str):
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Storage failure during {action}: {e}")
        raise StorageError(f"{action} failed") from e


async def _execute_write(db: AsyncSession, action: str, statement):
    """Run one write statement and commit it."""
    try:
        result = await db.execute(statement)
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Storage failure during {action}: {e}")
        raise StorageError(f"{action} failed") from e
    await _commit(db, action)
    return result


async def _read(db: AsyncSession, action: str, statement):
    try:
        return await db.execute(statement)
    except SQLAlchemyError as e:
        logger.error(f"Storage failure during {action}: {e}")
        raise StorageError(f"{action} failed") from e


# Identifier lookups

async def find_ids(db: AsyncSession, model, column, value, limit: int = 2) -> List[UUID]:
    """
    Return the ids of rows whose ``column`` equals ``value`` exactly.

    At most ``limit`` ids are fetched, enough for callers to detect ambiguity.
    """
    q = select(model.id).where(column == value).limit(limit)
    res = await _read(db, f"{model.__tablename__} lookup", q)
    return list(res.scalars().all())


# Events

async def get_event(db: AsyncSession, event_id: UUID) -> Optional[Event]:
    q = select(Event).where(Event.id == event_id).execution_options(populate_existing=True)
    res = await _read(db, "event read", q)
    return res.scalars().first()


async def list_rsvp_fields(db: AsyncSession, event_id: UUID) -> List[RSVPFieldDefinition]:
    q = (
        select(RSVPFieldDefinition)
        .where(RSVPFieldDefinition.event_id == event_id)
        .order_by(RSVPFieldDefinition.display_order, RSVPFieldDefinition.field_name)
    )
    res = await _read(db, "rsvp field read", q)
    return list(res.scalars().all())


@cached('events:list', scope_arg='host_id')
async def list_events(db: AsyncSession, host_id: Optional[str] = None) -> List[dict]:
    """
    List events newest first with their guest counts.
    Returns dictionaries for caching compatibility.
    """
    guest_counts = (
        select(Guest.event_id, func.count(Guest.id).label("guest_count"))
        .group_by(Guest.event_id)
        .subquery()
    )
    q = (
        select(Event, func.coalesce(guest_counts.c.guest_count, 0))
        .outerjoin(guest_counts, guest_counts.c.event_id == Event.id)
        .order_by(Event.created_at.desc())
    )
    if host_id:
        q = q.where(Event.host_id == host_id)

    res = await _read(db, "event list", q)
    return [
        {
            'id': str(ev.id),
            'custom_event_id': ev.custom_event_id,
            'name': ev.name,
            'wishes_enabled': ev.wishes_enabled,
            'allow_rsvp_edit': ev.allow_rsvp_edit,
            'guest_count': count,
            'created_at': ev.created_at.isoformat() if ev.created_at else None,
        }
        for ev, count in res.all()
    ]


@cached('analytics', scope_arg='event_id')
async def event_stats(db: AsyncSession, event_id: UUID) -> dict:
    """Mutually exclusive guest counts per dashboard bucket."""
    q = select(Guest.viewed, Guest.accepted, Guest.rsvp_data).where(Guest.event_id == event_id)
    res = await _read(db, "event stats", q)
    stats = {"total": 0, "pending": 0, "viewed": 0, "accepted": 0, "submitted": 0}
    for row in res.all():
        stats["total"] += 1
        stats[analytics_bucket(row).value] += 1
    return stats


async def set_wishes_enabled(db: AsyncSession, event_id: UUID, enabled: bool) -> int:
    q = update(Event).where(Event.id == event_id).values(wishes_enabled=enabled)
    res = await _execute_write(db, "wishes setting update", q)
    return res.rowcount


# Guests

async def get_guest(db: AsyncSession, guest_id: UUID) -> Optional[Guest]:
    # Rows are re-read from the database, never served stale from the identity map
    q = select(Guest).where(Guest.id == guest_id).execution_options(populate_existing=True)
    res = await _read(db, "guest read", q)
    return res.scalars().first()


async def guest_belongs_to_event(db: AsyncSession, guest_id: UUID, event_id: UUID) -> bool:
    q = select(func.count(Guest.id)).where(Guest.id == guest_id, Guest.event_id == event_id)
    res = await _read(db, "guest membership check", q)
    return (res.scalar() or 0) > 0


async def update_guest(db: AsyncSession, guest_id: UUID, **values) -> int:
    """Apply ``values`` to one guest row in a single UPDATE statement."""
    q = update(Guest).where(Guest.id == guest_id).values(**values)
    res = await _execute_write(db, "guest update", q)
    return res.rowcount


async def update_event_guests(
    db: AsyncSession,
    event_id: UUID,
    values: dict,
    guest_ids: Optional[Iterable[UUID]] = None,
) -> int:
    """Host administrative update of many guests of one event."""
    q = update(Guest).where(Guest.event_id == event_id)
    if guest_ids is not None:
        q = q.where(Guest.id.in_(list(guest_ids)))
    res = await _execute_write(db, "bulk guest update", q.values(**values))
    return res.rowcount


# Wishes

def _wishes_query(event_id: UUID, approved_only: bool):
    q = select(Wish).where(Wish.event_id == event_id)
    if approved_only:
        q = q.join(Event, Event.id == Wish.event_id).where(
            Wish.is_approved.is_(True),
            Event.wishes_enabled.is_(True),
        )
    return (
        q.order_by(Wish.created_at.desc(), Wish.id.desc())
        .execution_options(populate_existing=True)
    )


async def list_wishes(db: AsyncSession, event_id: UUID, approved_only: bool = True) -> List[Wish]:
    """
    Wishes of one event, newest first.

    ``approved_only`` is the guest-facing read: approved rows of an event with
    wishes enabled. The admin read returns every row.
    """
    res = await _read(db, "wish list", _wishes_query(event_id, approved_only))
    return list(res.scalars().all())


@cached('wishes', scope_arg='event_id')
async def list_wishes_for_dashboard(db: AsyncSession, event_id: UUID) -> List[dict]:
    wishes = await list_wishes(db, event_id, approved_only=False)
    return [WishOut.from_row(w).to_wire() for w in wishes]


def _guest_visible(q):
    """Restrict a wish statement to rows guests can see: approved, on an event with wishes enabled."""
    return q.where(
        Wish.is_approved.is_(True),
        Wish.event_id.in_(select(Event.id).where(Event.wishes_enabled.is_(True))),
    )


async def get_wish(
    db: AsyncSession, event_id: UUID, wish_id: UUID, visible_only: bool = False
) -> Optional[Wish]:
    q = select(Wish).where(Wish.id == wish_id, Wish.event_id == event_id)
    if visible_only:
        q = _guest_visible(q)
    q = q.execution_options(populate_existing=True)
    res = await _read(db, "wish read", q)
    return res.scalars().first()


async def find_wish(db: AsyncSession, wish_id: UUID) -> Optional[Wish]:
    """Wish by id alone, for host moderation where the event comes from the row."""
    res = await _read(db, "wish read", select(Wish).where(Wish.id == wish_id))
    return res.scalars().first()


async def create_wish(
    db: AsyncSession,
    event_id: UUID,
    guest_id: Optional[UUID],
    guest_name: str,
    wish_text: str,
    photo_url: Optional[str] = None,
) -> Wish:
    """Insert an unapproved wish. The guest, when given, must belong to the event."""
    if guest_id is not None and not await guest_belongs_to_event(db, guest_id, event_id):
        logger.warning(f"Rejected wish insert: guest {guest_id} is not a guest of event {event_id}")
        raise StorageError("wish insert violates guest/event policy")

    wish = Wish(
        event_id=event_id,
        guest_id=guest_id,
        guest_name=guest_name,
        wish_text=wish_text,
        photo_url=photo_url,
        is_approved=False,
        likes_count=0,
    )
    db.add(wish)
    await _commit(db, "wish insert")
    await db.refresh(wish)
    return wish


async def approve_wish(db: AsyncSession, event_id: UUID, wish_id: UUID) -> None:
    q = (
        update(Wish)
        .where(Wish.id == wish_id, Wish.event_id == event_id)
        .values(is_approved=True)
    )
    res = await _execute_write(db, "wish approval", q)
    if res.rowcount == 0:
        raise StorageError(f"wish {wish_id} not found")


async def delete_wish(db: AsyncSession, event_id: UUID, wish_id: UUID) -> None:
    """Hard delete of a wish together with its likes and replies."""
    if await get_wish(db, event_id, wish_id) is None:
        raise StorageError(f"wish {wish_id} not found")
    try:
        await db.execute(delete(WishLike).where(WishLike.wish_id == wish_id))
        await db.execute(delete(WishReply).where(WishReply.wish_id == wish_id))
        await db.execute(delete(Wish).where(Wish.id == wish_id, Wish.event_id == event_id))
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Storage failure during wish delete: {e}")
        raise StorageError("wish delete failed") from e
    await _commit(db, "wish delete")


async def toggle_wish_like(
    db: AsyncSession, event_id: UUID, wish_id: UUID, guest_id: UUID, visible_only: bool = True
) -> Tuple[int, bool]:
    """
    Add or remove the guest's like and resync ``likes_count`` from the like rows.

    Returns the new count and whether the guest now likes the wish. With
    ``visible_only`` the wish must be one guests can see.
    """
    if await get_wish(db, event_id, wish_id, visible_only) is None:
        raise StorageError(f"wish {wish_id} not found")

    try:
        existing = (await db.execute(
            select(WishLike.id).where(WishLike.wish_id == wish_id, WishLike.guest_id == guest_id)
        )).scalars().first()
        if existing is not None:
            await db.execute(delete(WishLike).where(WishLike.id == existing))
        else:
            db.add(WishLike(wish_id=wish_id, guest_id=guest_id))
            await db.flush()
        likes = (await db.execute(
            select(func.count(WishLike.id)).where(WishLike.wish_id == wish_id)
        )).scalar() or 0
        await db.execute(update(Wish).where(Wish.id == wish_id).values(likes_count=max(0, likes)))
    except IntegrityError as e:
        # Duplicate tab liked concurrently; the other request won
        await db.rollback()
        logger.warning(f"Concurrent like toggle on wish {wish_id}: {e.orig}")
        raise StorageError("like toggle conflicted") from e
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Storage failure during like toggle: {e}")
        raise StorageError("like toggle failed") from e
    await _commit(db, "like toggle")
    return max(0, likes), existing is None


async def increment_wish_likes(
    db: AsyncSession, event_id: UUID, wish_id: UUID, visible_only: bool = True
) -> int:
    """Anonymous like: atomic ``likes_count + 1``."""
    q = update(Wish).where(and_(Wish.id == wish_id, Wish.event_id == event_id))
    if visible_only:
        q = _guest_visible(q)
    q = q.values(likes_count=Wish.likes_count + 1)
    res = await _execute_write(db, "like increment", q)
    if res.rowcount == 0:
        raise StorageError(f"wish {wish_id} not found")
    wish = await get_wish(db, event_id, wish_id)
    return wish.likes_count


async def create_wish_reply(
    db: AsyncSession,
    event_id: UUID,
    wish_id: UUID,
    reply_text: str,
    guest_id: Optional[UUID] = None,
    guest_name: Optional[str] = None,
    visible_only: bool = True,
) -> WishReply:
    if await get_wish(db, event_id, wish_id, visible_only) is None:
        raise StorageError(f"wish {wish_id} not found")
    reply = WishReply(wish_id=wish_id, guest_id=guest_id, guest_name=guest_name, reply_text=reply_text)
    db.add(reply)
    await _commit(db, "wish reply insert")
    await db.refresh(reply)
    return reply
