"""Wish channel: loading, submission, moderation, likes and replies for one event."""
from typing import List, Optional, Type, TypeVar
from uuid import UUID
from pydantic import BaseModel, ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from inviteflow.core.errors import EntityKind, ResolutionError, SecurityRejection, ValidationError
from inviteflow.core.logging import logger
from inviteflow.db import repositories as repo
from inviteflow.events import publisher
from inviteflow.protocol.messages import OutboundType, outbound
from inviteflow.protocol.registry import Registration
from inviteflow.schemas import (
    WishLikeToggle,
    WishOut,
    WishRef,
    WishReplySubmission,
    WishSubmission,
    wish_to_row,
)
from inviteflow.services.id_resolver import IdResolver
from inviteflow.services.media_storage import MediaStorage, decode_inline_image, media_storage

M = TypeVar("M", bound=BaseModel)


def parse_payload(model: Type[M], payload: dict) -> M:
    try:
        return model.model_validate(payload or {})
    except PydanticValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise ValidationError(f"invalid {model.__name__}: {fields}") from e


class WishChannelHandler:
    """
    Handles wish messages arriving on one template channel.

    Every successful mutation is followed by a full reload of the relevant
    list, pushed to the frame and to the channel's observer; templates never
    patch their list incrementally.
    """

    def __init__(self, session: AsyncSession, channel: Registration, storage: Optional[MediaStorage] = None):
        self.session = session
        self.channel = channel
        self.storage = storage or media_storage
        self.resolver = IdResolver(session)

    async def _event_id(self) -> UUID:
        return await self.resolver.resolve_event(self.channel.event_id)

    def _require_admin(self, action: str):
        if not self.channel.is_admin:
            raise SecurityRejection(f"{action} requires an admin channel")

    async def load(self, event_id: UUID, admin: bool) -> List[dict]:
        wishes = await repo.list_wishes(self.session, event_id, approved_only=not admin)
        return [WishOut.from_row(w).to_wire() for w in wishes]

    async def push_list(self, event_id: UUID, admin: bool) -> List[dict]:
        wishes = await self.load(event_id, admin)
        kind = OutboundType.INITIAL_ADMIN_WISHES_DATA if admin else OutboundType.INITIAL_WISHES_DATA
        await self.channel.reply(outbound(kind, {"wishes": wishes}))
        await self.channel.notify(wishes)
        return wishes

    async def initial_load(self, admin: bool = False) -> List[dict]:
        if admin:
            self._require_admin("admin wish load")
        return await self.push_list(await self._event_id(), admin)

    async def refresh(self) -> List[dict]:
        return await self.push_list(await self._event_id(), self.channel.is_admin)

    async def submit(self, payload: dict) -> WishOut:
        data = parse_payload(WishSubmission, payload)
        image = None
        if data.image_data:
            image = decode_inline_image(data.image_data, data.image_type, data.image_filename)

        event_id = await self._event_id()
        guest_id = await self.resolver.resolve_guest(data.guest_id)
        if not await repo.guest_belongs_to_event(self.session, guest_id, event_id):
            raise ResolutionError(EntityKind.guest, data.guest_id, "is not a guest of this event")

        # Upload first: a failed insert may orphan an object, never a row
        image_url = await self.storage.upload_wish_image(event_id, image) if image else None
        row = wish_to_row(data.content, image_url)
        wish = await repo.create_wish(
            self.session,
            event_id=event_id,
            guest_id=guest_id,
            guest_name=data.guest_name,
            wish_text=row["wish_text"],
            photo_url=row["photo_url"],
        )
        logger.info(f"Wish {wish.id} submitted for event {event_id}, awaiting approval")
        await publisher.notify_change("wishes", "insert", event_id, wish.id)

        wire = WishOut.from_row(wish)
        await self.channel.reply(outbound(OutboundType.WISH_SUBMITTED_SUCCESS, {"wish": wire.to_wire()}))
        await self.push_list(event_id, admin=False)
        return wire

    async def approve(self, payload: dict):
        self._require_admin("wish approval")
        ref = parse_payload(WishRef, payload)
        event_id = await self._event_id()
        await repo.approve_wish(self.session, event_id, ref.wish_id)
        logger.info(f"Wish {ref.wish_id} approved for event {event_id}")
        await publisher.notify_change("wishes", "update", event_id, ref.wish_id)
        await self.channel.reply(outbound(OutboundType.WISH_APPROVED, {"wish_id": str(ref.wish_id)}))
        await self.push_list(event_id, admin=True)

    async def delete(self, payload: dict):
        self._require_admin("wish deletion")
        ref = parse_payload(WishRef, payload)
        event_id = await self._event_id()
        await repo.delete_wish(self.session, event_id, ref.wish_id)
        logger.info(f"Wish {ref.wish_id} deleted from event {event_id}")
        await publisher.notify_change("wishes", "delete", event_id, ref.wish_id)
        await self.channel.reply(outbound(OutboundType.WISH_DELETED, {"wish_id": str(ref.wish_id)}))
        await self.push_list(event_id, admin=True)

    async def toggle_like(self, payload: dict):
        data = parse_payload(WishLikeToggle, payload)
        event_id = await self._event_id()
        if data.guest_id:
            guest_id = await self.resolver.resolve_guest(data.guest_id)
            likes, has_liked = await repo.toggle_wish_like(
                self.session, event_id, data.wish_id, guest_id, visible_only=not self.channel.is_admin
            )
        else:
            likes = await repo.increment_wish_likes(
                self.session, event_id, data.wish_id, visible_only=not self.channel.is_admin
            )
            has_liked = True
        await publisher.notify_change("wishes", "update", event_id, data.wish_id)
        await self.channel.reply(outbound(OutboundType.WISH_LIKE_UPDATED, {
            "wish_id": str(data.wish_id),
            "likes_count": likes,
            "has_liked": has_liked,
        }))
        await self.push_list(event_id, admin=False)

    async def reply(self, payload: dict):
        data = parse_payload(WishReplySubmission, payload)
        event_id = await self._event_id()
        guest_id = await self.resolver.resolve_guest(data.guest_id) if data.guest_id else None
        reply = await repo.create_wish_reply(
            self.session,
            event_id,
            data.wish_id,
            reply_text=data.text,
            guest_id=guest_id,
            guest_name=data.guest_name,
            visible_only=not self.channel.is_admin,
        )
        await publisher.notify_change("wishes", "update", event_id, data.wish_id)
        await self.channel.reply(outbound(OutboundType.WISH_REPLY_SUBMITTED, {
            "wish_id": str(data.wish_id),
            "reply": {
                "id": str(reply.id),
                "guest_id": str(guest_id) if guest_id else None,
                "guest_name": reply.guest_name,
                "text": reply.reply_text,
                "created_at": reply.created_at.isoformat() if reply.created_at else None,
            },
        }))
        await self.push_list(event_id, admin=False)
