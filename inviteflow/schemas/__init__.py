from pydantic import AliasChoices, BaseModel, Field, field_validator
from typing import Optional, List, Any, Dict
from uuid import UUID
from datetime import datetime
from enum import Enum


class RsvpStatus(str, Enum):
    """Protocol-visible response status. ``unresponded`` goes out on the wire as null."""
    unresponded = "unresponded"
    accepted = "accepted"
    submitted = "submitted"

    @property
    def wire_value(self) -> Optional[str]:
        return None if self is RsvpStatus.unresponded else self.value


class GuestBucket(str, Enum):
    """Mutually exclusive dashboard bucket; ``viewed`` only exists here."""
    pending = "pending"
    viewed = "viewed"
    accepted = "accepted"
    submitted = "submitted"


class WishOut(BaseModel):
    """Wish as templates see it. Storage names differ: wish_text -> content, photo_url -> image_url."""
    id: UUID
    guest_id: Optional[UUID] = None
    guest_name: str
    content: str
    image_url: Optional[str] = None
    likes_count: int = 0
    is_approved: bool = False
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, wish) -> "WishOut":
        return cls(
            id=wish.id,
            guest_id=wish.guest_id,
            guest_name=wish.guest_name,
            content=wish.wish_text,
            image_url=wish.photo_url,
            likes_count=wish.likes_count or 0,
            is_approved=bool(wish.is_approved),
            created_at=wish.created_at,
        )

    def to_wire(self) -> dict:
        return self.model_dump(mode="json")


def wish_to_row(content: str, image_url: Optional[str]) -> Dict[str, Any]:
    """Inverse of ``WishOut.from_row`` for the renamed columns."""
    return {"wish_text": content, "photo_url": image_url}


class RSVPFieldOut(BaseModel):
    id: UUID
    field_name: str
    field_label: str
    field_type: str
    is_required: bool = False
    field_options: Optional[Any] = None
    placeholder_text: Optional[str] = None
    display_order: int = 0

    class Config:
        from_attributes = True


class InvitationPayload(BaseModel):
    """RSVP payload pushed to the template after every transition."""
    event_id: str = Field(alias="eventId")
    guest_id: str = Field(alias="guestId")
    status: Optional[str] = None
    show_submit_button: bool = Field(False, alias="showSubmitButton")
    show_edit_button: bool = Field(False, alias="showEditButton")
    rsvp_fields: List[RSVPFieldOut] = Field(default_factory=list, alias="rsvpFields")
    existing_rsvp_data: Optional[Any] = Field(None, alias="existingRsvpData")

    class Config:
        populate_by_name = True

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


# Inbound message payloads

class RsvpMessage(BaseModel):
    event_id: str = Field(alias="eventId")
    guest_id: str = Field(alias="guestId")

    class Config:
        populate_by_name = True
        extra = "allow"

    @field_validator("event_id", "guest_id", mode="before")
    @classmethod
    def _not_blank(cls, value):
        if value is None or not str(value).strip():
            raise ValueError("identifier is required")
        return str(value).strip()

    def submitted_data(self) -> Any:
        extra = self.model_extra or {}
        if extra.get("rsvpData") is not None:
            return extra["rsvpData"]
        return extra.get("rsvp_data")


class WishSubmission(BaseModel):
    content: str
    guest_id: str = Field(validation_alias=AliasChoices("guest_id", "guestId"))
    guest_name: str = Field(validation_alias=AliasChoices("guest_name", "guestName"))
    image_data: Optional[str] = None
    image_filename: Optional[str] = None
    image_type: Optional[str] = None

    @field_validator("content", "guest_id", "guest_name")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must not be blank")
        return value.strip()


class WishRef(BaseModel):
    wish_id: UUID = Field(validation_alias=AliasChoices("wish_id", "wishId"))


class WishLikeToggle(WishRef):
    guest_id: Optional[str] = Field(None, validation_alias=AliasChoices("guest_id", "guestId"))


class WishReplySubmission(WishRef):
    text: str = Field(validation_alias=AliasChoices("text", "content"))
    guest_id: Optional[str] = Field(None, validation_alias=AliasChoices("guest_id", "guestId"))
    guest_name: Optional[str] = Field(None, validation_alias=AliasChoices("guest_name", "guestName"))

    @field_validator("text")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must not be blank")
        return value.strip()


# Host dashboard

class EventSummary(BaseModel):
    id: UUID
    custom_event_id: Optional[str] = None
    name: str
    wishes_enabled: bool
    allow_rsvp_edit: bool
    guest_count: int = 0
    created_at: Optional[datetime] = None


class EventStats(BaseModel):
    total: int = 0
    pending: int = 0
    viewed: int = 0
    accepted: int = 0
    submitted: int = 0


class BulkStatusUpdate(BaseModel):
    guest_ids: List[str] = Field(min_length=1, max_length=500)
    status: GuestBucket


class BulkUpdateResult(BaseModel):
    updated: int


class WishesSettingsUpdate(BaseModel):
    wishes_enabled: bool
