from sqlalchemy import (
    Column, String, Text, Boolean, Integer, DateTime, ForeignKey, Uuid, Index,
    UniqueConstraint, CheckConstraint,
)
import uuid
from inviteflow.db.session import Base
from inviteflow.db.models.base import utcnow


class Wish(Base):
    __tablename__ = "wishes"
    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    event_id = Column(Uuid(as_uuid=True), ForeignKey("events.id"), nullable=False)
    guest_id = Column(Uuid(as_uuid=True), ForeignKey("guests.id"), nullable=True)
    guest_name = Column(String(255), nullable=False)
    wish_text = Column(Text, nullable=False)
    photo_url = Column(String(1024), nullable=True)
    is_approved = Column(Boolean, nullable=False, default=False)
    likes_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint('likes_count >= 0', name='ck_wish_likes_non_negative'),
        Index('idx_wish_event_created', 'event_id', 'created_at'),
    )


class WishLike(Base):
    __tablename__ = "wish_likes"
    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    wish_id = Column(Uuid(as_uuid=True), ForeignKey("wishes.id", ondelete="CASCADE"), nullable=False)
    guest_id = Column(Uuid(as_uuid=True), ForeignKey("guests.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint('wish_id', 'guest_id', name='uq_wish_like_guest'),
    )


class WishReply(Base):
    __tablename__ = "wish_replies"
    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    wish_id = Column(Uuid(as_uuid=True), ForeignKey("wishes.id", ondelete="CASCADE"), nullable=False)
    guest_id = Column(Uuid(as_uuid=True), ForeignKey("guests.id"), nullable=True)
    guest_name = Column(String(255), nullable=True)
    reply_text = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
