from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, JSON, Uuid, Index
from sqlalchemy.orm import relationship
import uuid
from inviteflow.db.session import Base
from inviteflow.db.models.base import utcnow


class Guest(Base):
    __tablename__ = "guests"
    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    custom_guest_id = Column(String(255), unique=True, nullable=True)
    event_id = Column(Uuid(as_uuid=True), ForeignKey("events.id"), nullable=False)
    name = Column(String(255), nullable=False)
    mobile_number = Column(String(32), nullable=False, default="")
    viewed = Column(Boolean, nullable=False, default=False)
    viewed_at = Column(DateTime(timezone=True), nullable=True)
    accepted = Column(Boolean, nullable=False, default=False)
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    # None is stored as SQL NULL, never JSON null
    rsvp_data = Column(JSON(none_as_null=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    event = relationship("Event", back_populates="guests")

    __table_args__ = (
        Index('idx_guest_event', 'event_id'),
    )
