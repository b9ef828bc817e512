from sqlalchemy import Column, String, Boolean, DateTime, JSON, Uuid, Index
from sqlalchemy.orm import relationship
import uuid
from inviteflow.db.session import Base
from inviteflow.db.models.base import utcnow


class Event(Base):
    __tablename__ = "events"
    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    custom_event_id = Column(String(255), unique=True, nullable=True)
    name = Column(String(255), nullable=False)
    host_id = Column(String(255), nullable=True)
    details = Column(JSON, nullable=False, default=dict)
    wishes_enabled = Column(Boolean, nullable=False, default=False)
    allow_rsvp_edit = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    guests = relationship("Guest", back_populates="event")
    rsvp_fields = relationship(
        "RSVPFieldDefinition",
        back_populates="event",
        order_by="RSVPFieldDefinition.display_order",
    )

    __table_args__ = (
        Index('idx_event_host', 'host_id'),
        Index('idx_event_created_at', 'created_at'),
    )
