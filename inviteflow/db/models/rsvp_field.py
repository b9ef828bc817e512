from sqlalchemy import Column, String, Boolean, Integer, ForeignKey, JSON, Uuid, Index
from sqlalchemy.orm import relationship
import uuid
from inviteflow.db.session import Base


class RSVPFieldDefinition(Base):
    __tablename__ = "rsvp_field_definitions"
    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    event_id = Column(Uuid(as_uuid=True), ForeignKey("events.id"), nullable=False)
    field_name = Column(String(255), nullable=False)
    field_label = Column(String(255), nullable=False)
    field_type = Column(String(50), nullable=False)
    is_required = Column(Boolean, nullable=False, default=False)
    field_options = Column(JSON, nullable=True)
    placeholder_text = Column(String(255), nullable=True)
    display_order = Column(Integer, nullable=False, default=0)

    event = relationship("Event", back_populates="rsvp_fields")

    __table_args__ = (
        Index('idx_rsvp_field_event', 'event_id', 'display_order'),
    )
