"""Database models package."""
from inviteflow.db.models.event import Event
from inviteflow.db.models.guest import Guest
from inviteflow.db.models.rsvp_field import RSVPFieldDefinition
from inviteflow.db.models.wish import Wish, WishLike, WishReply

__all__ = ["Event", "Guest", "RSVPFieldDefinition", "Wish", "WishLike", "WishReply"]
