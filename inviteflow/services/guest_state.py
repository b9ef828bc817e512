"""
Guest state derivation.

A guest's RSVP status is never stored; it is computed from the ``accepted``
flag and the presence of ``rsvp_data`` every time it is needed. Everything in
this module is pure: no I/O and no mutation of its inputs.
"""
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence

from inviteflow.schemas import GuestBucket, InvitationPayload, RSVPFieldOut, RsvpStatus


@dataclass(frozen=True)
class GuestState:
    status: RsvpStatus
    show_submit_button: bool
    show_edit_button: bool
    fields: List[Any] = field(default_factory=list)
    existing_data: Optional[Any] = None

    def to_payload(self, event_id: str, guest_id: str) -> InvitationPayload:
        return InvitationPayload(
            eventId=event_id,
            guestId=guest_id,
            status=self.status.wire_value,
            showSubmitButton=self.show_submit_button,
            showEditButton=self.show_edit_button,
            rsvpFields=[RSVPFieldOut.model_validate(f, from_attributes=True) for f in self.fields],
            existingRsvpData=self.existing_data,
        )


def rsvp_status(guest) -> RsvpStatus:
    """Submission implies acceptance, so the checks run from the furthest state back."""
    if guest.accepted and guest.rsvp_data is not None:
        return RsvpStatus.submitted
    if guest.accepted:
        return RsvpStatus.accepted
    return RsvpStatus.unresponded


def derive(guest, event, fields: Optional[Sequence[Any]] = None) -> GuestState:
    """
    Compute the template-facing state of ``guest``.

    ``show_submit_button`` is independent of status: a guest who never
    accepted still gets the form when the event defines fields. The field
    definitions travel with either affordance; the stored answers only with
    the edit affordance.
    """
    if fields is None:
        fields = getattr(event, "rsvp_fields", None) or []
    has_data = guest.rsvp_data is not None
    show_submit = len(fields) >= 1 and not has_data
    show_edit = has_data and bool(event.allow_rsvp_edit)
    return GuestState(
        status=rsvp_status(guest),
        show_submit_button=show_submit,
        show_edit_button=show_edit,
        fields=list(fields) if (show_submit or show_edit) else [],
        existing_data=guest.rsvp_data if show_edit else None,
    )


def analytics_bucket(guest) -> GuestBucket:
    """Dashboard bucket, priority submitted > accepted > viewed > pending."""
    if guest.rsvp_data is not None:
        return GuestBucket.submitted
    if guest.accepted:
        return GuestBucket.accepted
    if guest.viewed:
        return GuestBucket.viewed
    return GuestBucket.pending
