from fastapi import APIRouter, Depends, Query
from inviteflow.api.v1.deps import get_event_service, translate_errors
from inviteflow.schemas import (
    BulkStatusUpdate,
    BulkUpdateResult,
    EventStats,
    EventSummary,
    WishOut,
    WishesSettingsUpdate,
)
from inviteflow.services.event_service import EventService
from typing import List, Optional

router = APIRouter(prefix="/events", tags=["events"])


@router.get("/", response_model=List[EventSummary])
async def get_events(
    host_id: Optional[str] = Query(None, description="Only events of this host"),
    event_service: EventService = Depends(get_event_service)
):
    with translate_errors():
        return await event_service.list_events(host_id)


@router.get("/{event_id}/stats", response_model=EventStats)
async def get_event_stats(event_id: str, event_service: EventService = Depends(get_event_service)):
    """
    Guest counts per dashboard bucket.
    - event_id: internal or custom event id
    """
    with translate_errors():
        return await event_service.stats(event_id)


@router.get("/{event_id}/guests/{guest_id}/invitation")
async def get_guest_invitation(
    event_id: str,
    guest_id: str,
    event_service: EventService = Depends(get_event_service)
):
    """The payload the guest's template would receive right now."""
    with translate_errors():
        payload = await event_service.invitation(event_id, guest_id)
    return payload.to_wire()


@router.post("/{event_id}/guests/reset", response_model=BulkUpdateResult)
async def reset_guests(event_id: str, event_service: EventService = Depends(get_event_service)):
    with translate_errors():
        updated = await event_service.reset_guests(event_id)
    return BulkUpdateResult(updated=updated)


@router.post("/{event_id}/guests/bulk-status", response_model=BulkUpdateResult)
async def bulk_status(
    event_id: str,
    payload: BulkStatusUpdate,
    event_service: EventService = Depends(get_event_service)
):
    with translate_errors():
        updated = await event_service.bulk_status(event_id, payload.guest_ids, payload.status)
    return BulkUpdateResult(updated=updated)


@router.patch("/{event_id}/wishes-settings", response_model=WishesSettingsUpdate)
async def update_wishes_settings(
    event_id: str,
    payload: WishesSettingsUpdate,
    event_service: EventService = Depends(get_event_service)
):
    with translate_errors():
        enabled = await event_service.set_wishes_enabled(event_id, payload.wishes_enabled)
    return WishesSettingsUpdate(wishes_enabled=enabled)


@router.get("/{event_id}/wishes", response_model=List[WishOut])
async def get_event_wishes(event_id: str, event_service: EventService = Depends(get_event_service)):
    """Every wish of the event, pending ones included, newest first."""
    with translate_errors():
        return await event_service.list_wishes(event_id)
