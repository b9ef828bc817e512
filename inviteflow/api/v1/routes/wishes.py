from fastapi import APIRouter, Depends, status
from inviteflow.api.v1.deps import get_event_service, translate_errors
from inviteflow.services.event_service import EventService
from uuid import UUID

router = APIRouter(prefix="/wishes", tags=["wishes"])


@router.post("/{wish_id}/approve", status_code=status.HTTP_204_NO_CONTENT)
async def approve_wish(wish_id: UUID, event_service: EventService = Depends(get_event_service)):
    with translate_errors():
        await event_service.approve_wish(wish_id)


@router.delete("/{wish_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_wish(wish_id: UUID, event_service: EventService = Depends(get_event_service)):
    with translate_errors():
        await event_service.delete_wish(wish_id)
