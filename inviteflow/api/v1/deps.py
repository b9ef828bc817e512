from contextlib import contextmanager
from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from inviteflow.core.errors import InviteflowError, ResolutionError, StorageError, ValidationError
from inviteflow.db.session import get_session
from inviteflow.services.event_service import EventService


def get_event_service(session: AsyncSession = Depends(get_session)) -> EventService:
    return EventService(session)


def to_http(error: InviteflowError) -> HTTPException:
    if isinstance(error, ResolutionError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))
    if isinstance(error, ValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
    if isinstance(error, StorageError):
        # Storage detail is already in the host log
        return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Storage failure")
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))


@contextmanager
def translate_errors():
    """Re-raise domain errors as the matching ``HTTPException``."""
    try:
        yield
    except InviteflowError as e:
        raise to_http(e) from e
