from fastapi import APIRouter
from typing import Dict

from inviteflow.core.config import settings

router = APIRouter(prefix="/health", tags=["health"])


@router.get("", response_model=Dict[str, str])
async def health_check():
    """
    Liveness probe for the host service.

    Returns:
        Dict with the service status and the running environment
    """
    return {"status": "healthy", "environment": settings.ENVIRONMENT}
