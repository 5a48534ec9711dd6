"""Health check endpoint."""
import logging
from fastapi import APIRouter, Depends, Request

from orderflow.core.dependencies import get_registry
from orderflow.services.realtime.registry import SessionRegistry

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health")
async def health_check(request: Request, registry: SessionRegistry = Depends(get_registry)):
    """Health check endpoint."""
    logger.debug(
        f"[HEALTH] Health check requested - Client: {request.client.host if request.client else 'unknown'}"
    )
    return {"status": "healthy", "connections": registry.connection_count()}
