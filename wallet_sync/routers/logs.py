"""Device log endpoint - Wallet reports web service errors here."""
import logging

from fastapi import APIRouter, Response

from ..schemas.registration import DeviceLogRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/log", tags=["logs"])


@router.post("")
async def receive_device_logs(request: DeviceLogRequest):
    """Write each message Wallet sends to the application log."""
    for entry in request.logs:
        logger.warning(f"[Wallet Log] {entry}")
    return Response(status_code=200)
