"""Status overview API."""
from fastapi import APIRouter, Depends

from ..dependencies import Services, get_services
from ..schemas.status import StatusOverview

router = APIRouter(prefix="/api/status", tags=["status"])


@router.get("", response_model=StatusOverview)
async def get_status_overview(services: Services = Depends(get_services)):
    """Registration counts and push sweep state."""
    counts = await services.store.counts()
    return StatusOverview(
        devices=counts["devices"],
        passes=counts["passes"],
        registrations=counts["registrations"],
        push_scheduler_running=services.scheduler.running,
        push_sweep_in_progress=services.dispatcher.running,
        push_interval_seconds=services.scheduler.interval_seconds,
    )
