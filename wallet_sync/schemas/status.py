"""Status overview schemas."""
from pydantic import BaseModel


class StatusOverview(BaseModel):
    """Registration counts and push sweep state."""
    devices: int
    passes: int
    registrations: int
    push_scheduler_running: bool
    push_sweep_in_progress: bool
    push_interval_seconds: int
