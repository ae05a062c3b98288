"""Services for registration tracking and push dispatch."""
from .registration_store import RegistrationStore
from .registration_service import RegistrationService
from .pass_tokens import PassTokenAuthority
from .pass_issuer import PassIssuer
from .push_dispatcher import PushDispatcher
from .scheduler import SchedulerService

__all__ = [
    "RegistrationStore",
    "RegistrationService",
    "PassTokenAuthority",
    "PassIssuer",
    "PushDispatcher",
    "SchedulerService",
]
