"""Component wiring and FastAPI dependencies.

Components are built once per process by ``build_services`` and kept on
``app.state.services``; routes reach them through the dependencies below.
"""
from dataclasses import dataclass
from typing import Optional

from fastapi import Header, Request
from sqlalchemy.ext.asyncio import async_sessionmaker

from .config import Settings
from .services.pass_issuer import PassGenerator, PassIssuer
from .services.pass_tokens import PassTokenAuthority, parse_authorization
from .services.push_dispatcher import PushDispatcher
from .services.push_sender import ApnsGateway, ApnsTokenSigner, PushConfig, PushGateway
from .services.registration_service import RegistrationService
from .services.registration_store import RegistrationStore
from .services.scheduler import SchedulerService


@dataclass
class Services:
    settings: Settings
    store: RegistrationStore
    tokens: PassTokenAuthority
    registrations: RegistrationService
    issuer: PassIssuer
    gateway: PushGateway
    dispatcher: PushDispatcher
    scheduler: SchedulerService


def push_config_from_settings(settings: Settings) -> PushConfig:
    return PushConfig(
        enabled=settings.push_enabled,
        key_path=settings.apns_key_path or "",
        private_key=settings.apns_private_key or "",
        key_id=settings.apns_key_id or "",
        team_id=settings.apns_team_id or "",
        use_sandbox=settings.apns_use_sandbox,
        request_timeout=settings.push_request_timeout_seconds,
    )


def build_services(
    settings: Settings,
    session_factory: async_sessionmaker,
    dialect: str = "sqlite",
    gateway: Optional[PushGateway] = None,
    signer: Optional[ApnsTokenSigner] = None,
    generator: Optional[PassGenerator] = None,
) -> Services:
    """Construct every component once, sharing a single store."""
    push_config = push_config_from_settings(settings)
    store = RegistrationStore(session_factory, dialect=dialect)
    tokens = PassTokenAuthority(store)
    gateway = gateway or ApnsGateway.from_config(push_config)
    dispatcher = PushDispatcher(
        store,
        gateway,
        signer or ApnsTokenSigner.from_config(push_config),
        max_concurrency=settings.push_max_concurrency,
        deadline_seconds=settings.push_tick_timeout_seconds,
    )
    return Services(
        settings=settings,
        store=store,
        tokens=tokens,
        registrations=RegistrationService(store, tokens, bootstrap_token=settings.pass_bootstrap_token),
        issuer=PassIssuer(store, tokens, generator),
        gateway=gateway,
        dispatcher=dispatcher,
        scheduler=SchedulerService(dispatcher, settings.push_interval_seconds),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_registration_service(request: Request) -> RegistrationService:
    return get_services(request).registrations


def get_pass_issuer(request: Request) -> PassIssuer:
    return get_services(request).issuer


def get_token_authority(request: Request) -> PassTokenAuthority:
    return get_services(request).tokens


def get_pass_token(request: Request, authorization: Optional[str] = Header(None)) -> Optional[str]:
    """Per-pass token from ``Authorization: ApplePass <token>``."""
    return parse_authorization(authorization, get_services(request).settings.auth_scheme)
