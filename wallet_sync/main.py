"""Main FastAPI application for the Wallet pass update service."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .config import settings
from .database import init_db, close_db, async_session, engine
from .dependencies import build_services
from .errors import AuthError, WalletSyncError
from .routers import devices_router, passes_router, logs_router, status_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown."""
    logger.info("Starting wallet-sync")

    await init_db()
    logger.info("Database initialized")

    services = build_services(settings, async_session, dialect=engine.dialect.name)
    app.state.services = services

    if settings.push_enabled:
        services.scheduler.start()
    else:
        logger.info("Push notifications are disabled")

    yield

    services.scheduler.stop()
    await services.gateway.aclose()
    await close_db()
    logger.info("Shutdown complete")


async def wallet_sync_error_handler(request: Request, exc: WalletSyncError):
    """Map service errors to protocol responses without leaking internals."""
    if isinstance(exc, AuthError):
        logger.info(f"Unauthorized {request.method} {request.url.path}: {exc.reason}")
    else:
        logger.warning(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse({"message": exc.message}, status_code=exc.status_code)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="wallet-sync",
        description="Wallet pass registration tracking and update pushes",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_exception_handler(WalletSyncError, wallet_sync_error_handler)

    app.include_router(devices_router)
    app.include_router(passes_router)
    app.include_router(logs_router)
    app.include_router(status_router)

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        return {"status": "healthy"}

    return app


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.web_port)
