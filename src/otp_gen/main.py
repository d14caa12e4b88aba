"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from otp_gen.api.router import router as otp_router
from otp_gen.config import settings
from otp_gen.store.otp_store import OTPStore

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)

logger = logging.getLogger(__name__)


def create_app(expiry_ms: int | None = None) -> FastAPI:
    """Build the application; its lifespan owns exactly one OTP store."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup / shutdown lifecycle hook."""
        logger.info("Starting %s …", settings.app_name)
        store = OTPStore(expiry_ms=expiry_ms).start()
        app.state.otp_store = store
        yield
        logger.info("Shutting down %s …", settings.app_name)
        store.stop()

    app = FastAPI(
        title=settings.app_name,
        description="Short-lived one-time passwords bound to an opaque key",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.include_router(otp_router)

    @app.get("/health")
    async def health_check():
        """Simple liveness probe."""
        store: OTPStore | None = getattr(app.state, "otp_store", None)
        return {
            "status": "healthy" if store is not None and store.is_running else "starting",
            "app": settings.app_name,
        }

    return app


app = create_app()


def serve() -> None:
    """Run the API under uvicorn."""
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    serve()
