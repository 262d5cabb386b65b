"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from otp_auth.api.dependencies import ServiceContainer, build_container
from otp_auth.api.errors import register_exception_handlers
from otp_auth.api.routes import router as api_router
from otp_auth.config import Settings, settings

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)

logger = logging.getLogger(__name__)


def create_app(
    app_settings: Settings | None = None, container: ServiceContainer | None = None
) -> FastAPI:
    """Build the application.

    Parameters
    ----------
    app_settings:
        Settings to use; defaults to the environment-loaded singleton.
    container:
        Pre-built services (tests).  When omitted the lifespan builds
        them from *app_settings* and closes them on shutdown.
    """
    cfg = app_settings or (container.settings if container else settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup / shutdown lifecycle hook."""
        logger.info("Starting %s (%s) …", cfg.app_name, cfg.environment)
        owned = app.state.container is None
        if owned:
            app.state.container = await build_container(cfg)
        yield
        logger.info("Shutting down %s …", cfg.app_name)
        if owned:
            await app.state.container.close()

    app = FastAPI(
        title=cfg.app_name,
        description="Phone OTP and e-mail login-link authentication",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.container = container
    app.state.debug = cfg.debug and cfg.environment != "production"

    register_exception_handlers(app)
    app.include_router(api_router)

    @app.get("/health", tags=["health"])
    async def health_check():
        """Liveness probe including token store reachability."""
        store_ok = await app.state.container.store.ping()
        return {
            "status": "healthy" if store_ok else "degraded",
            "app": cfg.app_name,
            "environment": cfg.environment,
            "token_store": "up" if store_ok else "down",
        }

    return app


app = create_app()
