import logging
import sys
from contextlib import asynccontextmanager
from importlib.metadata import PackageNotFoundError, version

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from signforge.app.api.sign import router as sign_router
from signforge.app.compositor.document import DocumentCompositor
from signforge.app.config import get_settings

logger = logging.getLogger(__name__)


def get_app_version() -> str:
    """Installed package version, or the source default."""
    try:
        return version("signforge")
    except PackageNotFoundError:
        return "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Settings are loaded once (fail fast on invalid configuration) and the
    stateless compositor is shared by every request.
    """
    logger.info(
        "signforge_startup_begin",
        extra={"service": "signforge", "version": get_app_version()},
    )

    try:
        settings = get_settings()
    except Exception:
        logger.exception("invalid_signforge_configuration")
        raise

    app.state.settings = settings
    app.state.compositor = DocumentCompositor.from_settings(settings)

    if settings.bypass_paywall:
        logger.warning("paywall_bypass_enabled")

    try:
        yield
    finally:
        logger.info("signforge_shutdown_begin")


def create_app() -> FastAPI:
    """Application factory for the SignForge compositing service."""
    app = FastAPI(
        title="SignForge",
        description=(
            "Places signature images and text stamps onto PDFs and appends "
            "an audit-trail page."
        ),
        version=get_app_version(),
        docs_url="/docs",
        redoc_url=None,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
        expose_headers=["X-Original-Hash", "X-Plan-Tier"],
    )

    app.include_router(sign_router)

    @app.get(
        "/health",
        tags=["Monitoring"],
        summary="Liveness probe",
    )
    async def health_check():
        return ORJSONResponse(
            content={
                "status": "ok",
                "service": "signforge",
                "version": app.version,
                "runtime": f"python {sys.version.split()[0]}",
            }
        )

    return app


app = create_app()
