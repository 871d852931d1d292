from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request

from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from iptv_service.config import settings, setup_logging
from iptv_service.dependencies import build_registry, set_registry

from iptv_service.routers import main_router


setup_logging()
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events"""
    logger.info("Starting IPTV Service...")

    try:
        registry = build_registry(settings)
        set_registry(registry)

        registry.scheduler.start(
            interval_minutes=settings.channel_refresh_interval_min,
            max_retries=settings.channel_refresh_max_retries,
            guide_cron=settings.epg_refresh_cron,
        )
        logger.info("IPTV Service started successfully")
    except Exception as e:
        logger.error(f"Failed to start IPTV Service: {e}", exc_info=True)
        raise

    yield

    logger.info("Shutting down IPTV Service...")

    try:
        await registry.aclose()
    except Exception as e:
        logger.error(f"Error during shutdown: {e}", exc_info=True)
    finally:
        set_registry(None)

    logger.info("IPTV Service stopped")


app = FastAPI(
    title="IPTV Service",
    version="0.1.0",
    lifespan=lifespan
)

app.include_router(main_router)

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Log validation errors with details"""
    logger.error(f"Validation error for {request.method} {request.url.path}")
    logger.error(f"Validation details: {exc.errors()}")

    errors = []
    for error in exc.errors():
        errors.append({
            "type": error.get("type"),
            "loc": error.get("loc"),
            "msg": error.get("msg"),
            "input": str(error.get("input", ""))[:100]
        })

    return JSONResponse(
        status_code=422,
        content={
            "detail": errors
        }
    )
