"""Main FastAPI application for the device error alert relay."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .database import async_session, close_db, init_db
from .errors import NotFoundError, ValidationError
from .routers import announcements_router, status_router, tokens_router
from .services.pipeline import build_pipeline

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown."""
    logger.info("Starting alert relay")

    await init_db()
    logger.info("Database initialized")

    pipeline = build_pipeline(settings, async_session)
    app.state.pipeline = pipeline

    if settings.listener_enabled:
        pipeline.observer.start()
        logger.info("Change feed listener started")

    if settings.scheduler_enabled:
        pipeline.scheduler.start()
        logger.info("Scheduler started")

    yield

    # Shutdown
    pipeline.scheduler.stop()
    await pipeline.observer.stop()
    await close_db()
    logger.info("Shutdown complete")


def register_error_handlers(app: FastAPI):
    """Map pipeline errors onto HTTP responses."""

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        fields = [".".join(str(p) for p in e["loc"]) for e in exc.errors()]
        logger.warning(f"Rejected request body on {request.url.path}: {fields}")
        return JSONResponse(status_code=400, content={"error": "Invalid data format"})

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"message": str(exc)})

    @app.exception_handler(Exception)
    async def internal_error_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.url.path}: {exc}")
        return JSONResponse(status_code=500, content={"error": "Internal server error"})


def create_app(lifespan_handler=lifespan) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Alert Relay",
        description="Relays device error events to push notifications",
        version="1.0.0",
        lifespan=lifespan_handler,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(tokens_router)
    app.include_router(status_router)
    app.include_router(announcements_router)
    register_error_handlers(app)

    @app.get("/health")
    async def health_check():
        pipeline = getattr(app.state, "pipeline", None)
        return {
            "status": "healthy",
            "listener": bool(pipeline and pipeline.observer.running),
        }

    return app


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.web_port)
