"""FastAPI application initialization and configuration."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .core.config import settings
from .core.database import async_session_factory, check_database, close_db, engine, init_db
from .core.exceptions import (
    ProblemDetailsException,
    generic_exception_handler,
    problem_details_handler,
    request_validation_handler,
)
from .core.middleware import setup_middleware
from .core.observability import (
    instrument_fastapi,
    instrument_sqlalchemy,
    setup_metrics,
    setup_structured_logging,
    setup_tracing,
)
from .routers import availability, booking, health, inventory, metrics, scheduler
from .schemas.health import HealthStatus, ReadinessResponse
from .services.scheduler_service import StatusScheduler
from .services.status_actions import ActionDispatcher
from .workers.manager import create_worker_manager

# Configure structured logging
setup_structured_logging()

# Configure traditional logging for compatibility
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan context manager.

    Sets up observability and the schema, then starts the hold cleanup and
    status sweep workers. On shutdown, workers stop and pending status
    actions are allowed to finish.
    """
    logger.info("Starting FastAPI application")
    logger.info(f"Environment: {settings.environment}")

    worker_manager = create_worker_manager(async_session_factory, app.state.scheduler)
    app.state.worker_manager = worker_manager

    try:
        setup_tracing(settings.service_name)
        setup_metrics(settings.service_name)
        instrument_sqlalchemy(engine)
        logger.info("Observability setup completed")

        await init_db()
        logger.info("Database initialized successfully")

        if settings.workers_enabled:
            await worker_manager.start_all()
            logger.info("Background workers started successfully")
    except Exception as e:
        logger.error(f"Failed to initialize application: {e}")
        raise

    logger.info("Application startup complete")

    yield

    logger.info("Shutting down FastAPI application")

    try:
        await worker_manager.stop_all()
        await app.state.dispatcher.drain()
        await close_db()
        logger.info("Database connections closed")
    except Exception as e:
        logger.error(f"Error during application cleanup: {e}")

    logger.info("Application shutdown complete")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured FastAPI application instance
    """
    app = FastAPI(
        title="Luxury Rentals API",
        description=(
            "RPC-over-HTTP API for luxury car, yacht, jet and property rentals: "
            "availability checks, temporary holds, bookings and the booking status workflow"
        ),
        version="1.0.0",
        debug=settings.debug,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    # Shared workflow services; the scheduler's lock must be process-wide
    app.state.dispatcher = ActionDispatcher(async_session_factory)
    app.state.scheduler = StatusScheduler(async_session_factory, app.state.dispatcher)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "traceparent", "tracestate"],
    )

    setup_middleware(app, enable_logging=True)
    instrument_fastapi(app)

    app.add_exception_handler(ProblemDetailsException, problem_details_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    @app.get(
        "/health",
        status_code=status.HTTP_200_OK,
        tags=["Health"],
        summary="Health Check",
        response_model=dict,
    )
    async def health_check():
        """Liveness: the process is up and serving requests."""
        return {
            "status": "healthy",
            "service": settings.service_name,
            "version": "1.0.0",
            "environment": settings.environment,
        }

    @app.get(
        "/ready",
        tags=["Health"],
        summary="Readiness Check",
        response_model=ReadinessResponse,
    )
    async def readiness_check():
        """Readiness: the database answers queries."""
        checks = {}
        try:
            async with async_session_factory() as session:
                await check_database(session)
            checks["database"] = "ok"
        except Exception as e:
            logger.warning(f"Readiness check failed: {e}")
            checks["database"] = "unavailable"

        ready = all(result == "ok" for result in checks.values())
        body = ReadinessResponse(
            status=HealthStatus.READY if ready else HealthStatus.DEGRADED,
            service=settings.service_name,
            checks=checks,
        )
        return JSONResponse(
            status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
            content=body.model_dump(mode="json"),
        )

    @app.get(
        "/info",
        status_code=status.HTTP_200_OK,
        tags=["Info"],
        summary="Service Information",
        response_model=dict,
    )
    async def service_info():
        """Service metadata and enabled features."""
        worker_manager = getattr(app.state, "worker_manager", None)
        return {
            "service": settings.service_name,
            "version": "1.0.0",
            "environment": settings.environment,
            "features": {
                "authentication": True,
                "temporary_holds": True,
                "automatic_status_sweep": settings.workers_enabled,
                "tracing": bool(settings.otlp_endpoint),
                "problem_details": True,
            },
            "workers": worker_manager.get_worker_status() if worker_manager else {},
            "endpoints": {
                "health": "/health",
                "readiness": "/ready",
                "metrics": "/metrics",
                "docs": "/docs" if settings.debug else None,
            },
        }

    app.include_router(health.router)
    app.include_router(availability.router)
    app.include_router(booking.router)
    app.include_router(inventory.router)
    app.include_router(scheduler.router)
    app.include_router(metrics.router)

    logger.info("FastAPI application created and configured")

    return app


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "luxury_rentals.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
        access_log=True,
    )
