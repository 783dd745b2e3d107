"""
FastAPI Application Entry Point.

HTTP surface over the trip/load lifecycle engine.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from haulcore.app.core.config import settings
from haulcore.app.api.v1.router import router as api_v1_router
from haulcore.app.core.observability import ObservabilityMiddleware, configure_logging
from haulcore.app.db.session import engine, Base
from haulcore.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from haulcore.app.models.load import Load  # noqa: F401
from haulcore.app.models.trip import Trip  # noqa: F401
from haulcore.app.models.trip_load import TripLoad  # noqa: F401
from haulcore.app.models.load_payment import LoadPayment  # noqa: F401
from haulcore.app.models.trip_expense import TripExpense  # noqa: F401
from haulcore.app.models.settlement import Settlement, SettlementLineItem  # noqa: F401
from haulcore.app.models.notification import OwnerNotification  # noqa: F401
from haulcore.app.models.audit_log import AuditLog  # noqa: F401

configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    Creates database tables on startup.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Trip and load lifecycle engine for multi-stop freight runs",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint.

    Returns:
        dict: Status and application information
    """
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
    }


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")
