import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from src import models  # noqa: F401  registers tables on Base.metadata
from src.admin.router import router as admin_router
from src.auth.router import router as auth_router
from src.bookings.router import router as bookings_router
from src.config import Settings, settings as default_settings
from src.database import Base, engine as default_engine, is_connectivity_error
from src.dependencies import Runtime
from src.exceptions import TicketingError
from src.logger import setup_logger
from src.qr.router import router as qr_router

logger = setup_logger(__name__)

VERSION = "1.0.0"


def init_database(runtime: Runtime, retry_delay: float = 1.0) -> bool:
    """Create tables, retrying a few times; an unreachable store leaves the app in degraded mode"""
    attempts = max(1, runtime.settings.DB_CONNECT_RETRIES)
    for attempt in range(1, attempts + 1):
        try:
            Base.metadata.create_all(bind=runtime.engine)
        except SQLAlchemyError as exc:
            if not is_connectivity_error(exc):
                raise
            logger.warning("Database connection attempt %d/%d failed: %s", attempt, attempts, exc)
            if attempt == attempts:
                runtime.governor.record_failure(exc)
                logger.warning("Starting in degraded mode, writes go to the in-memory fallback store")
                return False
            time.sleep(retry_delay * attempt)
        else:
            runtime.governor.record_success()
            logger.info("Database ready")
            return True
    return False


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_database(app.state.runtime)
    yield


def _error_body(error: str, message: str, details=None) -> dict:
    body = {"success": False, "error": error, "message": message}
    if details is not None:
        body["details"] = details
    return body


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(TicketingError)
    async def ticketing_error_handler(request: Request, exc: TicketingError):
        return JSONResponse(status_code=exc.status_code, content=_error_body(exc.error, exc.message, exc.details))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        fields = [
            {
                "field": ".".join(str(part) for part in error.get("loc", ()) if part != "body"),
                "message": error.get("msg"),
                "type": error.get("type"),
            }
            for error in exc.errors()
        ]
        return JSONResponse(status_code=400, content=_error_body("Validation error", "Invalid request data", fields))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        detail = exc.detail if isinstance(exc.detail, str) else "Request failed"
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(detail, detail),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content=_error_body("Internal server error", "Something went wrong"))


def create_app(
    settings: Optional[Settings] = None,
    engine: Optional[Engine] = None,
    runtime: Optional[Runtime] = None
) -> FastAPI:
    settings = settings or default_settings
    runtime = runtime or Runtime(settings, engine or default_engine)

    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=VERSION,
        description="Event ticketing API: bookings, payments, QR tickets and notifications",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.runtime = runtime

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    # Include routers
    app.include_router(auth_router, prefix=f"{settings.API_V1_STR}/auth", tags=["Authentication"])
    app.include_router(bookings_router, prefix=f"{settings.API_V1_STR}/bookings", tags=["Booking & Ticketing"])
    app.include_router(qr_router, prefix=f"{settings.API_V1_STR}/qr", tags=["QR Verification"])
    app.include_router(admin_router, prefix=f"{settings.API_V1_STR}/admin", tags=["Admin"])

    @app.get("/")
    def root():
        """Root endpoint"""
        return {
            "message": settings.PROJECT_NAME,
            "version": VERSION,
            "docs": "/docs"
        }

    @app.get("/health")
    def health_check():
        """Health check endpoint"""
        healthy = runtime.governor.is_healthy()
        return {
            "status": "healthy" if healthy else "degraded",
            "database": "connected" if healthy else "unavailable",
            "environment": settings.ENVIRONMENT,
            "fallback": runtime.fallback.snapshot()["stats"],
        }

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
