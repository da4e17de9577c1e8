"""
Taskhub - main application module.
"""
import logging
import time
from typing import Any, Callable, Dict, Optional
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from .core.config import get_settings
from .core.database import SessionLocal, check_db_connection, get_db, init_db
from .core.errors import TaskhubError
from .core.events import event_publisher
from .core.middleware import SessionMiddleware
from .routers import auth, user, tasks, schedule, notifications, reports

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def _error_body(request: Request, status_code: int, message: Any) -> Dict[str, Any]:
    return {"error": message, "status_code": status_code, "path": str(request.url.path)}


def create_app(session_factory: Optional[Callable] = None) -> FastAPI:
    """
    Build the application.

    Args:
        session_factory: Session factory used by ``get_db`` and the session
            middleware; the module-level ``SessionLocal`` by default.
    """
    factory = session_factory or SessionLocal

    app = FastAPI(
        title="Taskhub",
        description="Task management API with role-based visibility",
        version=settings.service_version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json"
    )

    app.add_middleware(
        SessionMiddleware,
        session_factory=factory,
        api_prefix=settings.api_prefix
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if session_factory is not None:
        def override_get_db():
            db = session_factory()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = override_get_db

    @app.exception_handler(TaskhubError)
    async def taskhub_error_handler(request: Request, exc: TaskhubError):
        """Handle domain errors raised by the services"""
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(request, exc.status_code, exc.message)
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Handle HTTP exceptions"""
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(request, exc.status_code, exc.detail),
            headers=getattr(exc, "headers", None)
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions"""
        logger.exception(f"Unhandled exception on {request.url.path}: {exc}")
        message = str(exc) if settings.debug else "Internal server error"
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_body(request, status.HTTP_500_INTERNAL_SERVER_ERROR, message)
        )

    prefix = settings.api_prefix
    app.include_router(auth.router, prefix=prefix + "/auth", tags=["auth"])
    app.include_router(user.router, prefix=prefix + "/user", tags=["user"])
    app.include_router(tasks.router, prefix=prefix + "/tasks", tags=["tasks"])
    app.include_router(schedule.router, prefix=prefix + "/schedule", tags=["schedule"])
    app.include_router(notifications.router, prefix=prefix + "/notifications", tags=["notifications"])
    app.include_router(reports.router, prefix=prefix + "/reports", tags=["reports"])

    @app.on_event("startup")
    async def startup_event():
        """Initialize application on startup"""
        logger.info(f"Starting {settings.service_name}...")
        if session_factory is None:
            if init_db():
                logger.info("Database initialized successfully")
            else:
                logger.error("Database initialization failed")
        logger.info(f"{settings.service_name} startup completed")

    @app.on_event("shutdown")
    async def shutdown_event():
        """Cleanup on shutdown"""
        logger.info(f"Shutting down {settings.service_name}...")
        event_publisher.close()

    @app.get("/", tags=["service"])
    async def root() -> Dict[str, Any]:
        """Root endpoint"""
        return {
            "service": settings.service_name,
            "version": settings.service_version,
            "status": "running",
            "message": "Taskhub is operational"
        }

    @app.get("/health", tags=["service"])
    async def health_check():
        """Health check endpoint; 503 when the database is unreachable"""
        db_healthy = check_db_connection(factory)
        body = {
            "service": settings.service_name,
            "version": settings.service_version,
            "status": "healthy" if db_healthy else "unhealthy",
            "database": "connected" if db_healthy else "disconnected",
            "timestamp": time.time()
        }
        if not db_healthy:
            return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=body)
        return body

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("taskhub.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
