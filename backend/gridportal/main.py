"""
Grid Portal - FastAPI Main Application

Mounts the grid, registry, authentication, role management, configuration
and menu routers. The central database is created and seeded with the
default roles at startup.
"""
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from contextlib import asynccontextmanager
from sqlalchemy.exc import SQLAlchemyError
import structlog
import time
import uuid

from gridportal.config import settings
from gridportal.database import Base, engine, get_db_context
from gridportal.core.rbac import initialize_rbac
from gridportal.services.grid import GridAccessDeniedError, InvalidGridRequestError

structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.add_log_level,
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "application_startup",
        version=settings.APP_VERSION,
        grid_databases=sorted(settings.GRID_DATABASES),
        unlimited_drill_down=settings.ENABLE_UNLIMITED_DRILL_DOWN
    )

    # The portal still serves menus and configuration when the central
    # database is unreachable; grid endpoints fail per request.
    try:
        Base.metadata.create_all(bind=engine)
        with get_db_context() as db:
            initialize_rbac(db)
        logger.info("central_database_ready")
    except SQLAlchemyError as e:
        logger.warning("central_database_unavailable", error=str(e))

    yield

    engine.dispose()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Registry-driven data grids over PostgreSQL functions",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition", "X-Process-Time", "X-Request-ID"],
)


@app.middleware("http")
async def request_context(request: Request, call_next):
    """Tag every log line of a request with its id and record the timing."""
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id, path=request.url.path)

    started = time.perf_counter()
    response = await call_next(request)
    elapsed = time.perf_counter() - started

    response.headers["X-Process-Time"] = f"{elapsed:.6f}"
    response.headers["X-Request-ID"] = request_id
    logger.debug("request_completed", method=request.method, status_code=response.status_code,
                 duration_ms=round(elapsed * 1000, 2))
    return response


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = request_errors(exc)
    logger.warning("validation_error", errors=errors)
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": errors, "message": "Validation error"}
    )


@app.exception_handler(GridAccessDeniedError)
async def grid_access_denied_handler(request: Request, exc: GridAccessDeniedError):
    logger.warning("grid_access_denied", procedure=exc.procedure_name)
    return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content={"detail": str(exc)})


@app.exception_handler(InvalidGridRequestError)
async def invalid_grid_request_handler(request: Request, exc: InvalidGridRequestError):
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error("unhandled_exception", error=str(exc), error_type=type(exc).__name__)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "Internal server error",
            "message": str(exc) if settings.DEBUG else "An error occurred"
        }
    )


def request_errors(exc: RequestValidationError):
    # ctx may hold exception instances
    return [{k: v for k, v in error.items() if k != "ctx"} for error in exc.errors()]


@app.get("/health", tags=["System"])
async def health_check():
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "app": settings.APP_NAME,
        "gridDatabases": sorted(settings.GRID_DATABASES)
    }


@app.get("/", tags=["System"])
async def root():
    return {
        "message": "Grid Portal API",
        "version": settings.APP_VERSION,
        "docs": "/docs"
    }


from gridportal.api import auth, role_management, dynamic_grid, registry, configuration, menu

app.include_router(auth.router, prefix="/api/Auth", tags=["Authentication"])
app.include_router(role_management.router, prefix="/api/RoleManagement", tags=["Role Management"])
app.include_router(dynamic_grid.router, prefix="/api/DynamicGrid", tags=["Dynamic Grid"])
app.include_router(registry.router, prefix="/api/Registry", tags=["Registry"])
app.include_router(configuration.router, prefix="/api/Configuration", tags=["Configuration"])
app.include_router(menu.router, prefix="/api/Menu", tags=["Menu"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "gridportal.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG
    )
