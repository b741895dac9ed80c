"""
OpSafe Backend Main Application
Equipment, assignment and maintenance management on FastAPI and MongoDB
"""
from fastapi import FastAPI, Depends, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from motor.motor_asyncio import AsyncIOMotorDatabase
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from http import HTTPStatus
import logging

from opsafe.core.config import settings
from opsafe.core.exceptions import OpSafeError
from opsafe.core.logging import RequestIdMiddleware, request_id_var, setup_logging
from opsafe.db.mongo import close_database_connection, ensure_indexes, get_database, get_db, ping_database

from opsafe.api.v1 import assignments, equipments, maintenance_orders

setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application startup and shutdown
    """
    logger.info("Starting %s %s", settings.APP_NAME, settings.APP_VERSION)

    db = await get_database()
    await ensure_indexes(db)

    yield

    logger.info("Shutting down %s", settings.APP_NAME)
    await close_database_connection()


app = FastAPI(
    title="OpSafe API",
    description="Operational safety equipment management API",
    version=settings.APP_VERSION,
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestIdMiddleware)


def _error_body(request: Request, status_code: int, error: str, message: str) -> dict:
    return {
        "status_code": status_code,
        "error": error,
        "message": message,
        "path": request.url.path,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "request_id": getattr(request.state, "request_id", None) or request_id_var.get(),
    }


@app.exception_handler(OpSafeError)
async def opsafe_error_handler(request: Request, exc: OpSafeError):
    logger.warning("%s %s -> %d %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(request, exc.status_code, exc.error, exc.message),
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    try:
        error = HTTPStatus(exc.status_code).phrase
    except ValueError:
        error = "Error"
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(request, exc.status_code, error, str(exc.detail)),
        headers=exc.headers,
    )


# Health check
@app.get("/health")
async def health_check(db: AsyncIOMotorDatabase = Depends(get_db)):
    """Service health"""
    if not await ping_database(db):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database unavailable",
        )
    return {
        "status": "ok",
        "database": "connected",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
    }


# API Routers
app.include_router(equipments.router, prefix="/api/v1")
app.include_router(assignments.router, prefix="/api/v1")
app.include_router(maintenance_orders.router, prefix="/api/v1")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "opsafe.main:app",
        host="0.0.0.0",
        port=8001,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
