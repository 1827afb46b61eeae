"""
MedTrack Backend
Main FastAPI application for medication adherence tracking
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import settings
from database import init_db
from api import include_routers
from api.deps import get_data_store, get_identity
from services.errors import DataStoreError

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format=settings.LOG_FORMAT
)
logger = logging.getLogger(__name__)


# ==================== LIFESPAN ====================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup and shutdown"""
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    logger.info(f"Environment: {settings.ENV}, data store: {settings.DATA_STORE}")

    if settings.DATA_STORE == "sql":
        try:
            init_db()
            logger.info("Database initialized successfully")
        except Exception as e:
            logger.error(f"Database initialization failed: {e}")
            raise

    yield

    logger.info(f"Shutting down {settings.APP_NAME}")
    await get_data_store().close()
    await get_identity().close()


# ==================== APP INITIALIZATION ====================

app = FastAPI(
    title=settings.APP_NAME,
    description="""
    ## MedTrack API

    Medication adherence tracking for patients and caretakers.

    ### Features
    - **Medications**: register, edit and remove medications
    - **Dose logging**: mark doses taken, reflected immediately
    - **Adherence**: 30-day adherence percentage and current streak
    - **Dashboards**: patient checklist and caretaker monitoring views
    """,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

include_routers(app, prefix=settings.API_PREFIX)


# ==================== EXCEPTION HANDLERS ====================

def _error_response(status_code: int, message: str, code: str = None) -> JSONResponse:
    content = {
        "error": True,
        "message": message,
        "status_code": status_code,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }
    if code:
        content["code"] = code
    return JSONResponse(status_code=status_code, content=content)


@app.exception_handler(DataStoreError)
async def data_store_exception_handler(request, exc: DataStoreError):
    if exc.status_code >= 500:
        logger.error(f"Data store failure on {request.url.path}: {exc.message}")
    response = _error_response(exc.status_code, exc.message, type(exc).__name__)
    if exc.status_code == 401:
        response.headers["WWW-Authenticate"] = "Bearer"
    return response


@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc: HTTPException):
    return _error_response(exc.status_code, exc.detail)


@app.exception_handler(Exception)
async def general_exception_handler(request, exc: Exception):
    logger.error(f"Unexpected error: {exc}", exc_info=True)
    return _error_response(
        500,
        "An unexpected error occurred" if not settings.DEBUG else str(exc)
    )


# ==================== HEALTH ====================

@app.get("/", tags=["Health"])
async def root():
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": "/docs"
    }


@app.get("/health", tags=["Health"])
async def health():
    return {
        "status": "healthy",
        "data_store": settings.DATA_STORE,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


# ==================== MAIN ====================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
