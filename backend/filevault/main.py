"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from filevault.config import settings
from filevault.database import engine, get_db
from filevault.logging_config import setup_logging
from filevault.models import Base
from filevault.services.exceptions import ConstraintError, StorageError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables on startup, dispose the engine on shutdown."""
    setup_logging()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"File store ready ({settings.OBJECT_STORE_TYPE} objects, {len(settings.FILE_POLICIES)} purpose(s))")

    yield

    await engine.dispose()


app = FastAPI(
    title="Filevault API",
    version="1.0.0",
    description="Upload, reference-count and serve stored files.",
    lifespan=lifespan,
)

# CORS
origins = [o.strip() for o in settings.CORS_ORIGINS.split(",")]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    logger.error(f"Object store failure on {request.url.path}: {exc}")
    return JSONResponse(status_code=502, content={"detail": "Object storage unavailable"})


@app.exception_handler(ConstraintError)
async def constraint_error_handler(request: Request, exc: ConstraintError):
    logger.error(f"Metadata constraint failure on {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"detail": "Failed to create file record"})


@app.get("/api/health")
async def health_check():
    """Verify API and database connectivity."""
    try:
        async for db in get_db():
            await db.execute(text("SELECT 1"))
            return {"status": "ok", "database": "connected"}
    except Exception as e:
        return {"status": "error", "database": str(e)}


# Register routers
from filevault.routes.files import router as files_router
app.include_router(files_router)
