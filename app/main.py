"""
app/main.py
FastAPI application factory and startup configuration.
"""
import logging
from contextlib import asynccontextmanager

import motor.motor_asyncio
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from app.api.deps import Services, build_mongo_services
from app.core.config import settings
from app.core.exceptions import CertificateServiceError
from app.repositories.mongo import ensure_indexes
from app.services.storage_service import build_publisher

logger = logging.getLogger(__name__)

# ── MongoDB client and services (module-level, shared across requests) ────────
client: motor.motor_asyncio.AsyncIOMotorClient | None = None
db: motor.motor_asyncio.AsyncIOMotorDatabase | None = None
services: Services | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize and tear down resources on startup/shutdown."""
    global client, db, services
    logger.info("Connecting to MongoDB...")
    client = motor.motor_asyncio.AsyncIOMotorClient(settings.MONGO_URI)
    db = client[settings.MONGO_DB_NAME]

    # Ensure indexes
    await ensure_indexes(db)
    logger.info(f"Connected to MongoDB: {settings.MONGO_DB_NAME}")

    services = build_mongo_services(db, build_publisher())
    services.workers.start()

    yield  # App is running

    logger.info("Shutting down: stopping workers and closing MongoDB connection.")
    await services.workers.stop()
    client.close()


# ── App factory ────────────────────────────────────────────────────────────────
app = FastAPI(
    title="Bulk Certificate Generator",
    description="Generate personalized certificates from templates and spreadsheet data.",
    version="1.0.0",
    lifespan=lifespan,
)

# ── CORS middleware ────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_ORIGIN],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Error handlers ─────────────────────────────────────────────────────────────
@app.exception_handler(CertificateServiceError)
async def service_exception_handler(request: Request, exc: CertificateServiceError):
    logger.warning(f"{exc.code} on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code, "details": exc.details},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(status_code=500, content={"detail": "Internal server error."})


# ── Include routers ────────────────────────────────────────────────────────────
from app.api.batches import router as batches_router
from app.api.dashboard import router as dashboard_router
from app.api.generate import router as generate_router
from app.api.spreadsheets import router as spreadsheets_router
from app.api.templates import router as templates_router

app.include_router(templates_router)
app.include_router(spreadsheets_router)
app.include_router(batches_router)
app.include_router(generate_router)
app.include_router(dashboard_router)

# Locally stored certificates are served from here
if settings.STORAGE_BACKEND.lower() == "local":
    app.mount("/generated", StaticFiles(directory=str(settings.GENERATED_DIR)), name="generated")


# ── Health check ───────────────────────────────────────────────────────────────
@app.get("/health", tags=["Health"])
async def health():
    return {"status": "ok", "service": "Bulk Certificate Generator"}
