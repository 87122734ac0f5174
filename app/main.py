"""FastAPI application entry point."""
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.database import database
from app.logging_utils import setup_logging
from app.routers import auth, cron, notifications, time_clock
from app.services.time_entry_store import TimeEntryStore


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown events."""
    # Startup
    setup_logging(settings.log_level, json_output=settings.log_json)
    await database.connect()
    await TimeEntryStore(database.db).ensure_indexes()
    yield
    # Shutdown
    await database.disconnect()


app = FastAPI(
    title="Time Clock Service API",
    description="Shift tracking with net work time, soft cap review and clock-out corrections",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth.router)
app.include_router(time_clock.router)
app.include_router(cron.router)
app.include_router(notifications.router)


@app.get("/")
async def root():
    """Root endpoint - health check."""
    return {"status": "ok", "message": "Time Clock Service API"}


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}
