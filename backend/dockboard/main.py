"""Dockboard - loading-dock allocation and SLA API"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from dockboard.core.config import get_settings
from dockboard.core.logging import configure_logging, logger
from dockboard.routers import docks

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging and report the yard layout the API serves."""
    settings = get_settings()
    configure_logging(settings.log_level)
    logger.info(
        f"{settings.app_name} starting",
        version=VERSION,
        docks=len(settings.dock_numbers),
        dock_range=f"{min(settings.dock_numbers)}-{max(settings.dock_numbers)}" if settings.dock_numbers else None,
        sides=settings.side_count,
        timezone=settings.timezone,
        auto_assign_on_import=settings.auto_assign_on_import,
    )
    yield
    logger.info(f"{settings.app_name} shutting down")


settings = get_settings()

app = FastAPI(
    title=settings.app_name,
    description="Loading-dock occupancy, conflict checks, SLA timers and template auto-assignment",
    version=VERSION,
    lifespan=lifespan
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(docks.router)


@app.get("/")
async def root():
    """Service name plus the yard layout and SLA thresholds in effect."""
    return {
        "name": settings.app_name,
        "version": VERSION,
        "yard": {
            "docks": len(settings.dock_numbers),
            "sides": settings.side_names(),
            "timezone": settings.timezone,
            "auto_assign_on_import": settings.auto_assign_on_import,
        },
        "sla_minutes": {
            "wait_warn": settings.sla_wait_warn_min,
            "wait_crit": settings.sla_wait_crit_min,
            "cutoff_warn": settings.sla_tope_warn_min,
            "cutoff_board_icon": settings.sla_tope_icon_premin,
        },
        "endpoints": {
            "board": "/docks/board",
            "records": "/docks/sides/{side}/records",
            "dock_commit": "/docks/sides/{side}/records/{record_id}/dock",
            "arrival": "/docks/sides/{side}/records/{record_id}/arrival",
            "departure": "/docks/sides/{side}/records/{record_id}/departure",
            "air_cargo": "/docks/sides/{side}/records/{record_id}/air",
            "import": "/docks/sides/{side}/import",
            "sla_summary": "/docks/sla/summary",
            "templates": "/docks/templates",
        }
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
