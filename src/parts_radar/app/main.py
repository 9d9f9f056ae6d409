"""FastAPI application entry point for the Parts Radar API."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from parts_radar.app.config import get_settings
from parts_radar.app.routes.deps import init_app_state
from parts_radar.domain.schemas import HealthResponse
from parts_radar.infra.database import init_db

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: initialize database on startup."""
    await init_db()
    logger.info("Parts Radar ready")
    yield


settings = get_settings()

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.debug else logging.WARNING,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)

app = FastAPI(
    title="Parts Radar API",
    lifespan=lifespan,
    debug=settings.debug,
)
init_app_state(app.state)

_cors_origins = settings.cors_origins_list
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=("*" not in _cors_origins),
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Route includes
# ---------------------------------------------------------------------------
from parts_radar.app.routes.partners import router as partners_router
from parts_radar.app.routes.requests import router as requests_router, quotes_router
from parts_radar.app.routes.audit import router as audit_router
from parts_radar.app.routes.maps import router as maps_router

app.include_router(partners_router)
app.include_router(requests_router)
app.include_router(quotes_router)
app.include_router(audit_router)
app.include_router(maps_router)


@app.get("/health", tags=["health"], response_model=HealthResponse)
async def health_check():
    """Return service health status."""
    return HealthResponse(status="ok", service="parts-radar")


def run() -> None:
    """Run the application with uvicorn (used by project.scripts entry point)."""
    uvicorn.run(
        "parts_radar.app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()
