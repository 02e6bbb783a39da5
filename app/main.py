"""Main FastAPI application entry point."""

import logging
import time

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.fixtures import router as fixtures_router
from app.api.routes import router
from app.config import get_settings
from app.dependencies import close_shared_clients, get_insights_service
from app.schemas.insights import HealthResponse
from app.services.cache import to_iso
from app.services.insights import InsightsService

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Apex PL Backend",
    description="Momentum, hype and reality scores for Premier League teams and players",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "OPTIONS"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(router)
app.include_router(fixtures_router)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Invalid query or path parameters: 400 inside the usual envelope."""
    logger.info(f"Rejected {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=400,
        content={
            "data": None,
            "meta": {
                "lastUpdated": to_iso(int(time.time() * 1000)),
                "sourceStatus": "fresh",
            },
            "errors": [
                {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
                for err in exc.errors()
            ],
        },
    )


@app.get("/health", response_model=HealthResponse, tags=["operations"])
async def health_check(
    service: InsightsService = Depends(get_insights_service),
) -> HealthResponse:
    """Liveness plus cache backend and upstream snapshot (always 200)."""
    return await service.health()


@app.on_event("startup")
async def startup_event() -> None:
    """Log startup information."""
    logger.info("Starting Apex PL Backend")
    logger.info(f"CORS origins: {settings.cors_origins_list}")
    logger.info(f"FPL API base: {settings.fpl_api_base_url}")
    logger.info(f"Cache backend: {'remote' if settings.kv_configured else 'memory'}")


@app.on_event("shutdown")
async def shutdown_event() -> None:
    """Cleanup on shutdown."""
    logger.info("Shutting down Apex PL Backend")
    await close_shared_clients()
