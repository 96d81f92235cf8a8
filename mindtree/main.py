"""
Mindtree — Mind-Map Hierarchy Engine
=====================================
FastAPI entry point.
  • Global exception handler — never crashes, always returns JSON
  • /api/v1/mindmaps — stateless generation, outline, layout, upload, saved maps
  • /api/v1/sessions — stateful editing: expand, spin off, navigate, save
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from mindtree.api.deps import get_sessions
from mindtree.api.v1.endpoints import mindmaps, sessions
from mindtree.core.config import settings
from mindtree.schemas.api import ErrorResponse

# ── Logging ──────────────────────────────────────────────────────────────────
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"[STARTUP] ✓ Mindtree ready (AI provider: {settings.AI_PROVIDER})")
    yield
    await get_sessions().close_all()
    logger.info("[SHUTDOWN] Sessions closed")


# ── App ──────────────────────────────────────────────────────────────────────
app = FastAPI(
    title="Mindtree — Mind-Map Hierarchy Engine",
    description=(
        "Turns generated, outlined or uploaded content into positioned mind-map trees.\n"
        "Expand nodes, spin off linked maps, navigate the map history and save."
    ),
    version="1.0.0",
    lifespan=lifespan,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
        504: {"model": ErrorResponse},
    },
)


# ── Global Exception Handler ────────────────────────────────────────────────
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch-all: every unhandled exception returns a clean JSON envelope."""
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    body = ErrorResponse(
        status="error",
        message="An internal server error occurred.",
        detail=str(exc),
    )
    return JSONResponse(status_code=500, content=body.model_dump())


# ── CORS ─────────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Routers ──────────────────────────────────────────────────────────────────
app.include_router(mindmaps.router, prefix="/api/v1")
app.include_router(sessions.router, prefix="/api/v1")


# ── Health Check ─────────────────────────────────────────────────────────────
@app.get("/", tags=["System"])
async def health_check():
    return {
        "status": "operational",
        "service": "Mindtree Hierarchy Engine",
        "version": app.version,
        "ai_provider": settings.AI_PROVIDER,
    }
