"""
FastAPI application factory for the Peerspace server.

This module handles FastAPI app creation, middleware configuration,
router registration and the optional static client mount.
"""

from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from .. import __version__
from ..api.monitoring import monitoring_router
from ..api.real_time import realtime_router
from ..config import get_config
from ..structured_logging.enhanced_logging_config import get_logger
from .lifespan import lifespan

logger = get_logger(__name__)


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        FastAPI: The configured FastAPI application instance
    """
    app = FastAPI(
        title="Peerspace API",
        description="Presence, chat and WebRTC signaling server for a shared 3D space",
        version=__version__,
        lifespan=lifespan,
    )

    config = get_config()
    cors_cfg = config.cors
    allowed_methods = [str(m).upper() for m in cors_cfg.allow_methods]
    logger.info(
        "CORS configuration",
        allow_origins=cors_cfg.allow_origins,
        allow_methods=allowed_methods,
        allow_headers=cors_cfg.allow_headers,
        allow_credentials=cors_cfg.allow_credentials,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_cfg.allow_origins,
        allow_credentials=cors_cfg.allow_credentials,
        allow_methods=allowed_methods,
        allow_headers=cors_cfg.allow_headers,
    )

    app.include_router(realtime_router)
    app.include_router(monitoring_router)

    # Mounted last so it never shadows /ws or /health
    static_dir = config.server.static_dir
    if static_dir and Path(static_dir).is_dir():
        app.mount("/", StaticFiles(directory=static_dir, html=True), name="static")
        logger.info("Serving static client files", static_dir=static_dir)
    elif static_dir:
        logger.debug("Static directory not found, not mounting", static_dir=static_dir)

    return app
