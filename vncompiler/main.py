"""
FastAPI application entry
"""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from vncompiler import __version__
from vncompiler.config import settings, validate_config
from vncompiler.routers import compile_router

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """Build the app from the current settings"""
    app = FastAPI(
        title="VN Compiler API",
        description="Compile YAML visual novel scripts into single-file HTML games",
        version=__version__,
    )

    if settings.cors_enabled:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.include_router(compile_router, prefix=settings.api_prefix)

    @app.on_event("startup")
    async def startup_event():
        if validate_config():
            logger.info("[App] Configuration OK")
        else:
            logger.warning("[App] Configuration has problems, check the VN_* environment variables")
        logger.info("[App] Serving games from %s", settings.server_workdir)

    @app.get("/")
    async def root():
        return {
            "message": "VN Compiler API",
            "version": __version__,
            "docs": "/docs",
        }

    @app.get("/health")
    async def health_check():
        return {"status": "healthy"}

    return app


app = create_app()
