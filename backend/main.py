"""
Easel Backend
FastAPI application streaming the agentic image workflow
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import uvicorn
from typing import Optional
import logging

from easel import __version__
from easel.api import agent_router, knowledge_router
from easel.config import Config, EnvironmentSettings, get_config
from easel.services.factory import AppServices, ServiceFactory

logger = logging.getLogger(__name__)


def configure_logging(config: Config, level: Optional[str] = None) -> None:
    """Configure root logging from the config (or an explicit level)"""
    logging.basicConfig(
        level=(level or config.logging.level).upper(),
        format=config.logging.format,
    )


def create_app(config: Optional[Config] = None, services: Optional[AppServices] = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        config: Configuration object; loaded from EASEL_CONFIG_PATH if omitted
        services: Prebuilt services; built from the config at startup if omitted

    Returns:
        Configured FastAPI app
    """
    if config is None:
        config = services.config if services is not None else get_config(EnvironmentSettings().config_path)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager"""
        logger.info("Starting Easel backend...")
        owned = services is None
        app.state.services = services if services is not None else await ServiceFactory.build_services(config)
        yield
        logger.info("Shutting down Easel backend...")
        if owned:
            await app.state.services.close()

    app = FastAPI(
        title="Easel API",
        description="Agentic image generation with style retrieval",
        version=__version__,
        lifespan=lifespan,
    )
    if services is not None:
        app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {
            "message": "Easel API",
            "version": __version__,
            "status": "running"
        }

    @app.get("/api/health")
    async def health_check():
        """Health check endpoint"""
        stats = await app.state.services.style_index.stats()
        return {
            "status": "healthy",
            "services": {
                "api": "running",
                "style_index": "ready" if stats.initialized else "uninitialized",
                "styles": stats.count,
            }
        }

    app.include_router(agent_router)
    app.include_router(knowledge_router)

    return app


if __name__ == "__main__":
    settings = EnvironmentSettings()
    config = get_config(settings.config_path)
    configure_logging(config, settings.log_level)
    uvicorn.run(
        create_app(config),
        host=config.server.host,
        port=config.server.port,
        log_level=(settings.log_level or config.logging.level).lower(),
    )
