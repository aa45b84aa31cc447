"""
Account connection service — application entry point.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.sessions import SessionMiddleware

from api.middleware import register_exception_handlers, register_middleware
from auth.routes import router as auth_router
from config.settings import Settings, config
from connectors.controller import ConnectController
from connectors.registry import ConnectionFactoryRegistry, build_default_registry
from connectors.routes import router as connect_router
from database.session import create_tables

logging.basicConfig(
    level=logging.DEBUG if config.debug else logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s",
    stream=sys.stdout,
)
for _noisy in ("httpcore", "httpx", "urllib3"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    factory_registry: Optional[ConnectionFactoryRegistry] = None,
    create_schema: bool = True,
) -> FastAPI:
    settings = settings or config
    app = FastAPI(
        title="Account Connection Service",
        version="1.0.0",
        description="Connects local accounts to OAuth1 / OAuth2 service providers.",
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret,
        max_age=settings.session_max_age_seconds,
        https_only=settings.application_url.startswith("https://"),
    )

    register_middleware(app)
    register_exception_handlers(app)

    factory_registry = factory_registry or build_default_registry(settings)
    app.state.connect_controller = ConnectController(
        settings.application_url,
        factory_registry,
        base_path=settings.connect_base_path,
    )

    # Routes
    app.include_router(auth_router, prefix="/api/v1/auth")
    app.include_router(connect_router, prefix=settings.connect_base_path)

    @app.on_event("startup")
    async def on_startup():
        if create_schema:
            logger.info("Ensuring database tables exist…")
            await create_tables()
        logger.info(
            "Application ready — providers: %s",
            ", ".join(factory_registry.registered_provider_ids()) or "none",
        )

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level="debug" if config.debug else "info",
    )
