import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from dishka import AsyncContainer
from dishka.integrations.fastapi import setup_dishka
from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.utils import get_openapi
from sqlalchemy.ext.asyncio import AsyncEngine

from signup_guard.api import register_exception_handlers, register_routers
from signup_guard.api.middleware import API_KEY_HEADER, ApiKeyMiddleware
from signup_guard.database.base import Base
from signup_guard.ioc import get_async_container
from signup_guard.services.logging import setup_logging
from signup_guard.settings import Config, get_config

logger = logging.getLogger(__name__)

_OPENAPI_API_KEY_SCHEME = "ApiKeyAuth"


def _install_openapi_api_key_security(app: FastAPI) -> None:
    def custom_openapi() -> dict[str, Any]:
        if app.openapi_schema:
            return app.openapi_schema

        schema = get_openapi(
            title=app.title,
            version=app.version,
            routes=app.routes,
        )

        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes[_OPENAPI_API_KEY_SCHEME] = {
            "type": "apiKey",
            "in": "header",
            "name": API_KEY_HEADER,
        }
        schema["security"] = [{_OPENAPI_API_KEY_SCHEME: []}]

        for operation in schema.get("paths", {}).get("/health", {}).values():
            operation["security"] = []

        app.openapi_schema = schema
        return schema

    app.openapi = custom_openapi


async def create_tables(engine: AsyncEngine) -> None:
    # Import models so Base.metadata knows about them
    import signup_guard.api.modules.fraud.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    container: AsyncContainer = app.state.dishka_container

    logger.info("Creating database tables...")
    await create_tables(await container.get(AsyncEngine))

    logger.info("Starting application...")
    yield
    logger.info("Shutting down application...")
    await container.close()


def create_app(
    config: Config | None = None,
    container: AsyncContainer | None = None,
) -> FastAPI:
    config = config or get_config()

    app = FastAPI(
        title=config.api.title,
        version=config.api.version,
        lifespan=lifespan,
    )

    if config.api.api_key:
        app.add_middleware(ApiKeyMiddleware, api_key=config.api.api_key)
        _install_openapi_api_key_security(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.api.allowed_hosts,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health", include_in_schema=False)
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    api_router = APIRouter()
    register_routers(api_router)
    app.include_router(api_router)
    register_exception_handlers(app)

    setup_dishka(container or get_async_container(config), app)

    return app


def get_production_app() -> FastAPI:
    """Get the FastAPI application instance."""
    config = get_config()
    setup_logging(config.env)
    return create_app(config)


def run() -> None:
    import uvicorn

    config = get_config()
    uvicorn.run(
        "signup_guard.application:get_production_app",
        factory=True,
        host=config.api.host,
        port=config.api.port,
    )
