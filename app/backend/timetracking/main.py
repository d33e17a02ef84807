"""FastAPI application entrypoint."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from timetracking.api.router import api_router
from timetracking.core.config import Settings, get_settings
from timetracking.core.logging import configure_logging
from timetracking.db.base import Base
from timetracking.db.session import SessionLocal, engine
from timetracking.integrations.keycloak import KeycloakAdminClient
from timetracking.repositories.db_repository import DbRepository
from timetracking.services.keycloak_deployment_service import provision_identity_provider


def run_startup_tasks(settings: Settings) -> None:
    """Create the schema and provision the identity provider when configured."""

    if settings.database_auto_create:
        Base.metadata.create_all(bind=engine)

    if settings.feature_authorization:
        with SessionLocal() as session, KeycloakAdminClient(
            settings.keycloak_url,
            username=settings.keycloak_admin_user,
            password=settings.keycloak_admin_password,
            admin_realm=settings.keycloak_admin_realm,
            timeout=settings.keycloak_timeout_seconds,
        ) as keycloak:
            provision_identity_provider(keycloak, DbRepository(session), settings)


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""

    settings = get_settings()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        run_startup_tasks(settings)
        yield

    app = FastAPI(
        title=settings.app_name,
        version="0.1.0",
        openapi_url=f"{settings.api_prefix}/openapi.json",
        docs_url=f"{settings.api_prefix}/docs",
        redoc_url=f"{settings.api_prefix}/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router, prefix=settings.api_prefix)

    @app.get("/", tags=["system"])
    def root() -> dict[str, str]:
        return {"service": settings.app_name, "status": "running"}

    return app


app = create_app()
