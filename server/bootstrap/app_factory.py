"""Application factory module.

Provides the create_app() factory function for creating FastAPI application instances.
"""

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from server.bootstrap.lifespan import lifespan
from server.bootstrap.routes import register_routes
from server.core.config import Settings, load_settings
from server.core.database import Database
from server.core.exceptions import (
    general_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from server.core.logging import setup_logging
from server.infrastructure.middleware import make_middlewares
from server.services.files import UploadStorage


def create_app(
    settings: Settings | None = None,
    database: Database | None = None,
    upload_storage: UploadStorage | None = None,
    routers=(),
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Settings built once at startup; loaded from the environment when omitted.
        database: Database handle; built from settings when omitted.
        upload_storage: Upload storage exposed to route modules as ``app.state.upload``.
        routers: Extra APIRouter instances to include.

    Returns:
        FastAPI: Configured application instance.
    """
    if settings is None:
        settings = load_settings()

    setup_logging(settings)

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        middleware=make_middlewares(settings),
        openapi_url=None,
        docs_url=None,
        redoc_url=None,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.database = database or Database.from_settings(settings)
    app.state.upload = upload_storage or UploadStorage(settings.ASSETS_DIR)

    # Register exception handlers
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    # Register routes
    register_routes(app, routers)

    return app
