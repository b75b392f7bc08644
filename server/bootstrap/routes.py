"""Route registration module.

The bootstrap itself defines no application routes; static assets are served by
the pipeline's static stage. Route modules are included here when supplied.
"""

from fastapi import FastAPI


def register_routes(app: FastAPI, routers=()) -> None:
    """Register route modules to the application.

    Args:
        app: FastAPI application instance.
        routers: APIRouter instances, included in order.
    """
    for router in routers:
        app.include_router(router)
