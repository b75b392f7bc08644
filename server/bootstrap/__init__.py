"""Bootstrap module for application initialization.

This module provides:
- Application factory (create_app)
- Lifecycle management (lifespan)
- Route registration (register_routes)
- Startup sequencing (Bootstrap)
"""

from server.bootstrap.app_factory import create_app
from server.bootstrap.lifespan import lifespan
from server.bootstrap.routes import register_routes
from server.bootstrap.sequencer import AssetServer, Bootstrap, StartupState

__all__ = ["AssetServer", "Bootstrap", "StartupState", "create_app", "lifespan", "register_routes"]
