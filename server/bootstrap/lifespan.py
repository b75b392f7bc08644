"""Application lifecycle management.

When the app runs under an external ASGI server the database is connected here,
before the server binds. When the startup sequencer has already connected, the
lifespan only closes the connection on shutdown.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from loguru import logger

from server.core.exceptions import DatabaseConnectionError
from server.core.logging import startup_logger


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan context manager."""
    database = app.state.database
    try:
        if not database.is_connected:
            try:
                await database.connect()
            except DatabaseConnectionError as e:
                startup_logger.error(f"{e} did not connect")
                raise
        logger.info("应用程序已启动")
        yield
    finally:
        await database.close()
        logger.info("应用程序已停止")
