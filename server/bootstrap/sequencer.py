"""Startup sequencer.

Connects the database first and binds the listening socket only after the
connection succeeds. A failed connection is logged and the socket is never bound.
"""

import asyncio
import contextlib
import signal
from enum import Enum

import uvicorn
from fastapi import FastAPI
from loguru import logger

from server.bootstrap.app_factory import create_app
from server.core.config import Settings
from server.core.database import Database
from server.core.exceptions import DatabaseConnectionError
from server.core.logging import startup_logger


class StartupState(str, Enum):
    CONNECTING = "connecting"
    LISTENING = "listening"
    FAILED = "failed"


class AssetServer(uvicorn.Server):
    """uvicorn server reporting the bound port once startup completes."""

    def __init__(self, config: uvicorn.Config, on_started=None):
        super().__init__(config)
        self._on_started = on_started

    async def startup(self, sockets=None) -> None:
        await super().startup(sockets=sockets)
        if self.started:
            startup_logger.info(f"Server Port: {self.config.port}")
            if self._on_started is not None:
                self._on_started()


class Bootstrap:
    """Bootstrap sequence: connecting -> listening | failed."""

    def __init__(self, settings: Settings, app: FastAPI | None = None, database: Database | None = None):
        self.settings = settings
        self.app = app or create_app(settings, database=database)
        self.database: Database = self.app.state.database
        self.state = StartupState.CONNECTING
        self.server: AssetServer | None = None
        self._stopped = asyncio.Event()

    def _build_server(self) -> AssetServer:
        config = uvicorn.Config(
            self.app,
            host=self.settings.HOST,
            port=self.settings.PORT,
            lifespan="on",
            access_log=False,
            server_header=False,
            log_config=None,
        )
        return AssetServer(config, on_started=self._on_started)

    def _on_started(self) -> None:
        self.state = StartupState.LISTENING

    async def start(self) -> StartupState:
        """Connect, then serve until stopped. Returns the terminal state."""
        self.state = StartupState.CONNECTING
        try:
            await self.database.connect()
        except DatabaseConnectionError as e:
            self.state = StartupState.FAILED
            startup_logger.error(f"{e} did not connect")
            return self.state

        self.server = self._build_server()
        await self.server.serve()
        return self.state

    def stop(self) -> None:
        if self.server is not None:
            self.server.should_exit = True
        self._stopped.set()

    async def wait_for_shutdown(self) -> None:
        """Block until SIGINT/SIGTERM or stop()."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError, RuntimeError):
                loop.add_signal_handler(sig, self.stop)
        try:
            await self._stopped.wait()
        finally:
            for sig in (signal.SIGINT, signal.SIGTERM):
                with contextlib.suppress(NotImplementedError, RuntimeError):
                    loop.remove_signal_handler(sig)

    async def run(self) -> int:
        """Run the full sequence and return the process exit code."""
        state = await self.start()
        if state is StartupState.FAILED:
            if self.settings.EXIT_ON_DB_FAILURE:
                return 1
            logger.warning("数据库未连接，服务未监听端口，等待退出信号")
            await self.wait_for_shutdown()
        return 0
