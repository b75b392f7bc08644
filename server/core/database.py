"""MongoDB 连接管理

单次连接尝试，不做重试。连接成功以 ping 命令确认。
"""

from loguru import logger
from pymongo import AsyncMongoClient
from pymongo.errors import ConfigurationError

from server.core.config import Settings
from server.core.exceptions import DatabaseConnectionError


class Database:
    """数据库连接生命周期"""

    def __init__(self, url, server_selection_timeout_ms=30000, client_factory=AsyncMongoClient):
        self.url = url
        self.server_selection_timeout_ms = server_selection_timeout_ms
        self._client_factory = client_factory
        self.client = None

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "Database":
        return cls(
            settings.MONGO_URL,
            server_selection_timeout_ms=settings.MONGO_SERVER_SELECTION_TIMEOUT_MS,
            **kwargs,
        )

    @property
    def is_connected(self) -> bool:
        return self.client is not None

    async def connect(self):
        """建立连接

        Raises:
            DatabaseConnectionError: 配置缺失、URI 非法或服务器不可达
        """
        if self.client is not None:
            return self.client

        client = None
        try:
            if not self.url:
                raise ConfigurationError("MONGO_URL must be a connection string, got None")
            client = self._client_factory(
                self.url,
                serverSelectionTimeoutMS=self.server_selection_timeout_ms,
            )
            await client.admin.command("ping")
        except Exception as e:
            if client is not None:
                await client.close()
            raise DatabaseConnectionError(e) from e

        self.client = client
        logger.info("数据库已连接")
        return client

    async def close(self) -> None:
        if self.client is None:
            return
        client, self.client = self.client, None
        await client.close()
        logger.info("数据库连接已关闭")

    def get_database(self, name=None):
        """返回连接串中的默认库，或指定名称的库"""
        if self.client is None:
            raise RuntimeError("database is not connected")
        if name is None:
            return self.client.get_default_database()
        return self.client[name]
