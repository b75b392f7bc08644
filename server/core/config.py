import os

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

BASE_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir, os.pardir))

DEFAULT_PORT = 6001


class Settings(BaseSettings):
    """应用配置

    启动时构造一次，显式传递给需要的组件。
    """

    PORT: int = Field(default=DEFAULT_PORT)
    HOST: str = Field(default="0.0.0.0")

    # 不做校验，缺失时在连接阶段由驱动报错
    MONGO_URL: str | None = Field(default=None)
    MONGO_SERVER_SELECTION_TIMEOUT_MS: int = 30000
    EXIT_ON_DB_FAILURE: bool = False

    APP_NAME: str = "Asset Server"
    APP_VERSION: str = "1.0.0"

    LOG_LEVEL: str = Field(default="INFO")
    LOG_TO_FILE: bool = Field(default=False)
    ACCESS_LOG: bool = True

    BASE_DIR: str = BASE_DIR

    ASSETS_URL_PREFIX: str = "/assets"
    ASSETS_DIR: str = Field(default=os.path.join(BASE_DIR, "public", "assets"))

    JSON_BODY_LIMIT: int = 100 * 1024
    BODY_LIMIT: int = 30 * 1024 * 1024

    CORS_ORIGINS: list = ["*"]
    CORS_ALLOW_CREDENTIALS: bool = False
    CORS_ALLOW_METHODS: list = ["GET", "HEAD", "PUT", "PATCH", "POST", "DELETE"]
    CORS_ALLOW_HEADERS: list = ["*"]

    CROSS_ORIGIN_RESOURCE_POLICY: str = "cross-origin"

    @field_validator("PORT", mode="before")
    @classmethod
    def _default_port_when_empty(cls, value):
        if value is None or (isinstance(value, str) and not value.strip()):
            return DEFAULT_PORT
        return value

    @field_validator("MONGO_URL", mode="before")
    @classmethod
    def _none_when_empty(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def data_dir(self):
        """数据目录：日志等生成文件的根目录"""
        return os.path.join(self.BASE_DIR, "data")

    @property
    def LOG_FILE_PATH(self):
        return os.path.join(self.data_dir, "logs", "app.log")

    class Config:
        env_file = os.path.join(BASE_DIR, ".env")
        case_sensitive = True
        extra = "ignore"
        frozen = True


def load_settings(**overrides) -> Settings:
    """读取环境变量与 .env，返回只读配置"""
    return Settings(**overrides)
