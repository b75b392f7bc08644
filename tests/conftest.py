"""
公共测试 fixtures

提供配置、模拟数据库客户端、应用实例和 HTTP 客户端。
"""

import contextlib
import socket
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import pytest_asyncio
from fastapi import APIRouter, Depends, Request
from loguru import logger

from server.bootstrap import create_app
from server.core.config import Settings
from server.core.database import Database
from server.infrastructure.middleware import get_request_body
from server.services.files import UploadStorage


def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def assets_dir(tmp_path):
    path = tmp_path / "public" / "assets"
    path.mkdir(parents=True)
    return path


@pytest.fixture
def make_settings(tmp_path, assets_dir):
    """按需覆盖字段构造配置，不读取真实 .env"""

    def factory(**overrides):
        values = {
            "BASE_DIR": str(tmp_path),
            "ASSETS_DIR": str(assets_dir),
            "MONGO_URL": "mongodb://localhost:27017/assets",
            "HOST": "127.0.0.1",
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return factory


@pytest.fixture
def settings(make_settings):
    return make_settings()


@pytest.fixture
def mongo_client():
    """模拟 AsyncMongoClient"""
    client = MagicMock()
    client.admin.command = AsyncMock(return_value={"ok": 1})
    client.close = AsyncMock()
    return client


@pytest.fixture
def database(settings, mongo_client):
    return Database.from_settings(settings, client_factory=MagicMock(return_value=mongo_client))


def make_test_router(storage: UploadStorage) -> APIRouter:
    """测试用路由：上传与请求体回显"""
    router = APIRouter()

    @router.post("/upload")
    async def upload_single(saved=Depends(storage.single("picture"))):
        return {"file": saved.model_dump() if saved else None}

    @router.post("/upload/many")
    async def upload_many(saved=Depends(storage.array("photos", max_count=2))):
        return {"files": [item.model_dump() for item in saved]}

    @router.post("/upload/fields")
    async def upload_fields(grouped=Depends(storage.fields([("avatar", 1), ("gallery", None)]))):
        return {"fields": {name: [item.filename for item in items] for name, items in grouped.items()}}

    @router.post("/echo")
    async def echo(request: Request):
        return {"body": get_request_body(request)}

    @router.post("/echo/raw")
    async def echo_raw(request: Request):
        return {"body": get_request_body(request), "raw": (await request.body()).decode()}

    @router.get("/boom")
    async def boom():
        raise RuntimeError("boom")

    return router


@pytest.fixture
def make_app(make_settings, database):
    def factory(**overrides):
        app_settings = make_settings(**overrides)
        storage = UploadStorage(app_settings.ASSETS_DIR)
        return create_app(
            app_settings,
            database=database,
            upload_storage=storage,
            routers=[make_test_router(storage)],
        )

    return factory


@pytest.fixture
def app(make_app):
    return make_app()


@pytest_asyncio.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http_client:
        yield http_client


@pytest.fixture
def log_messages():
    """收集 loguru 输出，需在 create_app 之后使用"""
    messages = []
    handler_id = logger.add(lambda message: messages.append(message.record["message"]), level="DEBUG")
    yield messages
    with contextlib.suppress(ValueError):
        logger.remove(handler_id)


@pytest.fixture
def unused_port():
    return free_port()


@pytest.fixture
def capture_logs():
    """返回一个函数，调用后开始收集 loguru 输出，用于测试体内创建应用的场景"""
    handler_ids = []

    def start():
        messages = []
        handler_ids.append(logger.add(lambda message: messages.append(message.record["message"]), level="DEBUG"))
        return messages

    yield start
    for handler_id in handler_ids:
        with contextlib.suppress(ValueError):
            logger.remove(handler_id)
