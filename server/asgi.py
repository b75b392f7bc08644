"""ASGI entrypoint.

保持模块导入无副作用：仅在 ASGI 入口处创建 FastAPI app。
数据库在 lifespan 中连接，连接失败时服务器不会绑定端口。
"""

from server.bootstrap import create_app

app = create_app()
