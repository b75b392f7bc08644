"""异常处理"""

from datetime import datetime

from fastapi import status
from fastapi.responses import JSONResponse
from loguru import logger

from server.schemas.common import BaseResponse


class DatabaseConnectionError(Exception):
    """数据库连接失败，包装驱动抛出的原始异常"""

    def __init__(self, cause: BaseException):
        super().__init__(str(cause))
        self.cause = cause

    def __str__(self):
        return f"{type(self.cause).__name__}: {self.cause}"


class PipelineOrderError(RuntimeError):
    """中间件阶段顺序不满足前置条件"""


def create_error_response(status_code, message, headers=None):
    resp = BaseResponse(
        success=False,
        code=status_code,
        message=message,
        data=None,
        timestamp=datetime.now(),
    )
    content = resp.model_dump(mode="json")
    return JSONResponse(status_code=status_code, content=content, headers=headers)


async def http_exception_handler(request, exc):
    return create_error_response(
        status_code=exc.status_code,
        message=exc.detail,
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request, exc):
    return create_error_response(status_code=status.HTTP_400_BAD_REQUEST, message="请求参数验证失败")


async def general_exception_handler(request, exc):
    logger.opt(exception=exc).error(f"未处理异常: {request.method} {request.url.path}: {exc}")
    return create_error_response(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, message="服务器内部错误")
