"""中间件基础设施模块"""

from server.infrastructure.middleware.body_parser import BodyParserMiddleware, get_request_body
from server.infrastructure.middleware.middleware import (
    AccessLogMiddleware,
    SecurityHeadersMiddleware,
    StaticFilesMiddleware,
)
from server.infrastructure.middleware.pipeline import (
    PipelineStage,
    build_pipeline,
    make_middlewares,
    validate_pipeline,
)

__all__ = [
    "AccessLogMiddleware",
    "BodyParserMiddleware",
    "PipelineStage",
    "SecurityHeadersMiddleware",
    "StaticFilesMiddleware",
    "build_pipeline",
    "get_request_body",
    "make_middlewares",
    "validate_pipeline",
]
