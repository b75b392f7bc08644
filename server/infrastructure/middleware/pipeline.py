"""请求处理管线

按固定顺序声明中间件阶段。每个阶段声明依赖（requires）和产出（provides），
构建时校验依赖都由更早的阶段提供。列表中靠前的阶段先看到请求。
"""
from dataclasses import dataclass, field

from fastapi.middleware import Middleware
from fastapi.middleware.cors import CORSMiddleware

from server.core.config import Settings
from server.core.exceptions import PipelineOrderError
from server.infrastructure.middleware.body_parser import (
    JSON_MEDIA_TYPE,
    URLENCODED_MEDIA_TYPE,
    BodyParserMiddleware,
)
from server.infrastructure.middleware.middleware import (
    AccessLogMiddleware,
    SecurityHeadersMiddleware,
    StaticFilesMiddleware,
)


@dataclass(frozen=True)
class PipelineStage:
    name: str
    middleware: Middleware
    requires: frozenset = field(default_factory=frozenset)
    provides: frozenset = field(default_factory=frozenset)
    description: str = ""


def build_pipeline(settings: Settings) -> list[PipelineStage]:
    """按顺序构建管线阶段"""
    return [
        PipelineStage(
            name="json",
            middleware=Middleware(
                BodyParserMiddleware,
                media_types=(JSON_MEDIA_TYPE,),
                limit=settings.JSON_BODY_LIMIT,
            ),
            provides=frozenset({"body"}),
            description="JSON 请求体解析到 request.state.body",
        ),
        PipelineStage(
            name="security-headers",
            middleware=Middleware(
                SecurityHeadersMiddleware,
                cross_origin_resource_policy=settings.CROSS_ORIGIN_RESOURCE_POLICY,
            ),
            provides=frozenset({"security-headers"}),
            description="安全响应头，静态资源允许跨域引用",
        ),
        PipelineStage(
            name="access-log",
            middleware=Middleware(AccessLogMiddleware),
            provides=frozenset({"access-log"}),
            description="common 格式访问日志",
        ),
        PipelineStage(
            name="legacy-body",
            middleware=Middleware(
                BodyParserMiddleware,
                media_types=(JSON_MEDIA_TYPE, URLENCODED_MEDIA_TYPE),
                limit=settings.BODY_LIMIT,
            ),
            provides=frozenset({"body", "form"}),
            description="JSON 与 URL 编码请求体解析，已解析时跳过",
        ),
        PipelineStage(
            name="cors",
            middleware=Middleware(
                CORSMiddleware,
                allow_origins=settings.CORS_ORIGINS,
                allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
                allow_methods=settings.CORS_ALLOW_METHODS,
                allow_headers=settings.CORS_ALLOW_HEADERS,
            ),
            requires=frozenset({"security-headers"}),
            provides=frozenset({"cors"}),
            description="跨域请求处理",
        ),
        PipelineStage(
            name="static",
            middleware=Middleware(
                StaticFilesMiddleware,
                prefix=settings.ASSETS_URL_PREFIX,
                directory=settings.ASSETS_DIR,
            ),
            requires=frozenset({"security-headers", "cors"}),
            provides=frozenset({"static"}),
            description="静态资源目录挂载",
        ),
    ]


def validate_pipeline(stages: list[PipelineStage]) -> None:
    """校验阶段名称唯一且依赖均由更早阶段提供

    Raises:
        PipelineOrderError: 名称重复或依赖缺失
    """
    seen = set()
    provided = set()
    for stage in stages:
        if stage.name in seen:
            raise PipelineOrderError(f"duplicate pipeline stage '{stage.name}'")
        missing = stage.requires - provided
        if missing:
            raise PipelineOrderError(
                f"stage '{stage.name}' requires {sorted(missing)} from an earlier stage"
            )
        seen.add(stage.name)
        provided |= stage.provides


def make_middlewares(settings: Settings, stages: list[PipelineStage] | None = None) -> list[Middleware]:
    """Create middleware list for FastAPI application.

    Returns:
        list: List of Middleware instances, outermost first.
    """
    if stages is None:
        stages = build_pipeline(settings)
    validate_pipeline(stages)
    return [stage.middleware for stage in stages]
