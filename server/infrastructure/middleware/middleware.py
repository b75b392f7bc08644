"""中间件组件"""
import base64
import binascii
import os
from datetime import datetime, timezone
from typing import ClassVar

from starlette.exceptions import HTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.staticfiles import StaticFiles

from server.core.exceptions import create_error_response
from server.core.logging import access_logger


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """安全响应头中间件"""

    SECURITY_HEADERS: ClassVar[dict] = {
        "Content-Security-Policy": (
            "default-src 'self';base-uri 'self';font-src 'self' https: data:;"
            "form-action 'self';frame-ancestors 'self';img-src 'self' data:;"
            "object-src 'none';script-src 'self';script-src-attr 'none';"
            "style-src 'self' https: 'unsafe-inline';upgrade-insecure-requests"
        ),
        "Cross-Origin-Opener-Policy": "same-origin",
        "Cross-Origin-Resource-Policy": "same-origin",
        "Origin-Agent-Cluster": "?1",
        "Referrer-Policy": "no-referrer",
        "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
        "X-Content-Type-Options": "nosniff",
        "X-DNS-Prefetch-Control": "off",
        "X-Download-Options": "noopen",
        "X-Frame-Options": "SAMEORIGIN",
        "X-Permitted-Cross-Domain-Policies": "none",
        "X-XSS-Protection": "0",
    }

    def __init__(self, app, cross_origin_resource_policy=None):
        super().__init__(app)
        self.headers = dict(self.SECURITY_HEADERS)
        if cross_origin_resource_policy:
            self.headers["Cross-Origin-Resource-Policy"] = cross_origin_resource_policy

    async def dispatch(self, request, call_next):
        response = await call_next(request)
        response.headers.update(self.headers)
        if "x-powered-by" in response.headers:
            del response.headers["x-powered-by"]
        return response


_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def _clf_date(moment: datetime) -> str:
    moment = moment.astimezone(timezone.utc)
    return (
        f"{moment.day:02d}/{_MONTHS[moment.month - 1]}/{moment.year}:"
        f"{moment.hour:02d}:{moment.minute:02d}:{moment.second:02d} +0000"
    )


def _remote_user(headers) -> str:
    auth = headers.get(b"authorization", b"").decode("latin-1")
    scheme, _, credentials = auth.partition(" ")
    if scheme.lower() != "basic" or not credentials:
        return "-"
    try:
        decoded = base64.b64decode(credentials.strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return "-"
    user, sep, _ = decoded.partition(":")
    return user if sep and user else "-"


def format_common_log(scope, status, content_length, moment: datetime) -> str:
    """按 common 格式生成一行访问日志

    :remote-addr - :remote-user [:date] ":method :url HTTP/:http-version" :status :res[content-length]
    """
    headers = dict(scope.get("headers") or [])
    client = scope.get("client")
    remote_addr = client[0] if client else "-"

    raw_path = scope.get("raw_path")
    url = raw_path.decode("latin-1") if raw_path else scope.get("path", "")
    query = scope.get("query_string") or b""
    if query:
        url = f"{url}?{query.decode('latin-1')}"

    request_line = f'{scope.get("method", "-")} {url} HTTP/{scope.get("http_version", "1.1")}'
    return (
        f'{remote_addr} - {_remote_user(headers)} [{_clf_date(moment)}] '
        f'"{request_line}" {status if status is not None else "-"} {content_length or "-"}'
    )


class AccessLogMiddleware:
    """访问日志中间件，每个请求输出一行 common 格式日志"""

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        started = datetime.now(timezone.utc)
        response = {"status": None, "length": None}

        async def send_wrapper(message):
            if message["type"] == "http.response.start":
                response["status"] = message["status"]
                for key, value in message.get("headers", []):
                    if key.lower() == b"content-length":
                        response["length"] = value.decode("latin-1")
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        except Exception:
            # 未处理异常由最外层错误处理返回 500
            if response["status"] is None:
                response["status"] = 500
            raise
        finally:
            access_logger.info(format_common_log(scope, response["status"], response["length"], started))


class StaticFilesMiddleware:
    """静态文件中间件

    前缀下的 GET/HEAD 请求映射到目录中的文件；文件不存在时交给后续处理。
    """

    def __init__(self, app, prefix, directory):
        self.app = app
        self.prefix = "/" + prefix.strip("/")
        self.static = StaticFiles(directory=directory, check_dir=False)

    def _relative_path(self, path: str) -> str | None:
        if path != self.prefix and not path.startswith(self.prefix + "/"):
            return None
        parts = [p for p in path[len(self.prefix):].split("/") if p]
        if not parts:
            return None
        return os.path.normpath(os.path.join(*parts))

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http" or scope["method"] not in ("GET", "HEAD"):
            await self.app(scope, receive, send)
            return

        relative = self._relative_path(scope["path"])
        if relative is None:
            await self.app(scope, receive, send)
            return

        try:
            response = await self.static.get_response(relative, scope)
        except HTTPException as exc:
            if exc.status_code == 404:
                await self.app(scope, receive, send)
                return
            response = create_error_response(status_code=exc.status_code, message=exc.detail)

        await response(scope, receive, send)
