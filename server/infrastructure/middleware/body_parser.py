"""请求体解析中间件

解析结果写入 ``request.state.body``，原始字节会回放给下游，处理函数仍可读取请求体。
"""
import re
from urllib.parse import parse_qsl

import ujson
from starlette.datastructures import Headers

from server.core.exceptions import create_error_response

JSON_MEDIA_TYPE = "application/json"
URLENCODED_MEDIA_TYPE = "application/x-www-form-urlencoded"

# 已解析标记，后续解析阶段据此跳过
PARSED_FLAG = "_body_parsed"

_KEY_SEGMENT = re.compile(r"\[([^\[\]]*)\]")


class BodyParseError(Exception):
    def __init__(self, status_code, message):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def parse_json(text: str, strict: bool = True):
    """解析 JSON 请求体；strict 模式下只接受对象和数组"""
    stripped = text.lstrip()
    if not stripped:
        return {}
    if strict and stripped[0] not in "{[":
        raise BodyParseError(400, f"Unexpected token {stripped[0]!r} in JSON at position 0")
    try:
        return ujson.loads(text)
    except ujson.JSONDecodeError as e:
        raise BodyParseError(400, f"Invalid JSON: {e}")


def _split_key(key: str) -> list:
    bracket = key.find("[")
    if bracket <= 0:
        return [key]
    rest = key[bracket:]
    segments = _KEY_SEGMENT.findall(rest)
    if "".join(f"[{s}]" for s in segments) != rest:
        return [key]
    return [key[:bracket], *segments]


def _assign(target, path, value):
    key, rest = path[0], path[1:]

    if isinstance(target, list):
        if rest:
            child = [] if rest[0] == "" else {}
            target.append(child)
            _assign(child, rest, value)
        else:
            target.append(value)
        return

    if not rest:
        if key in target:
            current = target[key]
            target[key] = current + [value] if isinstance(current, list) else [current, value]
        else:
            target[key] = value
        return

    child = target.get(key)
    if not isinstance(child, (dict, list)):
        child = [] if rest[0] == "" else {}
        target[key] = child
    _assign(child, rest, value)


def parse_urlencoded(text: str, parameter_limit: int = 1000) -> dict:
    """解析 URL 编码请求体，支持 ``a[b]=1`` 和 ``a[]=1`` 形式的嵌套键"""
    if text.count("&") + 1 > parameter_limit:
        raise BodyParseError(413, "too many parameters")

    result = {}
    for key, value in parse_qsl(text, keep_blank_values=True):
        _assign(result, _split_key(key), value)
    return result


class BodyParserMiddleware:
    """按 Content-Type 解析请求体，超出大小限制返回 413"""

    def __init__(self, app, media_types=(JSON_MEDIA_TYPE,), limit=100 * 1024, strict=True, parameter_limit=1000):
        self.app = app
        self.media_types = frozenset(media_types)
        self.limit = limit
        self.strict = strict
        self.parameter_limit = parameter_limit

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        state = scope.setdefault("state", {})
        state.setdefault("body", {})
        if state.get(PARSED_FLAG):
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)
        content_type = headers.get("content-type", "")
        media_type, _, params = content_type.partition(";")
        media_type = media_type.strip().lower()
        has_body = "transfer-encoding" in headers or "content-length" in headers

        if not has_body or media_type not in self.media_types:
            await self.app(scope, receive, send)
            return

        try:
            charset = self._charset(params)
            body = await self._read_body(headers, receive)
            state["body"] = self._parse(media_type, body.decode(charset))
        except BodyParseError as e:
            response = create_error_response(status_code=e.status_code, message=e.message)
            await response(scope, receive, send)
            return
        except UnicodeDecodeError:
            response = create_error_response(status_code=400, message="invalid request body encoding")
            await response(scope, receive, send)
            return
        except LookupError:
            response = create_error_response(status_code=415, message="unsupported charset")
            await response(scope, receive, send)
            return

        state[PARSED_FLAG] = True

        replayed = False

        async def replay():
            nonlocal replayed
            if not replayed:
                replayed = True
                return {"type": "http.request", "body": body, "more_body": False}
            return await receive()

        await self.app(scope, replay, send)

    @staticmethod
    def _charset(params: str) -> str:
        for param in params.split(";"):
            name, _, value = param.partition("=")
            if name.strip().lower() == "charset":
                charset = value.strip().strip('"').lower()
                if not charset.startswith("utf-"):
                    raise BodyParseError(415, f'unsupported charset "{charset.upper()}"')
                return charset
        return "utf-8"

    async def _read_body(self, headers, receive) -> bytes:
        declared = headers.get("content-length")
        if declared is not None and declared.isdigit() and int(declared) > self.limit:
            raise BodyParseError(413, "request entity too large")

        chunks = []
        received = 0
        more_body = True
        while more_body:
            message = await receive()
            if message["type"] == "http.disconnect":
                raise BodyParseError(400, "request aborted")
            chunk = message.get("body", b"")
            received += len(chunk)
            if received > self.limit:
                raise BodyParseError(413, "request entity too large")
            chunks.append(chunk)
            more_body = message.get("more_body", False)
        return b"".join(chunks)

    def _parse(self, media_type: str, text: str):
        if media_type == JSON_MEDIA_TYPE:
            return parse_json(text, strict=self.strict)
        return parse_urlencoded(text, parameter_limit=self.parameter_limit)


def get_request_body(request):
    """路由中获取已解析的请求体"""
    return getattr(request.state, "body", {})
