"""日志配置模块

提供日志初始化、访问日志输出和敏感信息脱敏功能。
"""
import logging
import os
import re
import sys
from typing import Any, Dict

from loguru import logger

from server.core.config import Settings

# 日志格式
CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"
# 访问日志已由中间件格式化为 common 格式，原样输出
ACCESS_FORMAT = "{message}"

# 接管这些标准库 logger 的输出
INTERCEPTED_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "pymongo")

# 敏感字段模式（用于脱敏）
SENSITIVE_PATTERNS = [
    # Password
    (re.compile(r'(password|passwd|pwd)["\']?\s*[:=]\s*["\']?([^"\'\s,}]{3,})["\']?', re.IGNORECASE), r'\1=***REDACTED***'),
    # Token
    (re.compile(r'(token|bearer|jwt)["\']?\s*[:=]\s*["\']?([a-zA-Z0-9_\-\.]{20,})["\']?', re.IGNORECASE), r'\1=***REDACTED***'),
    # Authorization Header
    (re.compile(r'(Authorization)["\']?\s*[:=]\s*["\']?(Bearer\s+|Basic\s+)?([a-zA-Z0-9_\-\.=]{16,})["\']?', re.IGNORECASE), r'\1=***REDACTED***'),
    # Database URL with password
    (re.compile(r'(mongodb|mongodb\+srv)://([^:/@\s]+):([^@\s]+)@', re.IGNORECASE), r'\1://\2:***@'),
]


def sanitize_log_message(message: str) -> str:
    """
    对日志消息进行敏感信息脱敏

    Args:
        message: 原始日志消息

    Returns:
        脱敏后的日志消息
    """
    if not message:
        return message

    sanitized = message
    for pattern, replacement in SENSITIVE_PATTERNS:
        sanitized = pattern.sub(replacement, sanitized)

    return sanitized


def sanitize_dict(data: Dict[str, Any], sensitive_keys: set = None) -> Dict[str, Any]:
    """对字典数据进行敏感信息脱敏"""
    if sensitive_keys is None:
        sensitive_keys = {
            'password', 'passwd', 'pwd', 'secret', 'token',
            'authorization', 'credential', 'credentials'
        }

    if not isinstance(data, dict):
        return data

    result = {}
    for key, value in data.items():
        key_lower = key.lower()
        if any(sk in key_lower for sk in sensitive_keys):
            result[key] = '***REDACTED***'
        elif isinstance(value, dict):
            result[key] = sanitize_dict(value, sensitive_keys)
        elif isinstance(value, str):
            result[key] = sanitize_log_message(value)
        else:
            result[key] = value

    return result


class SanitizingFilter:
    """日志脱敏过滤器"""

    def __call__(self, record: Dict[str, Any]) -> bool:
        if 'message' in record:
            record['message'] = sanitize_log_message(record['message'])

        if 'extra' in record and isinstance(record['extra'], dict):
            record['extra'] = sanitize_dict(record['extra'])

        return True


class InterceptHandler(logging.Handler):
    """将标准库 logging 记录转发到 loguru"""

    def emit(self, record):
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def _is_access_record(record) -> bool:
    return bool(record["extra"].get("access"))


def _is_startup_record(record) -> bool:
    return bool(record["extra"].get("startup"))


def setup_logging(settings: Settings) -> None:
    """初始化日志系统，包含敏感信息脱敏"""
    logger.remove()

    sanitizing_filter = SanitizingFilter()

    # 控制台输出（带脱敏），访问日志和启动日志走单独的 sink
    logger.add(
        sys.stdout,
        format=CONSOLE_FORMAT,
        level=settings.LOG_LEVEL,
        colorize=True,
        filter=lambda record: (
            not _is_access_record(record) and not _is_startup_record(record) and sanitizing_filter(record)
        ),
    )

    # 启动日志（端口绑定、数据库连接失败）不受 LOG_LEVEL 限制
    logger.add(
        sys.stdout,
        format=CONSOLE_FORMAT,
        level="INFO",
        colorize=True,
        filter=lambda record: _is_startup_record(record) and sanitizing_filter(record),
    )

    if settings.ACCESS_LOG:
        logger.add(
            sys.stdout,
            format=ACCESS_FORMAT,
            level="INFO",
            colorize=False,
            filter=_is_access_record,
        )

    # 文件输出（带脱敏）
    if settings.LOG_TO_FILE:
        log_dir = os.path.dirname(settings.LOG_FILE_PATH)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)

        logger.add(
            settings.LOG_FILE_PATH,
            format=FILE_FORMAT,
            level=settings.LOG_LEVEL,
            rotation="500 MB",
            retention="30 days",
            compression="zip",
            encoding="utf-8",
            enqueue=True,
            filter=sanitizing_filter,
        )

    for name in INTERCEPTED_LOGGERS:
        std_logger = logging.getLogger(name)
        std_logger.handlers = [InterceptHandler()]
        std_logger.propagate = False

    logger.debug(f"日志初始化完成: level={settings.LOG_LEVEL}, file={settings.LOG_TO_FILE}, sanitize=True")


access_logger = logger.bind(access=True)
startup_logger = logger.bind(startup=True)
