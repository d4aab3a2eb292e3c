"""
Structlog 日志配置

- stdlib logging 与 structlog 共用一条处理链，开发环境彩色输出，其余环境输出 JSON
- 每条日志带上 service / environment
- 渲染前脱敏：支付渠道密钥、webhook 签名、client_secret 等一律替换为 ***
"""
import json
import logging
import re
from typing import Any, List, Mapping

import structlog
from structlog.contextvars import merge_contextvars
from structlog.dev import ConsoleRenderer
from structlog.processors import JSONRenderer, TimeStamper, add_log_level
from structlog.stdlib import ProcessorFormatter

from core.config import settings


REDACTED = "***"

# 键名统一小写、连字符转下划线后比较
SENSITIVE_KEYS = frozenset({
    "client_secret",
    "secret_key",
    "webhook_secret",
    "api_key",
    "password",
    "authorization",
    "stripe_signature",
    "access_token",
    "refresh_token",
})

# Stripe 密钥 / webhook 密钥 / PaymentIntent client_secret 的取值形态
SENSITIVE_VALUE = re.compile(r"\b(?:sk|rk)_(?:live|test)_\w+|\bwhsec_\w+|\bpi_\w+_secret_\w+")

# 只输出 WARNING 及以上的第三方 logger
NOISY_LOGGERS = ("stripe", "kombu", "celery.utils.functional", "aiosqlite")


def _is_sensitive_key(key: Any) -> bool:
    if not isinstance(key, str):
        return False
    normalized = key.lower().replace("-", "_")
    return normalized in SENSITIVE_KEYS or normalized.endswith("_secret")


def _scrub(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {k: REDACTED if _is_sensitive_key(k) else _scrub(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return type(value)(_scrub(v) for v in value)
    if isinstance(value, str):
        return SENSITIVE_VALUE.sub(REDACTED, value)
    return value


def redact_secrets(logger: Any, method_name: str, event_dict: dict) -> dict:
    """structlog processor：按键名与取值形态脱敏（嵌套的 dict/list 一并处理）"""
    for key, value in list(event_dict.items()):
        if _is_sensitive_key(key):
            event_dict[key] = REDACTED
        else:
            event_dict[key] = _scrub(value)
    return event_dict


def add_service_context(logger: Any, method_name: str, event_dict: dict) -> dict:
    """绑定服务名与运行环境；调用方显式传入的同名字段优先"""
    event_dict.setdefault("service", settings.PROJECT_NAME)
    event_dict.setdefault("environment", settings.ENVIRONMENT)
    return event_dict


def get_renderer() -> Any:
    """DEBUG 下用 ConsoleRenderer，否则 JSON（serializer 需兼容 structlog 传入的 default 等参数）"""
    if settings.DEBUG:
        return ConsoleRenderer(colors=True)

    def _dumps(obj, default=None, **kwargs):
        return json.dumps(obj, ensure_ascii=False, default=default, **kwargs)

    return JSONRenderer(serializer=_dumps)


def build_pre_chain() -> List[Any]:
    """structlog 与 stdlib 共用的预处理链，脱敏放在最后以覆盖前面生成的字段"""
    return [
        merge_contextvars,
        add_log_level,
        add_service_context,
        TimeStamper(fmt="iso", utc=True),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        redact_secrets,
    ]


def configure_logging() -> None:
    shared_pre_chain = build_pre_chain()

    structlog.configure(
        processors=[
            *shared_pre_chain,
            ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # stdlib 日志（uvicorn、celery、sqlalchemy）经 foreign_pre_chain 进入同一渲染
    formatter = ProcessorFormatter(
        foreign_pre_chain=shared_pre_chain,
        processors=[
            ProcessorFormatter.remove_processors_meta,
            get_renderer(),
        ],
    )
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


configure_logging()
