"""Logging utilities and sanitisation helpers.

構造化ログの初期化と、機密情報を含むイベントを安全にマスクする
ヘルパーをまとめて提供する。解析パイプラインの各コンポーネントは
`get_logger(component)` で `component` を束縛したロガーを受け取り、
`action` と任意のメタデータをキーワード引数で渡す。
"""

from typing import Any

import logging
import structlog
from structlog import contextvars as structlog_contextvars

from .config import settings


_SENSITIVE_KEYWORDS = ("api_key", "token", "secret", "authorization", "password")
_MASK_PLACEHOLDER = "***"


def _mask_secret_value(raw: object) -> str:
    """Return a masked representation of a secret-like value.

    短い値は `***` に、一定長以上は先頭4文字+末尾4文字だけを残し中間を隠す。
    """

    if raw is None:
        return _MASK_PLACEHOLDER
    text = str(raw).strip()
    if not text or len(text) <= 8:
        return _MASK_PLACEHOLDER
    return f"{text[:4]}…{text[-4:]}"


def _is_sensitive_key(key: str) -> bool:
    lowered = key.lower()
    return any(keyword in lowered for keyword in _SENSITIVE_KEYWORDS)


def _mask_known_literals(value: str, known_secrets: tuple[str, ...]) -> str:
    """Replace known secret literals within the given string."""

    masked = value
    for secret in known_secrets:
        if not secret:
            continue
        masked = masked.replace(secret, _mask_secret_value(secret))
    return masked


def _sanitize_event_dict(
    logger: structlog.types.WrappedLogger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Sanitize sensitive fields before rendering a log event.

    キー名に `api_key`/`token` 等が含まれる場合は値をマスクし、文字列内に
    既知のシークレットリテラルが紛れ込んでいれば置換する。ネストした dict
    も同様に再帰的に処理する。
    """

    known_secrets: tuple[str, ...] = tuple(
        secret for secret in (settings.openai_api_key, settings.langfuse_secret_key) if secret
    )

    def _sanitize_value(value: Any, key_hint: str | None = None) -> Any:
        if isinstance(value, dict):
            return {k: _sanitize_value(v, str(k)) for k, v in value.items()}
        if isinstance(value, str):
            cleaned = _mask_known_literals(value, known_secrets)
            if key_hint and _is_sensitive_key(key_hint):
                return _mask_secret_value(cleaned)
            return cleaned
        if key_hint and _is_sensitive_key(key_hint):
            return _mask_secret_value(value)
        return value

    for key, value in list(event_dict.items()):
        event_dict[key] = _sanitize_value(value, str(key))
    return event_dict


def _resolve_level() -> int:
    # DEBUG は開発環境でのみ出力する
    if settings.is_development:
        return logging.DEBUG
    level = logging.getLevelName(str(settings.log_level).upper())
    if not isinstance(level, int) or level < logging.INFO:
        return logging.INFO
    return level


def configure_logging() -> None:
    """Configure structlog for application-wide logging.

    標準 logging を初期化し、structlog で ISO タイムスタンプと JSON 形式の
    出力を有効化する。DEBUG ログは development 以外では抑止される。
    """
    logging.basicConfig(
        level=_resolve_level(),
        format="%(message)s",
        handlers=[logging.StreamHandler()],
        force=True,
    )
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog_contextvars.merge_contextvars,
            _sanitize_event_dict,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
    )

    # Optional: Sentry integration (enabled if DSN is provided)
    if settings.sentry_dsn:
        try:
            import sentry_sdk  # type: ignore
            from sentry_sdk.integrations.logging import LoggingIntegration  # type: ignore
        except ImportError:
            logger.warning("sentry_unavailable", component="logging", action="configure")
            return
        sentry_logging = LoggingIntegration(level=logging.INFO, event_level=logging.ERROR)
        sentry_sdk.init(dsn=settings.sentry_dsn, integrations=[sentry_logging])


def get_logger(component: str) -> Any:
    """Return a lazily configured logger bound to ``component``."""

    return structlog.get_logger(component=component)


logger = structlog.get_logger()
