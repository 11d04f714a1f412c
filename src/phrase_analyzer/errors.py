"""Typed failures and their mapping onto the public error taxonomy.

ゲートウェイ/各ステージ内部では型付き例外で失敗を表現し、公開境界では
`ErrorDetail` に分類して返す。分類は型付き例外を最優先し、型を持たない
不透明な例外のみメッセージのキーワード照合にフォールバックする。
"""

from __future__ import annotations

from concurrent.futures import TimeoutError as FuturesTimeout
from datetime import UTC, datetime
from typing import Any, Optional

from pydantic import ValidationError

from .logging import get_logger
from .messages import message_for
from .models.common import ErrorType, Step
from .models.request import ErrorDetail

DEFAULT_BASE_DELAY_MS = 1000
DEFAULT_MAX_DELAY_MS = 30000

log = get_logger("error_classifier")


class AnalysisError(Exception):
    """Base class for failures raised inside the analysis core."""

    error_type: ErrorType = ErrorType.UNKNOWN
    retryable: bool = True

    def __init__(
        self,
        message: str = "",
        *,
        error_code: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context


class InputValidationError(AnalysisError):
    error_type = ErrorType.VALIDATION
    retryable = False


class ApiTimeoutError(AnalysisError):
    error_type = ErrorType.API_TIMEOUT


class ApiRateLimitError(AnalysisError):
    error_type = ErrorType.API_RATE_LIMIT


class NetworkError(AnalysisError):
    error_type = ErrorType.NETWORK_ERROR


class ApiError(AnalysisError):
    error_type = ErrorType.API_ERROR


class ParsingError(AnalysisError):
    """The model replied but no JSON object could be extracted."""

    error_type = ErrorType.PARSING_ERROR


class StructuredOutputError(AnalysisError):
    """JSON was extracted but does not match the expected schema."""

    error_type = ErrorType.STRUCTURED_OUTPUT_ERROR


class ProviderConfigError(ApiError):
    """The model client cannot be constructed (e.g. missing credential)."""

    retryable = False


class StageError(Exception):
    """Carries an already classified `ErrorDetail` out of a pipeline stage."""

    def __init__(self, detail: ErrorDetail) -> None:
        super().__init__(detail.message)
        self.detail = detail


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def make_error_detail(
    step: Step,
    error_type: ErrorType,
    message: str,
    *,
    retryable: Optional[bool] = None,
    error_code: str | None = None,
    context: dict[str, Any] | None = None,
) -> ErrorDetail:
    """Build an `ErrorDetail` with the localized message for ``error_type``.

    retryable を省略した場合は validation 以外を true とする。
    validation に true を指定しても false に矯正する。
    """

    entry = message_for(error_type)
    if error_type is ErrorType.VALIDATION:
        retryable = False
    elif retryable is None:
        retryable = True
    return ErrorDetail(
        step=step,
        type=error_type,
        message=message,
        user_message=entry.description,
        retryable=retryable,
        suggested_action=entry.action,
        timestamp=_now_iso(),
        error_code=error_code,
        context=context,
    )


def retry_delay_ms(
    error_type: ErrorType,
    attempt: int,
    *,
    base_ms: int = DEFAULT_BASE_DELAY_MS,
    max_ms: int = DEFAULT_MAX_DELAY_MS,
) -> int:
    """Backoff before the next attempt (``attempt`` is 1-based).

    base × 2^(attempt-1)、rate limit はさらに ×2、上限 max_ms。
    validation は再試行しないため 0。
    """

    if error_type is ErrorType.VALIDATION:
        return 0
    exponent = max(0, attempt - 1)
    delay = base_ms * (2**exponent)
    if error_type is ErrorType.API_RATE_LIMIT:
        delay *= 2
    return int(min(delay, max_ms))


# キーワード照合は先勝ち。順序を変えると分類結果が変わる
_KEYWORD_RULES: tuple[tuple[ErrorType, tuple[str, ...]], ...] = (
    (ErrorType.API_TIMEOUT, ("timeout", "timed out")),
    (ErrorType.API_RATE_LIMIT, ("rate limit", "ratelimit", "429", "too many requests")),
    (ErrorType.NETWORK_ERROR, ("network", "econnrefused", "connection refused", "enotfound")),
    (ErrorType.VALIDATION, ("validation", "invalid")),
)


class ErrorClassifier:
    """Map any caught failure onto exactly one `ErrorDetail`."""

    def __init__(
        self,
        *,
        base_delay_ms: int = DEFAULT_BASE_DELAY_MS,
        max_delay_ms: int = DEFAULT_MAX_DELAY_MS,
    ) -> None:
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms

    def classify(
        self,
        exc: BaseException,
        step: Step,
        *,
        context: dict[str, Any] | None = None,
    ) -> ErrorDetail:
        if isinstance(exc, StageError):
            return exc.detail

        message = str(exc) or ""
        error_type, retryable, error_code = self._resolve(exc, message)
        detail = make_error_detail(
            step,
            error_type,
            message or type(exc).__name__,
            retryable=retryable,
            error_code=error_code,
            context=context,
        )
        log.error(
            "error_classified",
            action="classify",
            step=step.value,
            error_type=detail.type.value,
            retryable=detail.retryable,
            exception=type(exc).__name__,
            error=message[:500],
        )
        return detail

    def _resolve(self, exc: BaseException, message: str) -> tuple[ErrorType, Optional[bool], str | None]:
        if isinstance(exc, AnalysisError):
            return exc.error_type, exc.retryable, exc.error_code
        if isinstance(exc, (FuturesTimeout, TimeoutError)):
            return ErrorType.API_TIMEOUT, None, None
        if isinstance(exc, ConnectionError):
            return ErrorType.NETWORK_ERROR, None, None
        if isinstance(exc, ValidationError):
            return ErrorType.VALIDATION, False, None

        lowered = message.strip().lower()
        if not lowered:
            return ErrorType.UNKNOWN, None, None
        for error_type, keywords in _KEYWORD_RULES:
            if any(keyword in lowered for keyword in keywords):
                return error_type, None, None
        return ErrorType.API_ERROR, None, None

    def error_type_of(self, exc: BaseException) -> ErrorType:
        """Classify without building a detail or logging; used for backoff."""

        if isinstance(exc, StageError):
            return exc.detail.type
        return self._resolve(exc, str(exc) or "")[0]

    @staticmethod
    def is_retryable(detail: ErrorDetail) -> bool:
        return detail.retryable and detail.type is not ErrorType.VALIDATION

    def retry_delay_ms(self, error_type: ErrorType, attempt: int) -> int:
        return retry_delay_ms(
            error_type,
            attempt,
            base_ms=self.base_delay_ms,
            max_ms=self.max_delay_ms,
        )

    def validation_error(
        self,
        step: Step,
        message: str,
        *,
        context: dict[str, Any] | None = None,
    ) -> ErrorDetail:
        detail = make_error_detail(step, ErrorType.VALIDATION, message, context=context)
        log.info(
            "error_classified",
            action="validation",
            step=step.value,
            error_type=detail.type.value,
            retryable=False,
            error=message[:500],
        )
        return detail
