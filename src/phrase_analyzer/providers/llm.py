"""Model-call gateway: the OpenAI client wrapper and the retry policy around it."""

from __future__ import annotations

import contextvars
import dataclasses
import hashlib
import threading
import time
from concurrent.futures import TimeoutError as FuturesTimeout
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Callable, Optional, Protocol, TypeVar

import openai

from ..config import Settings
from ..errors import (
    AnalysisError,
    ApiError,
    ApiRateLimitError,
    ApiTimeoutError,
    ErrorClassifier,
    NetworkError,
    ProviderConfigError,
)
from ..logging import get_logger
from ..models.request import ComponentHealth
from ..observability import span, update_span_output
from . import DEFAULT_MAX_WORKERS, _get_llm_executor, _shutdown_llm_executor

T = TypeVar("T")

log = get_logger("ai_provider")


class ChatModel(Protocol):
    """LLM クライアントが実装すべき最小インターフェース。"""

    def complete(self, prompt: str) -> str:  # pragma: no cover - interface definition
        ...


@dataclass(frozen=True)
class ProviderConfig:
    provider: str = "openai"
    model: str = "gpt-4o-mini"
    api_key: Optional[str] = None
    temperature: float = 0.1
    max_tokens: int = 2048
    timeout_ms: int = 30000
    max_retries: int = 3
    base_delay_ms: int = 1000
    max_delay_ms: int = 30000
    max_workers: int = DEFAULT_MAX_WORKERS

    @classmethod
    def from_settings(cls, settings: Settings) -> "ProviderConfig":
        return cls(
            provider=(settings.llm_provider or "").lower(),
            model=settings.llm_model,
            api_key=settings.openai_api_key,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
            timeout_ms=settings.llm_timeout_ms,
            max_retries=settings.llm_max_retries,
            base_delay_ms=settings.retry_base_delay_ms,
            max_delay_ms=settings.retry_max_delay_ms,
            max_workers=settings.llm_max_workers,
        )


@dataclass
class RetryStats:
    """Attempt bookkeeping filled in by `execute_with_retry`."""

    attempts: int = 0
    total_delay_ms: int = 0
    last_error: Optional[str] = None

    @property
    def retries(self) -> int:
        return max(0, self.attempts - 1)


def _prepare_span_input(model: str, prompt: str) -> dict[str, Any]:
    """Langfuse スパンに記録する入力情報を生成する。"""

    return {
        "model": model,
        "prompt_chars": len(prompt),
        "prompt_preview": prompt[:500],
        "prompt_sha256": hashlib.sha256(prompt.encode("utf-8", errors="ignore")).hexdigest(),
    }


class OpenAIChatModel:  # pragma: no cover - オンライン利用が前提
    """OpenAI Chat Completions API を JSON モードで呼び出すラッパー。

    SDK 側の再試行は無効化し、再試行はゲートウェイに一元化する。
    SDK の例外は型付き例外へ変換して分類器に渡す。
    """

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        temperature: float = 0.1,
        max_tokens: int = 2048,
        timeout_ms: int = 30000,
    ) -> None:
        self._client = openai.OpenAI(api_key=api_key, max_retries=0)
        self._model = model
        self._temperature = float(max(0.0, min(2.0, temperature)))
        self._max_tokens = max_tokens
        self._timeout_sec = timeout_ms / 1000.0

    @property
    def model(self) -> str:
        return self._model

    def complete(self, prompt: str) -> str:
        log.info("llm_complete_call", action="complete", model=self._model, prompt_chars=len(prompt))
        with span(
            name="openai.chat.completions.create",
            input=_prepare_span_input(self._model, prompt),
        ) as current_span:
            try:
                resp = self._client.chat.completions.create(
                    model=self._model,
                    messages=[{"role": "user", "content": prompt}],
                    temperature=self._temperature,
                    max_tokens=self._max_tokens,
                    response_format={"type": "json_object"},
                    timeout=self._timeout_sec,
                )
            # APITimeoutError は APIConnectionError のサブクラスなので先に判定する
            except openai.APITimeoutError as exc:
                raise ApiTimeoutError(str(exc) or "OpenAI request timed out") from exc
            except openai.APIConnectionError as exc:
                raise NetworkError(str(exc) or "OpenAI connection failed") from exc
            except openai.RateLimitError as exc:
                raise ApiRateLimitError(str(exc), error_code=str(exc.status_code)) from exc
            except openai.AuthenticationError as exc:
                raise ProviderConfigError(str(exc), error_code=str(exc.status_code)) from exc
            except openai.APIStatusError as exc:
                raise ApiError(str(exc), error_code=str(exc.status_code)) from exc

            content = ""
            if resp.choices:
                content = (resp.choices[0].message.content or "").strip()
            update_span_output(current_span, content)
        log.info("llm_complete_result", action="complete", model=self._model, content_chars=len(content))
        return content


def _default_model_factory(config: ProviderConfig) -> ChatModel:
    if config.provider != "openai":
        raise ProviderConfigError(f"Unknown LLM provider: {config.provider}")
    if not config.api_key:
        raise ProviderConfigError("OPENAI_API_KEY is required for LLM_PROVIDER=openai")
    return OpenAIChatModel(
        api_key=config.api_key,
        model=config.model,
        temperature=config.temperature,
        max_tokens=config.max_tokens,
        timeout_ms=config.timeout_ms,
    )


class AIProviderManager:
    """Own the model client and run operations under the retry policy.

    - クライアントは初回利用時に生成しメモ化する（スレッドセーフ）
    - 各試行は `timeout_ms` の明示的な期限付きでスレッドプール上で実行する
    - 失敗時は指数バックオフで待機し、再試行不能な失敗で即座に打ち切る
    - 試行を使い切った場合は最後の例外をそのまま再送出する
    """

    def __init__(
        self,
        config: ProviderConfig | None = None,
        *,
        model_factory: Callable[[ProviderConfig], ChatModel] | None = None,
        sleep: Callable[[float], None] = time.sleep,
        classifier: ErrorClassifier | None = None,
    ) -> None:
        self._config = config or ProviderConfig()
        self._model_factory = model_factory or _default_model_factory
        self._sleep = sleep
        self._classifier = classifier or ErrorClassifier(
            base_delay_ms=self._config.base_delay_ms,
            max_delay_ms=self._config.max_delay_ms,
        )
        self._model: ChatModel | None = None
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> "AIProviderManager":
        return cls(ProviderConfig.from_settings(settings), **kwargs)

    @property
    def config(self) -> ProviderConfig:
        return self._config

    @property
    def model_name(self) -> str:
        return self._config.model

    def get_model(self) -> ChatModel:
        """Return the memoized client, creating it on first use.

        認証情報の欠落などで生成できない場合は `ProviderConfigError` を
        そのまま送出する（再試行しない）。
        """

        if self._model is not None:
            return self._model
        with self._lock:
            if self._model is None:
                try:
                    self._model = self._model_factory(self._config)
                except ProviderConfigError as exc:
                    log.error(
                        "llm_provider_init_failed",
                        action="get_model",
                        provider=self._config.provider,
                        error=str(exc),
                    )
                    raise
                log.info(
                    "llm_provider_select",
                    action="get_model",
                    provider=self._config.provider,
                    model=self._config.model,
                )
            return self._model

    def complete(self, prompt: str, label: str, *, stats: RetryStats | None = None) -> str:
        """Send ``prompt`` to the model under the retry policy."""

        model = self.get_model()
        return self.execute_with_retry(lambda: model.complete(prompt), label, stats=stats)

    def execute_with_retry(
        self,
        operation: Callable[[], T],
        label: str,
        max_attempts: int | None = None,
        stats: RetryStats | None = None,
    ) -> T:
        attempts = max(1, max_attempts if max_attempts is not None else self._config.max_retries)
        timeout_sec = self._config.timeout_ms / 1000.0
        executor = _get_llm_executor(self._config.max_workers)
        last_exc: BaseException | None = None

        for attempt in range(1, attempts + 1):
            if stats is not None:
                stats.attempts = attempt
            log.debug("model_call_attempt", action=label, attempt=attempt, max_attempts=attempts)
            ctx = contextvars.copy_context()
            started = threading.Event()

            def run_attempt(ctx=ctx, started=started):
                started.set()
                return ctx.run(operation)

            future = executor.submit(run_attempt)
            future.add_done_callback(lambda _f, started=started: started.set())
            try:
                # 待ち行列での待機は期限に含めない
                started.wait()
                result = future.result(timeout=timeout_sec)
            except FuturesTimeout:
                future.cancel()
                last_exc = ApiTimeoutError(
                    f"{label} timeout after {self._config.timeout_ms}ms (attempt {attempt})"
                )
            except Exception as exc:
                last_exc = exc
            else:
                log.info("model_call_succeeded", action=label, attempt=attempt, max_attempts=attempts)
                return result

            retryable = not (isinstance(last_exc, AnalysisError) and not last_exc.retryable)
            if stats is not None:
                stats.last_error = str(last_exc)[:500]
            log.warning(
                "model_call_failed",
                action=label,
                attempt=attempt,
                max_attempts=attempts,
                retryable=retryable,
                error_type=type(last_exc).__name__,
                error=str(last_exc)[:500],
            )
            if not retryable or attempt >= attempts:
                break
            delay_ms = self._classifier.retry_delay_ms(
                self._classifier.error_type_of(last_exc), attempt
            )
            if stats is not None:
                stats.total_delay_ms += delay_ms
            log.info("model_call_backoff", action=label, attempt=attempt, delay_ms=delay_ms)
            self._sleep(delay_ms / 1000.0)

        log.error(
            "model_call_failed_all_retries",
            action=label,
            attempts=attempts,
            error_type=type(last_exc).__name__ if last_exc else None,
            error=str(last_exc)[:500] if last_exc else None,
        )
        assert last_exc is not None
        raise last_exc

    def get_config(self) -> dict[str, Any]:
        """Describe the active configuration without exposing the credential."""

        cfg = dataclasses.asdict(self._config)
        cfg.pop("api_key", None)
        cfg["has_api_key"] = bool(self._config.api_key)
        return cfg

    def update_config(self, **changes: Any) -> ProviderConfig:
        """Replace configuration fields and drop the memoized client."""

        with self._lock:
            self._config = dataclasses.replace(self._config, **changes)
            self._model = None
            self._classifier = ErrorClassifier(
                base_delay_ms=self._config.base_delay_ms,
                max_delay_ms=self._config.max_delay_ms,
            )
        log.info("llm_provider_config_updated", action="update_config", fields=sorted(changes))
        return self._config

    def health_check(self) -> ComponentHealth:
        """Check that the client can be constructed; no model call is made."""

        now = datetime.now(UTC).isoformat()
        try:
            self.get_model()
        except ProviderConfigError as exc:
            return ComponentHealth(is_healthy=False, last_check=now, version=self._config.model, error=str(exc))
        return ComponentHealth(is_healthy=True, last_check=now, version=self._config.model)

    def shutdown(self) -> None:
        """共有スレッドプールとメモ化したクライアントを解放する。"""

        _shutdown_llm_executor()
        with self._lock:
            self._model = None
