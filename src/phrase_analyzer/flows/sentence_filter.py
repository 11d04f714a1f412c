"""Sentence filter stage: is the phrase one complete English sentence?"""

from __future__ import annotations

import re
from typing import Any, Iterable, Mapping, Optional

from pydantic import ValidationError

from ..errors import AnalysisError, ErrorClassifier, StageError, StructuredOutputError
from ..logging import get_logger
from ..models.analysis import FilterInput, FilterMetadata, FilterResult
from ..models.common import Complexity, Step, ValidationResult, issues_from_error, strict_parse
from ..providers import AIProviderManager, RetryStats
from . import parse_json_object
from .prompts import filter_prompt

log = get_logger("sentence_filter")

# 英字・数字・空白・基本的な句読点のみ許可
_ALLOWED_TEXT = re.compile(r"^[A-Za-z0-9\s.,!?'\"()\-]+$")
_SENTENCE_END = re.compile(r"[.!?]+")


def _describe(phrase: str) -> FilterMetadata:
    words = phrase.split()
    sentences = [part for part in _SENTENCE_END.split(phrase) if part.strip()]
    if len(words) <= 6:
        complexity = Complexity.simple
    elif len(words) <= 15:
        complexity = Complexity.medium
    else:
        complexity = Complexity.complex
    return FilterMetadata(
        detected_language="en",
        word_count=len(words),
        sentence_count=max(1, len(sentences)),
        complexity=complexity,
    )


class SentenceFilterAgent:
    """Validate that a phrase is a single, complete English sentence.

    明らかに不正な入力（空、長すぎる、英文で使わない文字を含む）はモデルを
    呼ばずに決定的に却下する。それ以外は 1 回のモデル呼出し（ゲートウェイの
    再試行付き）で判定し、抽出した JSON をスキーマで検証してから返す。
    失敗は分類済みの `StageError`（step=filter）として送出する。
    """

    def __init__(
        self,
        provider: AIProviderManager,
        *,
        classifier: ErrorClassifier | None = None,
        max_length: int = 500,
        confidence_threshold: float = 0.7,
    ) -> None:
        self._provider = provider
        self._classifier = classifier or ErrorClassifier()
        self._max_length = max_length
        self._confidence_threshold = confidence_threshold

    def _prefilter(self, payload: FilterInput) -> Optional[FilterResult]:
        phrase = payload.english_phrase
        reason: str | None = None
        if not phrase:
            reason = "English phrase is empty"
        elif len(phrase) > self._max_length:
            reason = f"English phrase is too long (maximum {self._max_length} characters)"
        elif payload.user_translation and len(payload.user_translation) > self._max_length:
            reason = f"Translation is too long (maximum {self._max_length} characters)"
        elif not _ALLOWED_TEXT.match(phrase):
            reason = "English phrase contains characters that are not used in English text"
        if reason is None:
            return None
        return FilterResult(is_valid=False, reason=reason, cleaned_sentence=None, confidence=1.0)

    def _parse(self, raw: str) -> FilterResult:
        data = parse_json_object(raw, source="sentence filter")
        try:
            result = FilterResult.model_validate(data)
        except ValidationError as exc:
            summary = ValidationResult(issues=issues_from_error(exc)).summary()
            raise StructuredOutputError(f"Filter response does not match expected schema: {summary}") from exc
        if result.is_valid and result.metadata is None:
            result = result.model_copy(update={"metadata": _describe(result.cleaned_sentence or "")})
        return result

    def filter_sentence(self, data: FilterInput | Mapping[str, Any]) -> FilterResult:
        try:
            payload = strict_parse(FilterInput, data)
        except ValidationError as exc:
            summary = ValidationResult(issues=issues_from_error(exc)).summary()
            raise StageError(
                self._classifier.validation_error(Step.filter, f"Invalid filter input: {summary}")
            ) from exc

        log.debug(
            "stage_enter",
            action="filter_sentence",
            phrase_chars=len(payload.english_phrase),
            has_translation=bool(payload.user_translation),
            has_context=bool(payload.context),
        )
        rejected = self._prefilter(payload)
        if rejected is not None:
            log.info("stage_exit", action="filter_sentence", outcome="prefilter_rejected", reason=rejected.reason)
            return rejected

        prompt = filter_prompt(payload.english_phrase, payload.user_translation, payload.context)
        stats = RetryStats()
        try:
            model = self._provider.get_model()
            result = self._provider.execute_with_retry(
                lambda: self._parse(model.complete(prompt)),
                "sentence_filter",
                stats=stats,
            )
        except Exception as exc:
            raise StageError(
                self._classifier.classify(exc, Step.filter, context={"attempts": stats.attempts})
            ) from exc

        log.info(
            "stage_exit",
            action="filter_sentence",
            outcome="valid" if result.is_valid else "invalid",
            confidence=result.confidence,
            attempts=stats.attempts,
        )
        return result

    def quick_validate(self, english_phrase: str) -> bool:
        """Best-effort check used by health probes; never raises."""

        try:
            result = self.filter_sentence(FilterInput(english_phrase=english_phrase))
        except (StageError, AnalysisError, ValidationError) as exc:
            log.warning("quick_validate_failed", action="quick_validate", error=str(exc)[:200])
            return False
        return result.is_valid and result.confidence > self._confidence_threshold

    def filter_batch(self, inputs: Iterable[FilterInput | Mapping[str, Any]]) -> list[FilterResult]:
        """Filter each input in order; a failed item becomes an invalid result."""

        results: list[FilterResult] = []
        for index, item in enumerate(inputs):
            try:
                results.append(self.filter_sentence(item))
            except StageError as exc:
                log.warning(
                    "batch_item_failed",
                    action="filter_batch",
                    index=index,
                    error_type=exc.detail.type.value,
                )
                results.append(
                    FilterResult(
                        is_valid=False,
                        reason=f"Processing failed: {exc.detail.message}",
                        cleaned_sentence=None,
                        confidence=0.0,
                    )
                )
        return results
