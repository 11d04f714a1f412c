"""Analyzer stage: full structured critique of a validated sentence."""

from __future__ import annotations

import time
from datetime import UTC, datetime
from typing import Any, Iterable, Mapping, Optional

from pydantic import ValidationError

from .. import __version__
from ..errors import ErrorClassifier, StageError, StructuredOutputError
from ..logging import get_logger
from ..models.analysis import (
    AnalysisMetadata,
    AnalyzedSentence,
    AnalyzerInput,
    AnalyzerResult,
    BatchAnalysisResult,
    BatchItemError,
    TranslationComparison,
)
from ..models.common import CamelModel, Correctness, Step, ValidationResult, issues_from_error, strict_parse
from ..providers import AIProviderManager, RetryStats
from . import parse_json_object
from .prompts import analyzer_prompt, quick_check_prompt

log = get_logger("analyzer")


class _QuickVerdict(CamelModel):
    correctness: Correctness


def _schema_error(prefix: str, exc: ValidationError) -> StructuredOutputError:
    summary = ValidationResult(issues=issues_from_error(exc)).summary()
    return StructuredOutputError(f"{prefix}: {summary}")


def translation_feedback(sentence: str, analysis: AnalyzerResult) -> str:
    """Short English feedback on the learner's translation attempt."""

    if analysis.correctness is Correctness.correct:
        return (
            f'Your translation captures the meaning well. The English sentence "{sentence}" '
            "is grammatically correct and natural."
        )
    if analysis.correctness is Correctness.partially_correct:
        return f"Your translation is on the right track. The English sentence has minor issues: {analysis.errors}"
    feedback = f"Your translation idea is good, but the English sentence needs improvement: {analysis.errors}"
    if analysis.alternatives:
        feedback += f". Consider these alternatives: {', '.join(analysis.alternatives)}"
    return feedback


class AnalyzerAgent:
    """Produce grammar, vocabulary and context analysis for one sentence.

    モデル応答は JSON 抽出 → `AnalyzerResult` のスキーマ検証を通過した場合のみ
    採用する。形が合わない応答は補完せず `StructuredOutputError` とする。
    成功時はモデル名・所要時間・確信度・再試行回数をメタデータとして付与する。
    """

    def __init__(
        self,
        provider: AIProviderManager,
        *,
        classifier: ErrorClassifier | None = None,
        version: str = __version__,
    ) -> None:
        self._provider = provider
        self._classifier = classifier or ErrorClassifier()
        self._version = version

    @property
    def provider(self) -> AIProviderManager:
        return self._provider

    def _parse(self, raw: str) -> AnalyzerResult:
        data = parse_json_object(raw, source="analyzer")
        try:
            return AnalyzerResult.model_validate(data)
        except ValidationError as exc:
            raise _schema_error("Analyzer response does not match expected schema", exc) from exc

    def analyze_sentence(self, data: AnalyzerInput | Mapping[str, Any]) -> AnalyzedSentence:
        try:
            payload = strict_parse(AnalyzerInput, data)
        except ValidationError as exc:
            summary = ValidationResult(issues=issues_from_error(exc)).summary()
            raise StageError(
                self._classifier.validation_error(Step.analyze, f"Invalid analyzer input: {summary}")
            ) from exc

        log.debug(
            "stage_enter",
            action="analyze_sentence",
            sentence_chars=len(payload.sentence),
            has_translation=bool(payload.user_translation),
            has_context=bool(payload.context),
        )
        prompt = analyzer_prompt(payload.sentence, payload.user_translation, payload.context)
        stats = RetryStats()
        started = time.perf_counter()
        try:
            model = self._provider.get_model()
            result = self._provider.execute_with_retry(
                lambda: self._parse(model.complete(prompt)),
                "analyzer",
                stats=stats,
            )
        except Exception as exc:
            raise StageError(
                self._classifier.classify(exc, Step.analyze, context={"attempts": stats.attempts})
            ) from exc

        elapsed_ms = (time.perf_counter() - started) * 1000.0
        metadata = AnalysisMetadata(
            timestamp=datetime.now(UTC).isoformat(),
            processing_time_ms=round(elapsed_ms, 2),
            model_used=self._provider.model_name,
            confidence=result.confidence,
            retry_count=stats.retries,
            version=self._version,
        )
        log.info(
            "stage_exit",
            action="analyze_sentence",
            correctness=result.correctness.value,
            overall_star_rating=result.overall_star_rating,
            alternatives=len(result.alternatives),
            latency_ms=metadata.processing_time_ms,
            retries=stats.retries,
        )
        return AnalyzedSentence(result=result, metadata=metadata)

    def quick_check(self, sentence: str) -> Optional[Correctness]:
        """Single lightweight correctness call for health probes.

        失敗時は None を返し、例外は送出しない。
        """

        def _call() -> Correctness:
            raw = self._provider.get_model().complete(quick_check_prompt(sentence))
            data = parse_json_object(raw, source="quick check")
            try:
                return _QuickVerdict.model_validate(data).correctness
            except ValidationError as exc:
                raise _schema_error("Quick check response does not match expected schema", exc) from exc

        try:
            return self._provider.execute_with_retry(_call, "analyzer_quick_check", max_attempts=1)
        except Exception as exc:
            log.warning("quick_check_failed", action="quick_check", error_type=type(exc).__name__, error=str(exc)[:200])
            return None

    def get_alternatives(self, sentence: str, context: str | None = None) -> list[str]:
        try:
            analyzed = self.analyze_sentence(AnalyzerInput(sentence=sentence, context=context))
        except (StageError, ValidationError) as exc:
            log.warning("get_alternatives_failed", action="get_alternatives", error=str(exc)[:200])
            return []
        return list(analyzed.result.alternatives)

    def compare_translation(
        self,
        sentence: str,
        user_translation: str,
        context: str | None = None,
    ) -> TranslationComparison:
        analyzed = self.analyze_sentence(
            {"sentence": sentence, "user_translation": user_translation, "context": context}
        )
        return TranslationComparison(
            analysis=analyzed.result,
            translation_feedback=translation_feedback(sentence, analyzed.result),
        )

    def analyze_batch(self, inputs: Iterable[AnalyzerInput | Mapping[str, Any]]) -> BatchAnalysisResult:
        """Analyze inputs one after another, isolating per-item failures."""

        batch = BatchAnalysisResult()
        for index, item in enumerate(inputs):
            try:
                batch.results.append(self.analyze_sentence(item))
            except StageError as exc:
                if isinstance(item, AnalyzerInput):
                    sentence = item.sentence
                elif isinstance(item, Mapping):
                    sentence = str(item.get("sentence", ""))
                else:
                    sentence = str(item)
                batch.errors.append(
                    BatchItemError(
                        index=index,
                        sentence=sentence,
                        error_type=exc.detail.type,
                        message=exc.detail.message,
                    )
                )
                log.warning("batch_item_failed", action="analyze_batch", index=index, error_type=exc.detail.type.value)
        batch.succeeded = len(batch.results)
        batch.failed = len(batch.errors)
        log.info("batch_complete", action="analyze_batch", succeeded=batch.succeeded, failed=batch.failed)
        return batch
