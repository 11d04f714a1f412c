"""Workflow orchestrator: filter → analyze on a LangGraph state graph."""

from __future__ import annotations

import operator
import time
import uuid
from datetime import UTC, datetime
from typing import Annotated, Any, Mapping, Optional, TypedDict

from pydantic import ValidationError

from .. import __version__
from ..errors import ErrorClassifier, StageError, make_error_detail
from ..logging import get_logger
from ..models.analysis import AnalysisMetadata, AnalyzedSentence, AnalyzerInput, FilterInput, FilterResult
from ..models.common import ErrorType, Step, ValidationResult, WorkflowStep, issues_from_error, strict_parse
from ..models.request import (
    MAX_INPUT_LENGTH,
    AnalysisRequest,
    AnalysisResponse,
    ComponentHealth,
    ErrorDetail,
    ProcessingStep,
    WorkflowConfig,
    WorkflowHealth,
    WorkflowMetadata,
    WorkflowState,
)
from ..providers import AIProviderManager
from . import END, create_state_graph
from .analyzer import AnalyzerAgent
from .sentence_filter import SentenceFilterAgent

log = get_logger("workflow")

HEALTH_PROBE_PHRASE = "Hello world"

_FILTER_NODE = "filter_sentence"
_ANALYZE_NODE = "analyze_sentence"


class _GraphState(TypedDict, total=False):
    request: AnalysisRequest
    filter_result: FilterResult
    analyzed: AnalyzedSentence
    error: ErrorDetail
    current_step: WorkflowStep
    # ノードごとに 1 件ずつ追記される
    steps: Annotated[list[ProcessingStep], operator.add]


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def _trace(step: str, started: float, success: bool) -> list[ProcessingStep]:
    return [
        ProcessingStep(
            step=step,
            timestamp=_now_iso(),
            duration_ms=round((time.perf_counter() - started) * 1000.0, 2),
            success=success,
        )
    ]


class EnglishAnalysisWorkflow:
    """Run one request through the sentence filter and, if it passes, the analyzer.

    - 状態遷移: filter → analyze → complete、いずれの段階からも error へ遷移
    - フィルタで無効と判定された場合はアナライザを呼ばない（fail-fast）
    - `execute` は例外を送出せず、常に成功/失敗のレスポンスを返す
    """

    def __init__(
        self,
        filter_agent: SentenceFilterAgent,
        analyzer_agent: AnalyzerAgent,
        *,
        classifier: ErrorClassifier | None = None,
        version: str = __version__,
    ) -> None:
        self._filter = filter_agent
        self._analyzer = analyzer_agent
        self._classifier = classifier or ErrorClassifier()
        self._version = version
        self._graph = self._build_graph()
        log.info("workflow_initialized", action="init", version=version)

    @property
    def provider(self) -> AIProviderManager:
        return self._analyzer.provider

    def _build_graph(self) -> Any:
        graph = create_state_graph(_GraphState)
        graph.add_node(_FILTER_NODE, self._filter_node)
        graph.add_node(_ANALYZE_NODE, self._analyze_node)
        graph.set_entry_point(_FILTER_NODE)
        graph.add_conditional_edges(
            _FILTER_NODE,
            self._route_after_filter,
            {_ANALYZE_NODE: _ANALYZE_NODE, END: END},
        )
        graph.add_edge(_ANALYZE_NODE, END)
        return graph.compile()

    # --- graph nodes ---

    def _filter_node(self, state: _GraphState) -> dict[str, Any]:
        request = state["request"]
        started = time.perf_counter()
        try:
            result = self._filter.filter_sentence(
                FilterInput(
                    english_phrase=request.english_phrase,
                    user_translation=request.user_translation,
                    context=request.context,
                )
            )
        except StageError as exc:
            return {
                "error": exc.detail,
                "current_step": WorkflowStep.error,
                "steps": _trace("filter", started, False),
            }

        if not result.is_valid:
            detail = self._classifier.validation_error(
                Step.filter,
                result.reason,
                context={"confidence": result.confidence},
            )
            return {
                "filter_result": result,
                "error": detail,
                "current_step": WorkflowStep.error,
                "steps": _trace("filter", started, False),
            }
        return {
            "filter_result": result,
            "current_step": WorkflowStep.analyze,
            "steps": _trace("filter", started, True),
        }

    @staticmethod
    def _route_after_filter(state: _GraphState) -> str:
        return _ANALYZE_NODE if state.get("current_step") is WorkflowStep.analyze else END

    def _analyze_node(self, state: _GraphState) -> dict[str, Any]:
        request = state["request"]
        filter_result = state["filter_result"]
        started = time.perf_counter()
        try:
            analyzed = self._analyzer.analyze_sentence(
                AnalyzerInput(
                    sentence=filter_result.cleaned_sentence or request.english_phrase,
                    user_translation=request.user_translation,
                    context=request.context,
                )
            )
        except StageError as exc:
            return {
                "error": exc.detail,
                "current_step": WorkflowStep.error,
                "steps": _trace("analyze", started, False),
            }
        return {
            "analyzed": analyzed,
            "current_step": WorkflowStep.complete,
            "steps": _trace("analyze", started, True),
        }

    # --- public API ---

    def execute(self, request: AnalysisRequest | Mapping[str, Any]) -> AnalysisResponse:
        response, _ = self.execute_with_state(request)
        return response

    def execute_with_state(
        self, request: AnalysisRequest | Mapping[str, Any]
    ) -> tuple[AnalysisResponse, WorkflowState]:
        """Execute and also return the per-request `WorkflowState`."""

        started = time.perf_counter()
        started_at = _now_iso()
        raw_phrase: Any = ""
        if isinstance(request, AnalysisRequest):
            raw_phrase = request.english_phrase
        elif isinstance(request, Mapping):
            raw_phrase = request.get("englishPhrase", request.get("english_phrase", ""))
        try:
            try:
                req = strict_parse(AnalysisRequest, request)
            except ValidationError as exc:
                summary = ValidationResult(issues=issues_from_error(exc)).summary()
                detail = self._classifier.validation_error(Step.filter, summary)
                state = WorkflowState(
                    english_phrase=raw_phrase if isinstance(raw_phrase, str) else "",
                    filter_error=summary,
                    error_details=detail,
                    current_step=WorkflowStep.error,
                    metadata=WorkflowMetadata(
                        session_id=uuid.uuid4().hex,
                        workflow_version=self._version,
                        started_at=started_at,
                        finished_at=_now_iso(),
                        processing_time_ms=round((time.perf_counter() - started) * 1000.0, 2),
                    ),
                )
                log.info("workflow_complete", action="execute", success=False, error_type=detail.type.value, step="request")
                return AnalysisResponse.fail(detail), state

            session_id = req.options.session_id or uuid.uuid4().hex
            log.debug("workflow_start", action="execute", session_id=session_id, phrase_chars=len(req.english_phrase))
            out: _GraphState = self._graph.invoke(
                {"request": req, "current_step": WorkflowStep.filter, "steps": []}
            )
            elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
            state = self._to_state(req, out, session_id, started_at, elapsed_ms)
            response = self._respond(req, out, session_id, elapsed_ms)
            log.info(
                "workflow_complete",
                action="execute",
                session_id=session_id,
                success=response.success,
                current_step=state.current_step.value,
                error_type=response.error.type.value if response.error else None,
                latency_ms=elapsed_ms,
            )
            return response, state
        except Exception as exc:
            # 想定外の失敗（状態管理の不具合など）の最終防衛線
            log.exception("workflow_unexpected_error", action="execute", error=str(exc)[:500])
            detail = make_error_detail(
                Step.filter,
                ErrorType.UNKNOWN,
                f"Unexpected workflow failure: {type(exc).__name__}: {exc}",
                retryable=True,
            )
            state = WorkflowState(
                english_phrase=raw_phrase if isinstance(raw_phrase, str) else "",
                error_details=detail,
                current_step=WorkflowStep.error,
            )
            return AnalysisResponse.fail(detail), state

    def _to_state(
        self,
        req: AnalysisRequest,
        out: _GraphState,
        session_id: str,
        started_at: str,
        elapsed_ms: float,
    ) -> WorkflowState:
        filter_result = out.get("filter_result")
        analyzed = out.get("analyzed")
        error = out.get("error")
        failed_in_filter = error is not None and error.step is Step.filter
        return WorkflowState(
            english_phrase=req.english_phrase,
            user_translation=req.user_translation,
            context=req.context,
            is_valid_sentence=bool(filter_result and filter_result.is_valid),
            filter_result=filter_result,
            filter_error=error.message if failed_in_filter else None,
            analysis_result=analyzed.result if analyzed else None,
            analysis_metadata=analyzed.metadata if analyzed else None,
            analysis_error=error.message if error is not None and not failed_in_filter else None,
            error_details=error,
            current_step=out.get("current_step", WorkflowStep.error),
            metadata=WorkflowMetadata(
                session_id=session_id,
                workflow_version=self._version,
                started_at=started_at,
                finished_at=_now_iso(),
                processing_time_ms=elapsed_ms,
                processing_steps=list(out.get("steps", [])),
            ),
        )

    def _respond(
        self,
        req: AnalysisRequest,
        out: _GraphState,
        session_id: str,
        elapsed_ms: float,
    ) -> AnalysisResponse:
        error = out.get("error")
        analyzed = out.get("analyzed")
        if error is not None:
            return AnalysisResponse.fail(error)
        if analyzed is None:
            raise RuntimeError("workflow finished without analysis result or error")
        metadata: Optional[AnalysisMetadata] = None
        if req.options.include_metadata:
            metadata = analyzed.metadata.model_copy(
                update={"session_id": session_id, "processing_time_ms": elapsed_ms}
            )
        return AnalysisResponse.ok(analyzed.result, metadata)

    def health_check(self) -> WorkflowHealth:
        """Probe both stages; never raises.

        フィルタは `quick_validate` が完了すれば正常、アナライザは
        `quick_check` が判定を返せば正常とみなす。
        """

        now = _now_iso()
        components: dict[str, ComponentHealth] = {}
        try:
            self._filter.quick_validate(HEALTH_PROBE_PHRASE)
            components["sentenceFilter"] = ComponentHealth(is_healthy=True, last_check=now, version=self._version)
        except Exception as exc:
            components["sentenceFilter"] = ComponentHealth(
                is_healthy=False, last_check=now, version=self._version, error=str(exc)[:200]
            )
        try:
            verdict = self._analyzer.quick_check(HEALTH_PROBE_PHRASE)
            components["analyzer"] = ComponentHealth(
                is_healthy=verdict is not None,
                last_check=now,
                version=self._version,
                error=None if verdict is not None else "analyzer probe returned no verdict",
            )
        except Exception as exc:
            components["analyzer"] = ComponentHealth(
                is_healthy=False, last_check=now, version=self._version, error=str(exc)[:200]
            )
        components["workflow"] = ComponentHealth(is_healthy=True, last_check=now, version=self._version)

        healthy = all(c.is_healthy for c in components.values())
        health = WorkflowHealth(
            is_healthy=healthy,
            status="healthy" if healthy else "unhealthy",
            components=components,
            last_check=now,
            version=self._version,
        )
        log_method = log.info if healthy else log.error
        log_method(
            "health_check",
            action="health_check",
            status=health.status,
            components={name: c.is_healthy for name, c in components.items()},
        )
        return health

    def get_config(self) -> WorkflowConfig:
        provider_config = self._analyzer.provider.config
        return WorkflowConfig(
            version=self._version,
            max_input_length=MAX_INPUT_LENGTH,
            timeout_ms=provider_config.timeout_ms,
            retry_attempts=provider_config.max_retries,
            model=provider_config.model,
            supported_languages=["en"],
            steps=[Step.filter.value, Step.analyze.value],
        )
