from __future__ import annotations

from typing import Any, Optional

from pydantic import ConfigDict, Field, StrictBool, field_validator, model_validator

from .analysis import AnalysisMetadata, AnalyzerResult, FilterResult
from .common import CamelModel, ErrorType, Step, WorkflowStep

MAX_INPUT_LENGTH = 500


def _clean_optional(value: Any, *, label: str) -> Any:
    if value is None:
        return None
    if not isinstance(value, str):
        return value
    cleaned = value.strip()
    if not cleaned:
        return None
    if len(cleaned) > MAX_INPUT_LENGTH:
        raise ValueError(f"{label} is too long (maximum {MAX_INPUT_LENGTH} characters)")
    return cleaned


class AnalysisOptions(CamelModel):
    model_config = ConfigDict(frozen=True)

    include_metadata: StrictBool = False
    detailed_analysis: StrictBool = False
    session_id: Optional[str] = Field(default=None, max_length=128)


class AnalysisRequest(CamelModel):
    """Request envelope for `POST /api/analyze`.

    HTTP 境界で信頼できない JSON から生成され、生成後は変更不可。
    英文は 1–500 文字（前後空白除去後）、訳文・文脈は任意で最大 500 文字。
    """

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "examples": [
                {
                    "englishPhrase": "I am learning English.",
                    "userTranslation": "ฉันกำลังเรียนภาษาอังกฤษ",
                    "options": {"includeMetadata": True},
                }
            ]
        },
    )

    english_phrase: str
    user_translation: Optional[str] = None
    context: Optional[str] = None
    options: AnalysisOptions = Field(default_factory=AnalysisOptions)

    @field_validator("english_phrase", mode="before")
    @classmethod
    def _check_phrase(cls, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("English phrase is required and must be a non-empty string")
        if len(cleaned) > MAX_INPUT_LENGTH:
            raise ValueError(f"English phrase is too long (maximum {MAX_INPUT_LENGTH} characters)")
        return cleaned

    @field_validator("user_translation", mode="before")
    @classmethod
    def _check_translation(cls, value: Any) -> Any:
        return _clean_optional(value, label="Translation")

    @field_validator("context", mode="before")
    @classmethod
    def _check_context(cls, value: Any) -> Any:
        return _clean_optional(value, label="Context")


class ErrorDetail(CamelModel):
    """Uniform, immutable error record returned across the public boundary.

    `message` はログ/診断用、`user_message` は表示用（ローカライズ済み）。
    validation 型は常に retryable=false。
    """

    model_config = ConfigDict(frozen=True)

    step: Step
    type: ErrorType
    message: str
    user_message: str
    retryable: StrictBool
    suggested_action: Optional[str] = None
    timestamp: str
    error_code: Optional[str] = None
    context: Optional[dict[str, Any]] = None

    @model_validator(mode="after")
    def _validation_is_terminal(self) -> "ErrorDetail":
        if self.type is ErrorType.VALIDATION and self.retryable:
            raise ValueError("validation errors are never retryable")
        return self


class AnalysisResponse(CamelModel):
    """Success envelope (`data`) or failure envelope (`error`), never both."""

    success: StrictBool
    data: Optional[AnalyzerResult] = None
    metadata: Optional[AnalysisMetadata] = None
    error: Optional[ErrorDetail] = None

    @model_validator(mode="after")
    def _shape(self) -> "AnalysisResponse":
        if self.success and (self.data is None or self.error is not None):
            raise ValueError("successful responses carry data and no error")
        if not self.success and (self.error is None or self.data is not None):
            raise ValueError("failed responses carry an error and no data")
        return self

    @classmethod
    def ok(cls, data: AnalyzerResult, metadata: AnalysisMetadata | None = None) -> "AnalysisResponse":
        return cls(success=True, data=data, metadata=metadata)

    @classmethod
    def fail(cls, error: ErrorDetail) -> "AnalysisResponse":
        return cls(success=False, error=error)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ProcessingStep(CamelModel):
    step: str
    timestamp: str
    duration_ms: float
    success: bool


class WorkflowMetadata(CamelModel):
    session_id: str
    workflow_version: str
    started_at: str
    finished_at: Optional[str] = None
    processing_time_ms: float = 0.0
    processing_steps: list[ProcessingStep] = Field(default_factory=list)


class WorkflowState(CamelModel):
    """Transient record threading one request through both stages."""

    english_phrase: str
    user_translation: Optional[str] = None
    context: Optional[str] = None
    is_valid_sentence: bool = False
    filter_result: Optional[FilterResult] = None
    filter_error: Optional[str] = None
    analysis_result: Optional[AnalyzerResult] = None
    analysis_metadata: Optional[AnalysisMetadata] = None
    analysis_error: Optional[str] = None
    error_details: Optional[ErrorDetail] = None
    current_step: WorkflowStep = WorkflowStep.filter
    metadata: Optional[WorkflowMetadata] = None


class ComponentHealth(CamelModel):
    is_healthy: bool
    last_check: str
    version: Optional[str] = None
    error: Optional[str] = None


class WorkflowHealth(CamelModel):
    is_healthy: bool
    status: str
    components: dict[str, ComponentHealth]
    last_check: str
    version: str

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class WorkflowFeatures(CamelModel):
    sentence_filtering: bool = True
    grammar_analysis: bool = True
    vocabulary_analysis: bool = True
    context_analysis: bool = True
    batch_processing: bool = True
    health_checking: bool = True


class WorkflowConfig(CamelModel):
    version: str
    max_input_length: int
    timeout_ms: int
    retry_attempts: int
    model: str
    enable_structured_output: bool = True
    features: WorkflowFeatures = Field(default_factory=WorkflowFeatures)
    supported_languages: list[str] = Field(default_factory=list)
    steps: list[str] = Field(default_factory=list)
