from .analysis import (
    AnalysisMetadata,
    AnalyzedSentence,
    AnalyzerInput,
    AnalyzerResult,
    BatchAnalysisResult,
    BatchItemError,
    ContextAnalysis,
    FilterInput,
    FilterResult,
    GrammarAnalysis,
    TranslationComparison,
    VocabularyAnalysis,
)
from .common import (
    Correctness,
    ErrorType,
    Step,
    ValidationIssue,
    ValidationResult,
    WorkflowStep,
    strict_parse,
    validate,
)
from .request import (
    AnalysisOptions,
    AnalysisRequest,
    AnalysisResponse,
    ComponentHealth,
    ErrorDetail,
    WorkflowConfig,
    WorkflowHealth,
    WorkflowState,
)

__all__ = [
    "AnalysisMetadata",
    "AnalysisOptions",
    "AnalysisRequest",
    "AnalysisResponse",
    "AnalyzedSentence",
    "AnalyzerInput",
    "AnalyzerResult",
    "BatchAnalysisResult",
    "BatchItemError",
    "ComponentHealth",
    "ContextAnalysis",
    "Correctness",
    "ErrorDetail",
    "ErrorType",
    "FilterInput",
    "FilterResult",
    "GrammarAnalysis",
    "Step",
    "TranslationComparison",
    "ValidationIssue",
    "ValidationResult",
    "VocabularyAnalysis",
    "WorkflowConfig",
    "WorkflowHealth",
    "WorkflowState",
    "WorkflowStep",
    "strict_parse",
    "validate",
]
