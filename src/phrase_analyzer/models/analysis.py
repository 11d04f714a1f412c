from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import Field, StrictBool, model_validator

from .common import (
    CamelModel,
    Complexity,
    Confidence,
    Correctness,
    Difficulty,
    ErrorType,
    LearnerLevel,
    NonEmptyStr,
    Score,
    StarRating,
    TrimmedStr,
)


# --- Sentence filter ---


class FilterInput(CamelModel):
    """Input to the sentence filter stage."""

    english_phrase: TrimmedStr
    user_translation: Optional[TrimmedStr] = None
    context: Optional[TrimmedStr] = None


class FilterMetadata(CamelModel):
    detected_language: str
    word_count: int = Field(ge=0)
    sentence_count: int = Field(ge=0)
    complexity: Complexity


class FilterResult(CamelModel):
    """Verdict of the sentence filter.

    `cleaned_sentence` は有効な場合のみ値を持ち、無効な場合は必ず null。
    `reason` は成功時も必須。
    """

    is_valid: StrictBool
    reason: NonEmptyStr
    cleaned_sentence: Optional[TrimmedStr] = None
    confidence: Confidence
    metadata: Optional[FilterMetadata] = None

    @model_validator(mode="after")
    def _cleaned_sentence_matches_verdict(self) -> "FilterResult":
        if self.is_valid and not self.cleaned_sentence:
            raise ValueError("cleanedSentence is required when isValid is true")
        if not self.is_valid and self.cleaned_sentence is not None:
            raise ValueError("cleanedSentence must be null when isValid is false")
        return self


# --- Analyzer ---


class AnalyzerInput(CamelModel):
    sentence: NonEmptyStr
    user_translation: Optional[TrimmedStr] = None
    context: Optional[TrimmedStr] = None


class TextSpan(CamelModel):
    """Character offsets into the analysed sentence (end exclusive)."""

    start: int = Field(ge=0, strict=True)
    end: int = Field(ge=0, strict=True)

    @model_validator(mode="after")
    def _ordered(self) -> "TextSpan":
        if self.end < self.start:
            raise ValueError("end must not precede start")
        return self


class IssueType(str, Enum):
    tense = "tense"
    subject_verb_agreement = "subject_verb_agreement"
    article = "article"
    preposition = "preposition"
    word_order = "word_order"
    other = "other"


class Severity(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"


class GrammarIssue(CamelModel):
    type: IssueType
    description: str
    severity: Severity
    suggestion: str
    position: Optional[TextSpan] = None


class TenseAnalysis(CamelModel):
    detected_tense: str
    is_correct: StrictBool
    explanation: str
    alternatives: list[str] = Field(default_factory=list)
    usage: str


class StructureAnalysis(CamelModel):
    pattern: str
    is_natural: StrictBool
    explanation: str
    improvements: list[str] = Field(default_factory=list)
    comparison: str


class GrammarAnalysis(CamelModel):
    score: Score
    star_rating: StarRating
    issues: list[GrammarIssue] = Field(default_factory=list)
    strengths: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    tense_analysis: TenseAnalysis
    structure_analysis: StructureAnalysis
    complexity: Complexity


class VocabularySuggestion(CamelModel):
    original: str
    suggested: str
    reason: str
    context: str = ""


class Phonics(CamelModel):
    pronunciation: str
    syllables: list[str] = Field(default_factory=list)
    stress: list[int] = Field(default_factory=list)


class WordAnalysis(CamelModel):
    word: str
    position: TextSpan
    part_of_speech: str
    difficulty: Difficulty
    phonics: Phonics
    meaning: str
    common_usage: str
    alternatives: list[str] = Field(default_factory=list)


class VocabularyAnalysis(CamelModel):
    score: Score
    star_rating: StarRating
    level: LearnerLevel
    appropriate_words: list[str] = Field(default_factory=list)
    inappropriate_words: list[str] = Field(default_factory=list)
    suggestions: list[VocabularySuggestion] = Field(default_factory=list)
    word_breakdown: list[WordAnalysis] = Field(default_factory=list)
    overall_difficulty: Difficulty


class Appropriateness(str, Enum):
    formal = "formal"
    informal = "informal"
    neutral = "neutral"


class ContextAnalysis(CamelModel):
    score: Score
    star_rating: StarRating
    appropriateness: Appropriateness
    cultural_notes: list[str] = Field(default_factory=list)
    usage_notes: list[str] = Field(default_factory=list)
    situational_fit: str


class AnalyzerResult(CamelModel):
    """Full structured critique produced by the analyzer stage.

    スコアはすべて 0–100、星評価は 1–5 の整数。`alternatives` と
    `suggestions` は省略時に空配列となり、null は受け付けない。
    """

    correctness: Correctness
    meaning: str
    alternatives: list[str] = Field(default_factory=list)
    errors: str = ""
    grammar_analysis: GrammarAnalysis
    vocabulary_analysis: VocabularyAnalysis
    context_analysis: ContextAnalysis
    confidence: Confidence
    suggestions: list[str] = Field(default_factory=list)
    overall_star_rating: StarRating


class AnalysisMetadata(CamelModel):
    timestamp: str
    processing_time_ms: float = Field(ge=0)
    model_used: str
    confidence: Confidence
    retry_count: int = Field(ge=0)
    version: str
    session_id: Optional[str] = None


class AnalyzedSentence(CamelModel):
    """Analyzer result wrapped with the metadata of the call that produced it."""

    result: AnalyzerResult
    metadata: AnalysisMetadata


class TranslationComparison(CamelModel):
    analysis: AnalyzerResult
    translation_feedback: str


class BatchItemError(CamelModel):
    index: int
    sentence: str
    error_type: ErrorType
    message: str


class BatchAnalysisResult(CamelModel):
    results: list[AnalyzedSentence] = Field(default_factory=list)
    errors: list[BatchItemError] = Field(default_factory=list)
    succeeded: int = 0
    failed: int = 0
