from __future__ import annotations

from typing import Annotated, Any, Optional

from pydantic import Field, StringConstraints

from .common import CamelModel, Correctness, LearnerLevel, NonEmptyStr, TrimmedStr

MAX_PHRASE_LENGTH = 1000
MAX_TRANSLATION_LENGTH = 1000
MAX_CONTEXT_LENGTH = 500
MAX_TAGS = 10

Tag = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=50)]


class SaveInput(CamelModel):
    """Request body for saving a phrase together with its analysis.

    解析結果（`analysis`）は不透明なペイロードとしてそのまま保存する。
    """

    english_phrase: Annotated[NonEmptyStr, StringConstraints(max_length=MAX_PHRASE_LENGTH)]
    user_translation: Annotated[NonEmptyStr, StringConstraints(max_length=MAX_TRANSLATION_LENGTH)]
    context: Optional[Annotated[TrimmedStr, StringConstraints(max_length=MAX_CONTEXT_LENGTH)]] = None
    difficulty: LearnerLevel = LearnerLevel.beginner
    is_bookmarked: bool = False
    tags: list[Tag] = Field(default_factory=list, max_length=MAX_TAGS)
    analysis: Optional[dict[str, Any]] = None


class PhraseUpdate(CamelModel):
    user_translation: Optional[Annotated[NonEmptyStr, StringConstraints(max_length=MAX_TRANSLATION_LENGTH)]] = None
    context: Optional[Annotated[TrimmedStr, StringConstraints(max_length=MAX_CONTEXT_LENGTH)]] = None
    difficulty: Optional[LearnerLevel] = None
    is_bookmarked: Optional[bool] = None
    tags: Optional[list[Tag]] = Field(default=None, max_length=MAX_TAGS)
    analysis: Optional[dict[str, Any]] = None


class Phrase(CamelModel):
    id: str
    user_id: str
    english_phrase: str
    user_translation: str
    context: str = ""
    difficulty: LearnerLevel = LearnerLevel.beginner
    is_bookmarked: bool = False
    tags: list[str] = Field(default_factory=list)
    correctness: Optional[Correctness] = None
    analysis: Optional[dict[str, Any]] = None
    review_count: int = Field(default=0, ge=0)
    last_reviewed_at: Optional[str] = None
    created_at: str
    updated_at: str


class PhraseListResponse(CamelModel):
    items: list[Phrase] = Field(default_factory=list)
    total: int = 0
    limit: int = 50
    offset: int = 0


class PhraseStats(CamelModel):
    total: int = 0
    bookmarked: int = 0
    by_difficulty: dict[str, int] = Field(default_factory=dict)
    by_correctness: dict[str, int] = Field(default_factory=dict)


class ReviewInput(CamelModel):
    """Outcome of one review of a saved phrase / 復習結果（正解なら回数+1、不正解なら-1）。"""

    is_correct: bool


class BulkCreateInput(CamelModel):
    # 各要素は個別に検証する（1件の不正で全体を失敗させない）
    phrases: list[dict[str, Any]] = Field(min_length=1, max_length=100)


class BulkItemError(CamelModel):
    index: int
    error: str


class BulkCreateResult(CamelModel):
    success_count: int = 0
    error_count: int = 0
    errors: list[BulkItemError] = Field(default_factory=list)
    data: list[Phrase] = Field(default_factory=list)
