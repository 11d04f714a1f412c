from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CamelModel(BaseModel):
    """Base model exchanging camelCase JSON while exposing snake_case attributes.

    API とモデル出力は camelCase（`englishPhrase` など）でやり取りするため、
    エイリアス生成をここで一元化する。
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_wire(self) -> dict[str, Any]:
        """Serialize with camelCase keys, the shape returned to HTTP callers."""

        return self.model_dump(mode="json", by_alias=True)


# --- 共通の制約付き型 ---
# 前後空白を除去した文字列。空白のみは空文字として扱う
TrimmedStr = Annotated[str, StringConstraints(strip_whitespace=True)]
NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
Score = Annotated[float, Field(ge=0, le=100, strict=True)]
StarRating = Annotated[int, Field(ge=1, le=5, strict=True)]
Confidence = Annotated[float, Field(ge=0, le=1, strict=True)]


class Step(str, Enum):
    """Pipeline stage an error originated from."""

    filter = "filter"
    analyze = "analyze"


class WorkflowStep(str, Enum):
    filter = "filter"
    analyze = "analyze"
    complete = "complete"
    error = "error"


class ErrorType(str, Enum):
    """Closed taxonomy of failures surfaced to callers."""

    VALIDATION = "validation"
    API_TIMEOUT = "timeout"
    API_RATE_LIMIT = "rate_limit"
    API_ERROR = "api_error"
    NETWORK_ERROR = "network_error"
    PARSING_ERROR = "parsing_error"
    STRUCTURED_OUTPUT_ERROR = "structured_output_error"
    UNKNOWN = "unknown"


class Correctness(str, Enum):
    correct = "correct"
    incorrect = "incorrect"
    partially_correct = "partially_correct"


class Complexity(str, Enum):
    simple = "simple"
    medium = "medium"
    complex = "complex"


class Difficulty(str, Enum):
    easy = "easy"
    medium = "medium"
    hard = "hard"


class LearnerLevel(str, Enum):
    beginner = "beginner"
    intermediate = "intermediate"
    advanced = "advanced"


@dataclass(frozen=True)
class ValidationIssue:
    field: str
    message: str


@dataclass
class ValidationResult(Generic[T]):
    """Outcome of `validate`: either a value or a list of issues, never both."""

    value: T | None = None
    issues: list[ValidationIssue] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.issues

    def summary(self) -> str:
        return "; ".join(f"{i.field}: {i.message}" if i.field else i.message for i in self.issues)


def issues_from_error(exc: ValidationError) -> list[ValidationIssue]:
    return [
        ValidationIssue(
            field=".".join(str(part) for part in err.get("loc", ())),
            message=str(err.get("msg", "invalid value")),
        )
        for err in exc.errors()
    ]


def _adapter(schema: Any) -> TypeAdapter[Any]:
    return TypeAdapter(schema)


def validate(schema: type[T] | Any, value: Any) -> ValidationResult[T]:
    """Validate ``value`` against ``schema`` without raising on shape mismatch.

    成功時は検証済みの値を、失敗時は (fieldPath, message) の一覧のみを返す。
    部分的な成功は返さない。
    """

    try:
        return ValidationResult(value=strict_parse(schema, value))
    except ValidationError as exc:
        return ValidationResult(issues=issues_from_error(exc))


def strict_parse(schema: type[T] | Any, value: Any) -> T:
    """Validate and return the narrowed value, raising `ValidationError` on mismatch."""

    if isinstance(schema, type) and issubclass(schema, BaseModel):
        if isinstance(value, schema):
            return value  # type: ignore[return-value]
        return schema.model_validate(value)  # type: ignore[return-value]
    return _adapter(schema).validate_python(value)
