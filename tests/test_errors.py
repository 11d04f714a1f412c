from concurrent.futures import TimeoutError as FuturesTimeout

import pytest
from pydantic import ValidationError

from phrase_analyzer.errors import (
    ApiRateLimitError,
    ErrorClassifier,
    InputValidationError,
    ParsingError,
    ProviderConfigError,
    StageError,
    StructuredOutputError,
    make_error_detail,
    retry_delay_ms,
)
from phrase_analyzer.messages import ERROR_MESSAGES, message_for
from phrase_analyzer.models import AnalysisRequest, ErrorType, Step


@pytest.mark.parametrize(
    ("message", "expected"),
    [
        ("Request timed out", ErrorType.API_TIMEOUT),
        ("upstream TIMEOUT while waiting", ErrorType.API_TIMEOUT),
        ("Rate limit exceeded", ErrorType.API_RATE_LIMIT),
        ("HTTP 429 returned", ErrorType.API_RATE_LIMIT),
        ("Too Many Requests", ErrorType.API_RATE_LIMIT),
        ("network unreachable", ErrorType.NETWORK_ERROR),
        ("connect ECONNREFUSED 127.0.0.1:443", ErrorType.NETWORK_ERROR),
        ("invalid field value", ErrorType.VALIDATION),
        ("something odd from the provider", ErrorType.API_ERROR),
    ],
)
def test_classifier_falls_back_to_keywords(classifier, message, expected):
    detail = classifier.classify(RuntimeError(message), Step.analyze)
    assert detail.type is expected
    assert detail.step is Step.analyze
    assert detail.message == message


def test_keyword_order_prefers_timeout_over_rate_limit(classifier):
    detail = classifier.classify(RuntimeError("timeout after 429 response"), Step.filter)
    assert detail.type is ErrorType.API_TIMEOUT


def test_empty_message_is_unknown(classifier):
    detail = classifier.classify(RuntimeError(""), Step.filter)
    assert detail.type is ErrorType.UNKNOWN
    assert detail.retryable is True
    assert detail.message == "RuntimeError"


def test_typed_errors_win_over_keywords(classifier):
    # メッセージに timeout を含んでも型付き例外の種別が優先される
    detail = classifier.classify(ParsingError("timeout while parsing"), Step.analyze)
    assert detail.type is ErrorType.PARSING_ERROR
    assert classifier.classify(StructuredOutputError("x"), Step.analyze).type is ErrorType.STRUCTURED_OUTPUT_ERROR
    assert classifier.classify(ApiRateLimitError("x", error_code="429"), Step.analyze).error_code == "429"


def test_builtin_exception_types_are_classified(classifier):
    assert classifier.classify(FuturesTimeout(), Step.analyze).type is ErrorType.API_TIMEOUT
    assert classifier.classify(ConnectionResetError("peer"), Step.analyze).type is ErrorType.NETWORK_ERROR
    with pytest.raises(ValidationError) as excinfo:
        AnalysisRequest.model_validate({"englishPhrase": ""})
    detail = classifier.classify(excinfo.value, Step.filter)
    assert detail.type is ErrorType.VALIDATION
    assert detail.retryable is False


def test_non_retryable_typed_errors_keep_their_flag(classifier):
    assert classifier.classify(ProviderConfigError("missing key"), Step.filter).retryable is False
    assert classifier.classify(InputValidationError("bad"), Step.filter).retryable is False


def test_stage_error_passes_detail_through(classifier):
    detail = make_error_detail(Step.analyze, ErrorType.API_ERROR, "boom")
    assert classifier.classify(StageError(detail), Step.filter) is detail


def test_context_is_attached(classifier):
    detail = classifier.classify(RuntimeError("boom"), Step.analyze, context={"attempts": 3})
    assert detail.context == {"attempts": 3}


def test_user_message_and_action_come_from_message_table():
    detail = make_error_detail(Step.analyze, ErrorType.API_RATE_LIMIT, "429")
    entry = ERROR_MESSAGES[ErrorType.API_RATE_LIMIT]
    assert detail.user_message == entry.description
    assert detail.suggested_action == entry.action == "รอ 1 นาที"


def test_message_table_covers_every_error_type():
    assert set(ERROR_MESSAGES) == set(ErrorType)
    for error_type in ErrorType:
        entry = message_for(error_type)
        assert entry.title and entry.description and entry.action


def test_message_table_is_read_only():
    with pytest.raises(TypeError):
        ERROR_MESSAGES[ErrorType.UNKNOWN] = ERROR_MESSAGES[ErrorType.API_ERROR]  # type: ignore[index]


@pytest.mark.parametrize(
    ("error_type", "attempt", "expected"),
    [
        (ErrorType.API_ERROR, 1, 1000),
        (ErrorType.API_ERROR, 2, 2000),
        (ErrorType.API_ERROR, 3, 4000),
        (ErrorType.API_RATE_LIMIT, 1, 2000),
        (ErrorType.API_RATE_LIMIT, 3, 8000),
        (ErrorType.API_TIMEOUT, 10, 30000),
        (ErrorType.VALIDATION, 2, 0),
    ],
)
def test_retry_delay_is_exponential_and_capped(error_type, attempt, expected):
    assert retry_delay_ms(error_type, attempt) == expected


def test_classifier_delay_uses_configured_bounds():
    classifier = ErrorClassifier(base_delay_ms=10, max_delay_ms=25)
    assert classifier.retry_delay_ms(ErrorType.NETWORK_ERROR, 1) == 10
    assert classifier.retry_delay_ms(ErrorType.NETWORK_ERROR, 3) == 25


def test_is_retryable(classifier):
    assert ErrorClassifier.is_retryable(make_error_detail(Step.filter, ErrorType.API_ERROR, "x")) is True
    assert ErrorClassifier.is_retryable(classifier.validation_error(Step.filter, "x")) is False
