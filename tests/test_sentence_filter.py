import pytest

from phrase_analyzer.errors import NetworkError, StageError
from phrase_analyzer.flows.sentence_filter import SentenceFilterAgent
from phrase_analyzer.models import ErrorType, FilterInput, Step
from phrase_analyzer.models.common import Complexity
from tests.fakes import filter_rejection, filter_reply


def test_valid_sentence_passes_through_the_model(filter_agent, fake_model):
    fake_model.queue(filter_reply("I am learning English."))
    result = filter_agent.filter_sentence(
        {"english_phrase": "I am learning English.", "user_translation": "ฉันกำลังเรียนภาษาอังกฤษ"}
    )
    assert result.is_valid is True
    assert result.cleaned_sentence == "I am learning English."
    # メタデータが欠けていれば補完される
    assert result.metadata is not None
    assert result.metadata.word_count == 4
    assert result.metadata.complexity is Complexity.simple
    assert "I am learning English." in fake_model.prompts[0]
    assert "ฉันกำลังเรียนภาษาอังกฤษ" in fake_model.prompts[0]


def test_model_can_reject_a_fragment(filter_agent, fake_model):
    fake_model.queue(filter_rejection("This is a greeting phrase, not a complete sentence"))
    result = filter_agent.filter_sentence(FilterInput(english_phrase="Hello world"))
    assert result.is_valid is False
    assert result.cleaned_sentence is None
    assert "greeting" in result.reason


@pytest.mark.parametrize(
    ("payload", "reason"),
    [
        ({"english_phrase": "   "}, "empty"),
        ({"english_phrase": "a" * 501}, "too long"),
        ({"english_phrase": "Hi there.", "user_translation": "t" * 501}, "Translation is too long"),
        ({"english_phrase": "こんにちは世界"}, "characters"),
        ({"english_phrase": "Price is 5$ today."}, "characters"),
    ],
)
def test_obvious_rejects_skip_the_model(filter_agent, fake_model, payload, reason):
    result = filter_agent.filter_sentence(payload)
    assert result.is_valid is False
    assert result.confidence == 1.0
    assert reason in result.reason
    assert fake_model.calls == 0


def test_free_text_reply_is_a_parsing_error(filter_agent, fake_model, sleeps):
    fake_model.queue("Sure! That looks fine.", "Sure! That looks fine.", "Sure! That looks fine.")
    with pytest.raises(StageError) as excinfo:
        filter_agent.filter_sentence({"english_phrase": "I am learning English."})
    detail = excinfo.value.detail
    assert detail.type is ErrorType.PARSING_ERROR
    assert detail.step is Step.filter
    assert detail.retryable is True
    assert detail.context == {"attempts": 3}
    assert fake_model.calls == 3
    assert len(sleeps) == 2


def test_fenced_json_reply_is_accepted(filter_agent, fake_model):
    fake_model.queue('```json\n{"isValid": true, "reason": "ok", "cleanedSentence": "It rains.", "confidence": 0.8}\n```')
    result = filter_agent.filter_sentence({"english_phrase": "It rains."})
    assert result.is_valid is True
    assert result.confidence == 0.8


def test_schema_mismatch_is_a_structured_output_error(filter_agent, fake_model):
    bad = {"isValid": True, "reason": "ok", "confidence": 0.9}
    fake_model.queue(bad, bad, bad)
    with pytest.raises(StageError) as excinfo:
        filter_agent.filter_sentence({"english_phrase": "It rains."})
    assert excinfo.value.detail.type is ErrorType.STRUCTURED_OUTPUT_ERROR
    assert "cleanedSentence" in excinfo.value.detail.message


def test_transient_failure_then_success(filter_agent, fake_model):
    fake_model.queue(NetworkError("connection reset"), filter_reply("It rains."))
    result = filter_agent.filter_sentence({"english_phrase": "It rains."})
    assert result.is_valid is True
    assert fake_model.calls == 2


def test_invalid_input_shape_is_a_validation_error(filter_agent, fake_model):
    with pytest.raises(StageError) as excinfo:
        filter_agent.filter_sentence({"user_translation": "x"})
    assert excinfo.value.detail.type is ErrorType.VALIDATION
    assert excinfo.value.detail.retryable is False
    assert fake_model.calls == 0


def test_quick_validate_uses_confidence_threshold(provider, fake_model):
    agent = SentenceFilterAgent(provider, confidence_threshold=0.9)
    fake_model.queue(filter_reply("It rains.", confidence=0.95), filter_reply("It rains.", confidence=0.8))
    assert agent.quick_validate("It rains.") is True
    assert agent.quick_validate("It rains.") is False


def test_quick_validate_never_raises(filter_agent, fake_model):
    fake_model.queue("nope", "nope", "nope")
    assert filter_agent.quick_validate("It rains.") is False


def test_quick_validate_rejects_malformed_input(filter_agent, fake_model):
    assert filter_agent.quick_validate(None) is False
    assert filter_agent.quick_validate(123) is False
    assert filter_agent.quick_validate("   ") is False
    assert fake_model.calls == 0


def test_filter_batch_isolates_failures(filter_agent, fake_model):
    fake_model.queue(filter_reply("It rains."), "no json", "no json", "no json")
    results = filter_agent.filter_batch([{"english_phrase": "It rains."}, {"english_phrase": "It snows."}])
    assert [r.is_valid for r in results] == [True, False]
    assert results[1].reason.startswith("Processing failed:")
    assert results[1].confidence == 0.0
