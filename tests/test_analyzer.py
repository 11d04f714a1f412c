import json

import pytest

from phrase_analyzer.errors import ApiError, NetworkError, StageError
from phrase_analyzer.flows.analyzer import AnalyzerAgent, translation_feedback
from phrase_analyzer.models import AnalyzerInput, AnalyzerResult, Correctness, ErrorType, Step
from tests.fakes import analysis_reply


def test_analyze_sentence_returns_result_with_metadata(analyzer_agent, fake_model):
    fake_model.queue(analysis_reply())
    analyzed = analyzer_agent.analyze_sentence(
        AnalyzerInput(sentence="The weather is beautiful today.", user_translation="อากาศดีวันนี้")
    )
    assert analyzed.result.correctness is Correctness.correct
    assert analyzed.result.errors == ""
    assert 1 <= analyzed.result.overall_star_rating <= 5
    assert analyzed.metadata.model_used == "gpt-4o-mini"
    assert analyzed.metadata.retry_count == 0
    assert analyzed.metadata.confidence == 0.95
    assert analyzed.metadata.processing_time_ms >= 0
    assert "อากาศดีวันนี้" in fake_model.prompts[0]


def test_retry_count_reflects_retries(analyzer_agent, fake_model):
    fake_model.queue(NetworkError("reset"), analysis_reply())
    analyzed = analyzer_agent.analyze_sentence({"sentence": "The weather is beautiful today."})
    assert analyzed.metadata.retry_count == 1


def test_missing_grammar_analysis_is_not_defaulted(analyzer_agent, fake_model):
    bad = analysis_reply()
    bad.pop("grammarAnalysis")
    fake_model.queue(bad, bad, bad)
    with pytest.raises(StageError) as excinfo:
        analyzer_agent.analyze_sentence({"sentence": "The weather is beautiful today."})
    detail = excinfo.value.detail
    assert detail.type is ErrorType.STRUCTURED_OUTPUT_ERROR
    assert detail.step is Step.analyze
    assert "grammarAnalysis" in detail.message


def test_prose_around_json_is_tolerated(analyzer_agent, fake_model):
    fake_model.queue("Here is the analysis:\n" + json.dumps(analysis_reply()) + "\nHope it helps!")
    analyzed = analyzer_agent.analyze_sentence({"sentence": "The weather is beautiful today."})
    assert analyzed.result.overall_star_rating == 5


def test_empty_sentence_is_a_validation_error(analyzer_agent, fake_model):
    with pytest.raises(StageError) as excinfo:
        analyzer_agent.analyze_sentence({"sentence": "   "})
    assert excinfo.value.detail.type is ErrorType.VALIDATION
    assert excinfo.value.detail.step is Step.analyze
    assert fake_model.calls == 0


def test_quick_check_returns_verdict(analyzer_agent, fake_model):
    fake_model.queue({"correctness": "partially_correct"})
    assert analyzer_agent.quick_check("Me go store.") is Correctness.partially_correct


def test_quick_check_returns_none_on_failure_without_retrying(analyzer_agent, fake_model, sleeps):
    fake_model.queue(ApiError("server exploded"), {"correctness": "correct"})
    assert analyzer_agent.quick_check("It rains.") is None
    assert fake_model.calls == 1
    assert sleeps == []


def test_get_alternatives(analyzer_agent, fake_model):
    fake_model.queue(analysis_reply())
    assert analyzer_agent.get_alternatives("The weather is beautiful today.") == analysis_reply()["alternatives"]


def test_get_alternatives_swallows_stage_failures(analyzer_agent, fake_model):
    fake_model.queue("no json", "no json", "no json")
    assert analyzer_agent.get_alternatives("The weather is beautiful today.") == []


def test_compare_translation_adds_feedback(analyzer_agent, fake_model):
    fake_model.queue(analysis_reply())
    comparison = analyzer_agent.compare_translation("The weather is beautiful today.", "อากาศดีวันนี้")
    assert comparison.analysis.correctness is Correctness.correct
    assert "captures the meaning well" in comparison.translation_feedback


def test_translation_feedback_for_incorrect_sentence_lists_alternatives():
    result = AnalyzerResult.model_validate(
        analysis_reply(correctness="incorrect", errors="Wrong verb form", alternatives=["I go to school."])
    )
    feedback = translation_feedback("I am go to school.", result)
    assert "Wrong verb form" in feedback
    assert "I go to school." in feedback


def test_analyze_batch_collects_failures(provider, fake_model):
    agent = AnalyzerAgent(provider)
    fake_model.queue(analysis_reply(), "garbage", "garbage", "garbage", analysis_reply(correctness="incorrect"))
    batch = agent.analyze_batch(
        [
            {"sentence": "The weather is beautiful today."},
            AnalyzerInput(sentence="Broken one."),
            {"sentence": "I am go to school."},
        ]
    )
    assert batch.succeeded == 2
    assert batch.failed == 1
    assert batch.errors[0].index == 1
    assert batch.errors[0].sentence == "Broken one."
    assert batch.errors[0].error_type is ErrorType.PARSING_ERROR
    assert batch.results[1].result.correctness is Correctness.incorrect


def test_analyze_batch_reports_non_mapping_items(provider, fake_model):
    agent = AnalyzerAgent(provider)
    batch = agent.analyze_batch(["Just a bare string."])
    assert batch.succeeded == 0
    assert batch.failed == 1
    assert batch.errors[0].sentence == "Just a bare string."
    assert batch.errors[0].error_type is ErrorType.VALIDATION
    assert fake_model.calls == 0
