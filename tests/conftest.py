"""Shared fixtures: a scripted model behind a real provider, agents, workflow and app."""

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from phrase_analyzer.config import Settings
from phrase_analyzer.errors import ErrorClassifier
from phrase_analyzer.flows.analyzer import AnalyzerAgent
from phrase_analyzer.flows.sentence_filter import SentenceFilterAgent
from phrase_analyzer.flows.workflow import EnglishAnalysisWorkflow
from phrase_analyzer.main import create_app
from phrase_analyzer.metrics import MetricsRegistry
from phrase_analyzer.providers import AIProviderManager, ProviderConfig
from phrase_analyzer.store import PhraseStore
from tests.fakes import FakeChatModel


@pytest.fixture()
def fake_model() -> FakeChatModel:
    return FakeChatModel()


@pytest.fixture()
def sleeps() -> list[float]:
    # バックオフの待機秒数を記録するだけで実際には待たない
    return []


@pytest.fixture()
def provider_config() -> ProviderConfig:
    return ProviderConfig(api_key="sk-test-0123456789", timeout_ms=2000, max_retries=3)


@pytest.fixture()
def provider(fake_model: FakeChatModel, sleeps: list[float], provider_config: ProviderConfig) -> AIProviderManager:
    return AIProviderManager(provider_config, model_factory=lambda cfg: fake_model, sleep=sleeps.append)


@pytest.fixture()
def classifier() -> ErrorClassifier:
    return ErrorClassifier()


@pytest.fixture()
def filter_agent(provider: AIProviderManager, classifier: ErrorClassifier) -> SentenceFilterAgent:
    return SentenceFilterAgent(provider, classifier=classifier)


@pytest.fixture()
def analyzer_agent(provider: AIProviderManager, classifier: ErrorClassifier) -> AnalyzerAgent:
    return AnalyzerAgent(provider, classifier=classifier)


@pytest.fixture()
def workflow(
    filter_agent: SentenceFilterAgent,
    analyzer_agent: AnalyzerAgent,
    classifier: ErrorClassifier,
) -> EnglishAnalysisWorkflow:
    return EnglishAnalysisWorkflow(filter_agent, analyzer_agent, classifier=classifier)


@pytest.fixture()
def store(tmp_path: Path) -> PhraseStore:
    return PhraseStore(str(tmp_path / "phrases.sqlite3"))


@pytest.fixture()
def app_settings(tmp_path: Path) -> Settings:
    return Settings(
        environment="test",
        openai_api_key="sk-test-0123456789",
        phrase_db_path=str(tmp_path / "phrases.sqlite3"),
    )


@pytest.fixture()
def client(app_settings: Settings, workflow: EnglishAnalysisWorkflow, store: PhraseStore) -> TestClient:
    app = create_app(app_settings, workflow=workflow, store=store, registry=MetricsRegistry())
    return TestClient(app)
