from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware

from . import __version__
from .config import Settings, settings as default_settings
from .errors import ErrorClassifier
from .flows.analyzer import AnalyzerAgent
from .flows.sentence_filter import SentenceFilterAgent
from .flows.workflow import EnglishAnalysisWorkflow
from .logging import configure_logging, logger
from .metrics import MetricsRegistry
from .middleware import AccessLogAndMetricsMiddleware, RequestIDMiddleware
from .providers import AIProviderManager
from .routers import analyze, config as cfg, health, phrases
from .store import PhraseStore


def build_workflow(settings: Settings, provider: AIProviderManager | None = None) -> EnglishAnalysisWorkflow:
    """Wire the provider, both stages and the orchestrator from settings.

    プロセス全体のシングルトンは作らず、構成ルートで明示的に組み立てる。
    テストではフェイクのモデルを持つ provider を渡して差し替える。
    """
    provider = provider or AIProviderManager.from_settings(settings)
    classifier = ErrorClassifier(
        base_delay_ms=settings.retry_base_delay_ms,
        max_delay_ms=settings.retry_max_delay_ms,
    )
    filter_agent = SentenceFilterAgent(
        provider,
        classifier=classifier,
        max_length=settings.max_phrase_length,
        confidence_threshold=settings.filter_confidence_threshold,
    )
    analyzer_agent = AnalyzerAgent(provider, classifier=classifier)
    return EnglishAnalysisWorkflow(filter_agent, analyzer_agent, classifier=classifier)


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    # 共有スレッドプールとモデルクライアントを解放
    app.state.workflow.provider.shutdown()
    logger.info("app_shutdown", component="app", action="shutdown")


def create_app(
    settings: Optional[Settings] = None,
    *,
    workflow: EnglishAnalysisWorkflow | None = None,
    store: PhraseStore | None = None,
    registry: MetricsRegistry | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application instance."""
    settings = settings or default_settings
    configure_logging()
    app = FastAPI(title="Phrase Analyzer API", version=__version__, lifespan=_lifespan)

    app.state.settings = settings
    app.state.workflow = workflow or build_workflow(settings)
    app.state.store = store or PhraseStore(settings.phrase_db_path)
    app.state.metrics = registry or MetricsRegistry()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    # Starlette では後から追加したミドルウェアが外側で実行される。
    # AccessLog が RequestID の外側に位置し、採番済みの request_id をログへ出す。
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(AccessLogAndMetricsMiddleware, registry=app.state.metrics)

    app.include_router(analyze.router, prefix="/api")  # 解析パイプライン
    app.include_router(phrases.router, prefix="/api")  # フレーズ保存
    app.include_router(health.router)  # ヘルスチェック/メトリクス
    app.include_router(cfg.router, prefix="/api")  # フロント向け実行時設定

    logger.info(
        "app_created",
        component="app",
        action="create_app",
        environment=settings.environment,
        llm_provider=settings.llm_provider,
        llm_model=settings.llm_model,
    )
    return app


_app: FastAPI | None = None


def __getattr__(name: str) -> FastAPI:
    # `uvicorn phrase_analyzer.main:app` 用。import 時には生成しない
    global _app
    if name == "app":
        if _app is None:
            _app = create_app()
        return _app
    raise AttributeError(name)
