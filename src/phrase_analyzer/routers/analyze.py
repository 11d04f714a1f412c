from __future__ import annotations

import json
from functools import partial
from typing import Any

import anyio  # オフロード用
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from ..errors import ErrorClassifier
from ..flows.workflow import EnglishAnalysisWorkflow
from ..logging import logger
from ..models.common import ErrorType, Step
from ..models.request import AnalysisResponse

router = APIRouter(tags=["analyze"])

# エラー種別 → HTTP ステータス
STATUS_BY_ERROR_TYPE: dict[ErrorType, int] = {
    ErrorType.VALIDATION: 400,
    ErrorType.API_TIMEOUT: 408,
    ErrorType.API_RATE_LIMIT: 429,
    ErrorType.NETWORK_ERROR: 503,
    ErrorType.API_ERROR: 502,
    ErrorType.PARSING_ERROR: 502,
    ErrorType.STRUCTURED_OUTPUT_ERROR: 502,
    ErrorType.UNKNOWN: 500,
}


def status_for(response: AnalysisResponse) -> int:
    if response.success or response.error is None:
        return 200
    return STATUS_BY_ERROR_TYPE.get(response.error.type, 500)


def _workflow(request: Request) -> EnglishAnalysisWorkflow:
    return request.app.state.workflow


@router.post("/analyze")
async def analyze_phrase(request: Request) -> JSONResponse:
    """Analyze one English phrase through the filter → analyzer pipeline.

    本文は camelCase の JSON（`englishPhrase`, `userTranslation`, `context`, `options`）。
    入力検証の失敗も含め、失敗は常に `{success: false, error}` で返し、
    ステータスはエラー種別から決定する。
    """
    try:
        payload: Any = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        detail = ErrorClassifier().validation_error(Step.filter, "Request body must be valid JSON")
        response = AnalysisResponse.fail(detail)
    else:
        workflow = _workflow(request)
        # anyio.to_thread.run_sync はキーワード引数を転送しないため partial で包む
        response = await anyio.to_thread.run_sync(partial(workflow.execute, payload))

    status_code = status_for(response)
    logger.info(
        "analyze_response",
        component="http",
        action="analyze",
        success=response.success,
        status_code=status_code,
        error_type=response.error.type.value if response.error else None,
    )
    return JSONResponse(status_code=status_code, content=response.to_wire())


@router.get("/analyze")
async def analyze_health(request: Request) -> JSONResponse:
    """Health probe for the analysis pipeline plus its static configuration.

    両ステージが正常なら 200、いずれかが異常なら 503 を返す。
    """
    workflow = _workflow(request)
    health = await anyio.to_thread.run_sync(workflow.health_check)
    config = workflow.get_config()
    content = {
        "status": health.status,
        "health": health.to_wire(),
        "config": config.to_wire(),
    }
    return JSONResponse(status_code=200 if health.is_healthy else 503, content=content)
