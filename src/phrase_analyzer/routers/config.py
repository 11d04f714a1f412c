from fastapi import APIRouter, Request

router = APIRouter(tags=["config"])


@router.get("/config")
def get_runtime_config(request: Request) -> dict[str, object]:
    """Expose runtime config needed by the frontend.

    フロントエンドが同期すべき実行時設定を返す。リクエストのタイムアウトは
    ゲートウェイの試行毎タイムアウト × 最大試行回数を目安にできるよう両方返す。
    """
    workflow_config = request.app.state.workflow.get_config()
    return {
        "request_timeout_ms": workflow_config.timeout_ms,
        "retry_attempts": workflow_config.retry_attempts,
        "max_input_length": workflow_config.max_input_length,
        "llm_model": workflow_config.model,
        "version": workflow_config.version,
    }
