from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

router = APIRouter(tags=["health"])


@router.get("/healthz")
def health_check() -> dict[str, str]:
    """Simple health check endpoint.

    ライブネス確認用の簡易エンドポイント。モデル呼出しは行わない。
    解析パイプラインの疎通確認は `GET /api/analyze` を使う。
    """
    return {"status": "ok"}


@router.get("/metrics")
def metrics(request: Request) -> JSONResponse:
    """Return in-memory metrics snapshot.

    p95/エラー/タイムアウト/件数をパス別に返す簡易メトリクス。
    """
    return JSONResponse(content={"paths": request.app.state.metrics.snapshot()})
