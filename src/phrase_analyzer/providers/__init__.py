"""プロバイダー向けの共有ステートと公開APIを管理するパッケージ。"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor

DEFAULT_MAX_WORKERS = 16

# モデル呼び出しを試行毎のタイムアウト付きで実行するためのスレッドプール。
# shutdown 後、またはより大きいサイズを要求された場合は作り直す。
_llm_executor: ThreadPoolExecutor | None = None
_llm_executor_size = 0
_executor_lock = threading.Lock()


def _get_llm_executor(max_workers: int = DEFAULT_MAX_WORKERS) -> ThreadPoolExecutor:
    """ゲートウェイが共有するスレッドプールを返す。"""

    global _llm_executor, _llm_executor_size
    with _executor_lock:
        if _llm_executor is None or _llm_executor_size < max_workers:
            previous = _llm_executor
            _llm_executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="llm")
            _llm_executor_size = max_workers
            if previous is not None:
                # 実行中の試行は旧プールで完了させる
                previous.shutdown(wait=False)
        return _llm_executor


def _shutdown_llm_executor() -> None:
    """共有スレッドプールを解放する。実行中の試行は待たずに破棄する。"""

    global _llm_executor, _llm_executor_size
    with _executor_lock:
        executor, _llm_executor = _llm_executor, None
        _llm_executor_size = 0
    if executor is not None:
        executor.shutdown(wait=False, cancel_futures=True)


from .llm import (  # noqa: E402
    AIProviderManager,
    ChatModel,
    OpenAIChatModel,
    ProviderConfig,
    RetryStats,
)

__all__ = [
    "AIProviderManager",
    "ChatModel",
    "OpenAIChatModel",
    "ProviderConfig",
    "RetryStats",
]
