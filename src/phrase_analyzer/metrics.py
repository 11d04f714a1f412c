from __future__ import annotations

import math
import threading
from collections import Counter, deque
from typing import Any, Deque, Dict


class _PathWindow:
    """Rolling latency window and status histogram for one route."""

    def __init__(self, window_size: int) -> None:
        self.latencies_ms: Deque[float] = deque(maxlen=window_size)
        self.statuses: Counter[int] = Counter()
        self.timeouts = 0

    def add(self, latency_ms: float, status_code: int, timed_out: bool) -> None:
        self.latencies_ms.append(latency_ms)
        self.statuses[status_code] += 1
        # 解析 API は期限切れを 408 で返す
        if timed_out or status_code == 408:
            self.timeouts += 1

    def summary(self) -> Dict[str, Any]:
        window = sorted(self.latencies_ms)
        return {
            "count": sum(self.statuses.values()),
            "p50_ms": round(percentile(window, 50), 2),
            "p95_ms": round(percentile(window, 95), 2),
            "errors": sum(n for code, n in self.statuses.items() if code >= 500),
            "client_errors": sum(n for code, n in self.statuses.items() if 400 <= code < 500),
            "timeouts": self.timeouts,
            "status": {str(code): n for code, n in sorted(self.statuses.items())},
        }


class MetricsRegistry:
    """Per-route request metrics kept in memory for `GET /metrics`.

    ステータスコードから成功/クライアントエラー/サーバエラーを分類する。
    解析失敗は 4xx/5xx の応答として返るため、例外の有無では判定しない。
    """

    def __init__(self, window_size: int = 200) -> None:
        self._window_size = window_size
        self._lock = threading.Lock()
        self._paths: Dict[str, _PathWindow] = {}

    def record(self, path: str, latency_ms: float, status_code: int, *, timed_out: bool = False) -> None:
        with self._lock:
            window = self._paths.get(path)
            if window is None:
                window = self._paths[path] = _PathWindow(self._window_size)
            window.add(latency_ms, status_code, timed_out)

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            return {path: window.summary() for path, window in sorted(self._paths.items())}

    def reset(self) -> None:
        with self._lock:
            self._paths.clear()


def percentile(sorted_values: list[float], pct: float) -> float:
    """Nearest-rank percentile of an already sorted list (0.0 when empty)."""
    if not sorted_values:
        return 0.0
    rank = max(1, math.ceil(pct / 100.0 * len(sorted_values)))
    return sorted_values[min(rank, len(sorted_values)) - 1]
