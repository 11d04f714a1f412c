from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Any, Iterator, Optional

from .config import settings
from .logging import logger

try:  # pragma: no cover - optional dependency in tests
    from langfuse import Langfuse
except ImportError:  # pragma: no cover
    Langfuse = None  # type: ignore


_langfuse_client: Any | None = None


def is_langfuse_enabled() -> bool:
    if not settings.langfuse_enabled or Langfuse is None:
        return False
    return bool(settings.langfuse_public_key and settings.langfuse_secret_key and settings.langfuse_host)


def get_langfuse() -> Any | None:
    global _langfuse_client
    if _langfuse_client is not None:
        return _langfuse_client
    if not is_langfuse_enabled():
        return None
    try:
        _langfuse_client = Langfuse(
            public_key=settings.langfuse_public_key,  # type: ignore[arg-type]
            secret_key=settings.langfuse_secret_key,  # type: ignore[arg-type]
            host=settings.langfuse_host,  # type: ignore[arg-type]
            release=settings.langfuse_release,
        )
        return _langfuse_client
    except Exception as exc:  # pragma: no cover - init happens once
        logger.warning("langfuse_init_failed", component="observability", error=repr(exc))
        return None


def _record(span_obj: Any, **fields: Any) -> None:
    # v3: update(...) / 旧クライアント: set_attribute(...)
    if span_obj is None:
        return
    if hasattr(span_obj, "update"):
        span_obj.update(**fields)
    elif hasattr(span_obj, "set_attribute"):
        for key, value in fields.items():
            span_obj.set_attribute(key, str(value)[:40000])


@contextmanager
def span(*, name: str, input: Optional[Any] = None, metadata: Optional[dict[str, Any]] = None) -> Iterator[Any | None]:
    """Open a Langfuse span around a model call when tracing is enabled.

    Langfuse が無効な場合は None を yield するだけで、呼び出し側の処理には
    一切影響しない。スパン内で発生した例外はエラー情報を付与して再送出する。
    """

    lf = get_langfuse()
    if lf is None or not (hasattr(lf, "start_as_current_span") or hasattr(lf, "start_span")):
        yield None
        return

    start = time.time()
    try:
        cm = lf.start_as_current_span(name=name) if hasattr(lf, "start_as_current_span") else lf.start_span(name=name)
    except Exception as exc:  # pragma: no cover
        logger.warning("langfuse_span_create_failed", component="observability", error=repr(exc))
        yield None
        return

    with cm as current:
        if input is not None:
            _record(current, input=str(input)[:40000])
        if metadata:
            _record(current, metadata=metadata)
        try:
            yield current
        except Exception as exc:
            _record(current, metadata={"error": str(exc)[:500]})
            raise
        finally:
            _record(current, metadata={"duration_ms": (time.time() - start) * 1000.0})


def update_span_output(span_obj: Any, content: str) -> None:
    """Attach the (truncated) model output to an open span."""

    _record(span_obj, output=content[:40000])
