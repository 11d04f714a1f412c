"""Flow 基盤ユーティリティ。LangGraph の生成とモデル出力の JSON 抽出を提供する。"""

from __future__ import annotations

import json
from typing import Any

from langgraph.graph import END, StateGraph

from ..errors import ParsingError


def create_state_graph(state_schema: type) -> StateGraph:
    """Create a `StateGraph` over ``state_schema`` (a TypedDict).

    ノードは部分的な dict を返し、LangGraph がキー単位で状態へマージする。
    """

    return StateGraph(state_schema)


def strip_code_fences(text: str) -> str:
    """Remove surrounding Markdown code fences like ```json ... ``` if present.

    入力文字列の前後に存在する Markdown のコードフェンスを取り除く。
    """
    t = str(text or "").strip()
    if t.startswith("```"):
        # 先頭フェンス（言語指定を含む行）を除去
        t2 = t[3:]
        nl = t2.find("\n")
        if nl != -1:
            t2 = t2[nl + 1 :]
        # 末尾フェンスを除去
        if t2.endswith("```"):
            t2 = t2[:-3]
        t = t2.strip()
    return t


def extract_json_block(text: str) -> str | None:
    """Return the first balanced ``{...}`` substring, or None.

    文字列リテラル内の波括弧とエスケープは無視して対応を取る。
    """

    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for idx in range(start, len(text)):
            ch = text[idx]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start : idx + 1]
        # 閉じられていない開始位置は捨てて次の候補を探す
        start = text.find("{", start + 1)
    return None


def parse_json_object(raw: str, *, source: str) -> dict[str, Any]:
    """Extract and decode the JSON object embedded in a model reply.

    抽出できない/デコードできない場合は `ParsingError` を送出する。
    """

    cleaned = strip_code_fences(raw)
    block = extract_json_block(cleaned)
    if block is None:
        raise ParsingError(f"No JSON found in {source} response", context={"preview": cleaned[:200]})
    try:
        data = json.loads(block)
    except json.JSONDecodeError as exc:
        raise ParsingError(f"Invalid JSON response from {source}: {exc.msg}") from exc
    if not isinstance(data, dict):  # pragma: no cover - balanced braces always decode to an object
        raise ParsingError(f"Expected a JSON object from {source}")
    return data


__all__ = [
    "END",
    "StateGraph",
    "create_state_graph",
    "extract_json_block",
    "parse_json_object",
    "strip_code_fences",
]
