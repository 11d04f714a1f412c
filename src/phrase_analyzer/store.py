from __future__ import annotations

import json
import sqlite3
import uuid
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

from pydantic import ValidationError

from .logging import get_logger
from .models.common import Correctness, LearnerLevel
from .models.phrase import BulkCreateResult, BulkItemError, Phrase, PhraseStats, PhraseUpdate, SaveInput

log = get_logger("phrase_store")

# この回数に達するまでは復習対象
REVIEW_TARGET_COUNT = 3
REVIEW_INTERVAL = timedelta(days=7)


class PhraseStore:
    """SQLite-backed persistence for saved phrases.

    Responsibilities:
    - Phrase CRUD scoped by user id (a phrase is only visible to its owner)
    - Filtering (difficulty / bookmarked / tag / correctness), search and stats
    - Review tracking (review count and last review time) and bulk import

    Notes:
    - tags と解析結果（analysis）は JSON 文字列として保存する
    - correctness は解析結果から取り出して列に複製し、集計と絞り込みに使う
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path
        self._ensure_dirs()
        self._init_db()

    # --- low-level helpers ---
    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=10.0, isolation_level=None, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        with conn:
            conn.execute("pragma journal_mode=WAL;")
        return conn

    def _ensure_dirs(self) -> None:
        p = Path(self.db_path)
        if p.parent and not p.parent.exists():
            p.parent.mkdir(parents=True, exist_ok=True)

    def _init_db(self) -> None:
        conn = self._connect()
        try:
            with conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS phrases (
                        id TEXT PRIMARY KEY,
                        user_id TEXT NOT NULL,
                        english_phrase TEXT NOT NULL,
                        user_translation TEXT NOT NULL,
                        context TEXT NOT NULL DEFAULT '',
                        difficulty TEXT NOT NULL DEFAULT 'beginner',
                        is_bookmarked INTEGER NOT NULL DEFAULT 0,
                        tags TEXT NOT NULL DEFAULT '[]',
                        correctness TEXT,
                        analysis TEXT,
                        review_count INTEGER NOT NULL DEFAULT 0,
                        last_reviewed_at TEXT,
                        created_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    );
                    """
                )
                # 復習列の無い旧スキーマに列を足す
                columns = {r["name"] for r in conn.execute("PRAGMA table_info(phrases);")}
                if "review_count" not in columns:
                    conn.execute("ALTER TABLE phrases ADD COLUMN review_count INTEGER NOT NULL DEFAULT 0;")
                if "last_reviewed_at" not in columns:
                    conn.execute("ALTER TABLE phrases ADD COLUMN last_reviewed_at TEXT;")
                conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_phrases_user_created ON phrases(user_id, created_at);"
                )
        finally:
            conn.close()

    @staticmethod
    def _now() -> str:
        return datetime.now(UTC).isoformat()

    @staticmethod
    def _correctness_of(analysis: Optional[dict[str, Any]]) -> Optional[str]:
        if not analysis:
            return None
        raw = analysis.get("correctness")
        try:
            return Correctness(raw).value
        except ValueError:
            return None

    @staticmethod
    def _row_to_phrase(row: sqlite3.Row) -> Phrase:
        return Phrase(
            id=row["id"],
            user_id=row["user_id"],
            english_phrase=row["english_phrase"],
            user_translation=row["user_translation"],
            context=row["context"] or "",
            difficulty=row["difficulty"],
            is_bookmarked=bool(row["is_bookmarked"]),
            tags=json.loads(row["tags"] or "[]"),
            correctness=row["correctness"],
            analysis=json.loads(row["analysis"]) if row["analysis"] else None,
            review_count=row["review_count"] or 0,
            last_reviewed_at=row["last_reviewed_at"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    # --- CRUD ---
    def create_phrase(self, user_id: str, data: SaveInput) -> Phrase:
        phrase_id = uuid.uuid4().hex
        now = self._now()
        conn = self._connect()
        try:
            with conn:
                conn.execute(
                    """
                    INSERT INTO phrases(
                        id, user_id, english_phrase, user_translation, context, difficulty,
                        is_bookmarked, tags, correctness, analysis, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
                    """,
                    (
                        phrase_id,
                        user_id,
                        data.english_phrase,
                        data.user_translation,
                        data.context or "",
                        data.difficulty.value,
                        int(data.is_bookmarked),
                        json.dumps(data.tags, ensure_ascii=False),
                        self._correctness_of(data.analysis),
                        json.dumps(data.analysis, ensure_ascii=False) if data.analysis is not None else None,
                        now,
                        now,
                    ),
                )
        finally:
            conn.close()
        log.info("phrase_created", action="create_phrase", phrase_id=phrase_id, user_id=user_id)
        created = self.get_phrase(phrase_id, user_id)
        assert created is not None
        return created

    def get_phrase(self, phrase_id: str, user_id: str) -> Optional[Phrase]:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT * FROM phrases WHERE id = ? AND user_id = ?;",
                (phrase_id, user_id),
            ).fetchone()
        finally:
            conn.close()
        return self._row_to_phrase(row) if row else None

    def update_phrase(self, phrase_id: str, user_id: str, changes: PhraseUpdate) -> Optional[Phrase]:
        fields = changes.model_dump(exclude_unset=True)
        assignments: list[str] = []
        params: list[Any] = []
        for key, value in fields.items():
            if value is None and key != "analysis":
                continue
            if key == "tags":
                value = json.dumps(value, ensure_ascii=False)
            elif key == "analysis":
                assignments.append("correctness = ?")
                params.append(self._correctness_of(value))
                value = json.dumps(value, ensure_ascii=False) if value is not None else None
            elif key == "difficulty":
                value = LearnerLevel(value).value
            elif key == "is_bookmarked":
                value = int(value)
            assignments.append(f"{key} = ?")
            params.append(value)
        if not assignments:
            return self.get_phrase(phrase_id, user_id)

        assignments.append("updated_at = ?")
        params.extend([self._now(), phrase_id, user_id])
        conn = self._connect()
        try:
            with conn:
                cur = conn.execute(
                    f"UPDATE phrases SET {', '.join(assignments)} WHERE id = ? AND user_id = ?;",
                    params,
                )
                updated = cur.rowcount > 0
        finally:
            conn.close()
        if not updated:
            return None
        log.info("phrase_updated", action="update_phrase", phrase_id=phrase_id, fields=sorted(fields))
        return self.get_phrase(phrase_id, user_id)

    def delete_phrase(self, phrase_id: str, user_id: str) -> bool:
        conn = self._connect()
        try:
            with conn:
                cur = conn.execute(
                    "DELETE FROM phrases WHERE id = ? AND user_id = ?;",
                    (phrase_id, user_id),
                )
                deleted = cur.rowcount > 0
        finally:
            conn.close()
        if deleted:
            log.info("phrase_deleted", action="delete_phrase", phrase_id=phrase_id, user_id=user_id)
        return deleted

    # --- queries ---
    def list_phrases(
        self,
        user_id: str,
        *,
        difficulty: Optional[LearnerLevel] = None,
        bookmarked: Optional[bool] = None,
        tag: Optional[str] = None,
        correctness: Optional[Correctness] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Phrase], int]:
        """Return one page of a user's phrases (newest first) and the total count."""

        where = ["user_id = ?"]
        params: list[Any] = [user_id]
        if difficulty is not None:
            where.append("difficulty = ?")
            params.append(LearnerLevel(difficulty).value)
        if bookmarked is not None:
            where.append("is_bookmarked = ?")
            params.append(int(bookmarked))
        if tag:
            where.append("EXISTS (SELECT 1 FROM json_each(phrases.tags) WHERE json_each.value = ?)")
            params.append(tag.strip())
        if correctness is not None:
            where.append("correctness = ?")
            params.append(Correctness(correctness).value)
        clause = " AND ".join(where)
        conn = self._connect()
        try:
            total = conn.execute(f"SELECT COUNT(*) FROM phrases WHERE {clause};", params).fetchone()[0]
            rows = conn.execute(
                f"SELECT * FROM phrases WHERE {clause} ORDER BY created_at DESC, id LIMIT ? OFFSET ?;",
                [*params, max(1, limit), max(0, offset)],
            ).fetchall()
        finally:
            conn.close()
        return [self._row_to_phrase(r) for r in rows], int(total)

    def search_phrases(self, user_id: str, term: str, *, limit: int = 50) -> list[Phrase]:
        """Case-insensitive substring search over phrase, translation and context."""

        # LIKE のワイルドカードは文字として扱う
        escaped = term.strip().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        needle = f"%{escaped}%"
        conn = self._connect()
        try:
            rows = conn.execute(
                """
                SELECT * FROM phrases
                WHERE user_id = ?
                  AND (
                    english_phrase LIKE ? ESCAPE '\\'
                    OR user_translation LIKE ? ESCAPE '\\'
                    OR context LIKE ? ESCAPE '\\'
                  )
                ORDER BY created_at DESC
                LIMIT ?;
                """,
                (user_id, needle, needle, needle, max(1, limit)),
            ).fetchall()
        finally:
            conn.close()
        return [self._row_to_phrase(r) for r in rows]

    # --- review ---
    def phrases_for_review(self, user_id: str, *, limit: int = 10) -> list[Phrase]:
        """Phrases due for review: fewer than 3 correct reviews, or not reviewed for a week.

        復習回数の少ない順、同数なら最終復習が古い順（未復習が先頭）。
        """
        cutoff = (datetime.now(UTC) - REVIEW_INTERVAL).isoformat()
        conn = self._connect()
        try:
            rows = conn.execute(
                """
                SELECT * FROM phrases
                WHERE user_id = ?
                  AND (review_count < ? OR last_reviewed_at < ?)
                ORDER BY review_count ASC, last_reviewed_at ASC, created_at ASC
                LIMIT ?;
                """,
                (user_id, REVIEW_TARGET_COUNT, cutoff, max(1, limit)),
            ).fetchall()
        finally:
            conn.close()
        return [self._row_to_phrase(r) for r in rows]

    def update_review_status(self, phrase_id: str, user_id: str, is_correct: bool) -> Optional[Phrase]:
        now = self._now()
        conn = self._connect()
        try:
            with conn:
                cur = conn.execute(
                    """
                    UPDATE phrases
                    SET review_count = CASE WHEN ? THEN review_count + 1 ELSE MAX(0, review_count - 1) END,
                        last_reviewed_at = ?,
                        updated_at = ?
                    WHERE id = ? AND user_id = ?;
                    """,
                    (int(is_correct), now, now, phrase_id, user_id),
                )
                updated = cur.rowcount > 0
        finally:
            conn.close()
        if not updated:
            return None
        log.info("phrase_reviewed", action="update_review_status", phrase_id=phrase_id, is_correct=is_correct)
        return self.get_phrase(phrase_id, user_id)

    def bulk_create_phrases(
        self, user_id: str, items: Iterable[SaveInput | Mapping[str, Any]]
    ) -> BulkCreateResult:
        """Create phrases one by one; a failing item is reported and the rest still run."""

        result = BulkCreateResult()
        for index, item in enumerate(items):
            try:
                data = item if isinstance(item, SaveInput) else SaveInput.model_validate(item)
                result.data.append(self.create_phrase(user_id, data))
            except (ValidationError, sqlite3.Error) as exc:
                log.warning("bulk_item_failed", action="bulk_create_phrases", index=index, error=str(exc))
                result.errors.append(BulkItemError(index=index, error=str(exc)))
        result.success_count = len(result.data)
        result.error_count = len(result.errors)
        log.info(
            "phrases_bulk_created",
            action="bulk_create_phrases",
            user_id=user_id,
            success_count=result.success_count,
            error_count=result.error_count,
        )
        return result

    def user_stats(self, user_id: str) -> PhraseStats:
        conn = self._connect()
        try:
            total, bookmarked = conn.execute(
                "SELECT COUNT(*), COALESCE(SUM(is_bookmarked), 0) FROM phrases WHERE user_id = ?;",
                (user_id,),
            ).fetchone()
            by_difficulty = {
                row[0]: row[1]
                for row in conn.execute(
                    "SELECT difficulty, COUNT(*) FROM phrases WHERE user_id = ? GROUP BY difficulty;",
                    (user_id,),
                )
            }
            by_correctness = {
                row[0]: row[1]
                for row in conn.execute(
                    """
                    SELECT correctness, COUNT(*) FROM phrases
                    WHERE user_id = ? AND correctness IS NOT NULL
                    GROUP BY correctness;
                    """,
                    (user_id,),
                )
            }
        finally:
            conn.close()
        return PhraseStats(
            total=int(total),
            bookmarked=int(bookmarked),
            by_difficulty=by_difficulty,
            by_correctness=by_correctness,
        )

    def user_tags(self, user_id: str) -> list[str]:
        conn = self._connect()
        try:
            rows = conn.execute(
                """
                SELECT DISTINCT json_each.value FROM phrases, json_each(phrases.tags)
                WHERE phrases.user_id = ?
                ORDER BY json_each.value;
                """,
                (user_id,),
            ).fetchall()
        finally:
            conn.close()
        return [r[0] for r in rows]
