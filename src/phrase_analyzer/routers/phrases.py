from __future__ import annotations

from functools import partial
from typing import Optional

import anyio  # オフロード用
from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request

from ..logging import logger
from ..models.common import Correctness, LearnerLevel
from ..models.phrase import (
    BulkCreateInput,
    BulkCreateResult,
    Phrase,
    PhraseListResponse,
    PhraseStats,
    PhraseUpdate,
    ReviewInput,
    SaveInput,
)
from ..store import PhraseStore

router = APIRouter(tags=["phrases"])


def _store(request: Request) -> PhraseStore:
    return request.app.state.store


def require_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    """Resolve the caller from `X-User-Id`.

    認証は上流（ゲートウェイ/フロント）の責務とし、ここでは必須ヘッダの存在だけを確認する。
    """
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="X-User-Id header is required")
    return user_id


@router.post("/phrases", response_model=Phrase, status_code=201)
async def create_phrase(
    req: SaveInput,
    request: Request,
    user_id: str = Depends(require_user_id),
) -> Phrase:
    """Save a phrase together with its (opaque) analysis payload."""
    store = _store(request)
    phrase = await anyio.to_thread.run_sync(partial(store.create_phrase, user_id, req))
    logger.info("phrase_saved", component="http", action="create_phrase", phrase_id=phrase.id)
    return phrase


@router.get("/phrases", response_model=PhraseListResponse)
async def list_phrases(
    request: Request,
    user_id: str = Depends(require_user_id),
    difficulty: Optional[LearnerLevel] = Query(default=None),
    bookmarked: Optional[bool] = Query(default=None),
    tag: Optional[str] = Query(default=None, max_length=50),
    correctness: Optional[Correctness] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> PhraseListResponse:
    store = _store(request)
    items, total = await anyio.to_thread.run_sync(
        partial(
            store.list_phrases,
            user_id,
            difficulty=difficulty,
            bookmarked=bookmarked,
            tag=tag,
            correctness=correctness,
            limit=limit,
            offset=offset,
        )
    )
    return PhraseListResponse(items=items, total=total, limit=limit, offset=offset)


@router.get("/phrases/search", response_model=list[Phrase])
async def search_phrases(
    request: Request,
    q: str = Query(min_length=1, max_length=200),
    limit: int = Query(default=50, ge=1, le=200),
    user_id: str = Depends(require_user_id),
) -> list[Phrase]:
    store = _store(request)
    return await anyio.to_thread.run_sync(partial(store.search_phrases, user_id, q, limit=limit))


@router.get("/phrases/stats", response_model=PhraseStats)
async def phrase_stats(request: Request, user_id: str = Depends(require_user_id)) -> PhraseStats:
    store = _store(request)
    return await anyio.to_thread.run_sync(partial(store.user_stats, user_id))


@router.get("/phrases/tags", response_model=list[str])
async def phrase_tags(request: Request, user_id: str = Depends(require_user_id)) -> list[str]:
    store = _store(request)
    return await anyio.to_thread.run_sync(partial(store.user_tags, user_id))


@router.post("/phrases/bulk", response_model=BulkCreateResult)
async def bulk_create_phrases(
    req: BulkCreateInput,
    request: Request,
    user_id: str = Depends(require_user_id),
) -> BulkCreateResult:
    """Import several phrases; invalid items are reported per index instead of failing the batch."""
    store = _store(request)
    return await anyio.to_thread.run_sync(partial(store.bulk_create_phrases, user_id, req.phrases))


@router.get("/phrases/review", response_model=list[Phrase])
async def phrases_for_review(
    request: Request,
    limit: int = Query(default=10, ge=1, le=100),
    user_id: str = Depends(require_user_id),
) -> list[Phrase]:
    store = _store(request)
    return await anyio.to_thread.run_sync(partial(store.phrases_for_review, user_id, limit=limit))


@router.get("/phrases/{phrase_id}", response_model=Phrase)
async def get_phrase(phrase_id: str, request: Request, user_id: str = Depends(require_user_id)) -> Phrase:
    store = _store(request)
    phrase = await anyio.to_thread.run_sync(partial(store.get_phrase, phrase_id, user_id))
    if phrase is None:
        raise HTTPException(status_code=404, detail="Phrase not found")
    return phrase


@router.patch("/phrases/{phrase_id}", response_model=Phrase)
async def update_phrase(
    phrase_id: str,
    changes: PhraseUpdate,
    request: Request,
    user_id: str = Depends(require_user_id),
) -> Phrase:
    store = _store(request)
    phrase = await anyio.to_thread.run_sync(partial(store.update_phrase, phrase_id, user_id, changes))
    if phrase is None:
        raise HTTPException(status_code=404, detail="Phrase not found")
    return phrase


@router.delete("/phrases/{phrase_id}")
async def delete_phrase(phrase_id: str, request: Request, user_id: str = Depends(require_user_id)) -> dict[str, str]:
    store = _store(request)
    deleted = await anyio.to_thread.run_sync(partial(store.delete_phrase, phrase_id, user_id))
    if not deleted:
        raise HTTPException(status_code=404, detail="Phrase not found")
    return {"status": "deleted"}


@router.post("/phrases/{phrase_id}/review", response_model=Phrase)
async def review_phrase(
    phrase_id: str,
    req: ReviewInput,
    request: Request,
    user_id: str = Depends(require_user_id),
) -> Phrase:
    store = _store(request)
    phrase = await anyio.to_thread.run_sync(
        partial(store.update_review_status, phrase_id, user_id, req.is_correct)
    )
    if phrase is None:
        raise HTTPException(status_code=404, detail="Phrase not found")
    return phrase
