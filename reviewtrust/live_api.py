"""WebSocket endpoints backed by the live review feed and the debounced search."""

import asyncio
from typing import Optional

import structlog
from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect, status
from fastapi.encoders import jsonable_encoder

from .auth import resolve_identity
from .crud import get_business
from .database import SessionLocal
from .directory import search_suggestions
from .exceptions import NotFoundError
from .feed import ReviewFeed
from .typeahead import SuggestionFeed

logger = structlog.get_logger(__name__)

router = APIRouter()


def _authorize_feed(business_id: str, token: Optional[str]) -> Optional[str]:
    """Check the business is visible and return the viewer id (None for guests)."""
    with SessionLocal() as db:
        get_business(db, business_id)
        if not token:
            return None
        return resolve_identity(db, token).user_id


def _search(query: str, limit: int) -> list:
    with SessionLocal() as db:
        return search_suggestions(db, query, limit)


@router.websocket("/api/businesses/{business_id}/reviews/live")
async def business_reviews_live(websocket: WebSocket, business_id: str, token: Optional[str] = None):
    """Stream the review list of a business.

    Sends `{"reviews": [...], "has_more": bool}` on connect and after every
    change. The client sends `{"action": "load_more"}` to append a page.
    """
    try:
        viewer_id = await asyncio.to_thread(_authorize_feed, business_id, token)
    except (NotFoundError, HTTPException) as exc:
        logger.info("review_feed_rejected", business_id=business_id, error=str(exc))
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    loop = asyncio.get_running_loop()
    outbox: asyncio.Queue = asyncio.Queue()

    def push(reviews: list) -> None:
        # invoked from whichever thread committed the change
        loop.call_soon_threadsafe(outbox.put_nowait, {"reviews": reviews, "has_more": feed.has_more})

    async def send_updates() -> None:
        while True:
            payload = await outbox.get()
            await websocket.send_json(jsonable_encoder(payload))

    feed = ReviewFeed(SessionLocal, business_id, viewer_id=viewer_id, on_change=push)
    sender = asyncio.create_task(send_updates())
    try:
        await asyncio.to_thread(feed.open)
        while True:
            message = await websocket.receive_json()
            if message.get("action") == "load_more":
                await asyncio.to_thread(feed.load_more)
    except WebSocketDisconnect:
        logger.debug("review_feed_disconnected", business_id=business_id)
    finally:
        feed.close()
        sender.cancel()


@router.websocket("/api/search/live")
async def search_live(websocket: WebSocket):
    """Search-as-you-type: send `{"q": ...}` per keystroke.

    Replies with `{"q": ..., "results": [...]}` only for the latest query once
    typing pauses; superseded keystrokes get no reply.
    """
    await websocket.accept()
    suggestions = SuggestionFeed(_search)
    pending: set[asyncio.Task] = set()

    async def answer(query: str) -> None:
        results = await suggestions.update(query)
        if results is not None:
            await websocket.send_json(jsonable_encoder({"q": suggestions.query, "results": results}))

    try:
        while True:
            message = await websocket.receive_json()
            task = asyncio.create_task(answer(message.get("q")))
            pending.add(task)
            task.add_done_callback(pending.discard)
    except WebSocketDisconnect:
        logger.debug("search_feed_disconnected")
    finally:
        for task in list(pending):
            task.cancel()
