"""Live review feed for one business page."""

import threading

import structlog

from .constants import EVT_DELETE, TBL_REVIEW_COMMENTS, TBL_REVIEWS, TBL_USER_COMMENT_LIKES, TBL_USER_LIKES
from .config import REVIEWS_PAGE_SIZE
from .crud import fetch_page
from .realtime import ChangeBroker, ChangeEvent, broker as default_broker

logger = structlog.get_logger(__name__)


class ReviewFeed:
    """Paginated reviews of a business that stay current while open.

    `open()` subscribes a channel to review, reply and like changes, then
    loads page 1. Any change re-fetches page 1 and replaces the head of the list;
    pages loaded with `load_more()` after it are kept. Fetch errors are logged
    and leave the feed as it was (empty on first load) with load-more disabled.

    Args:
        session_factory: callable returning a new SQLAlchemy Session.
        business_id: business whose reviews are shown.
        page_size: reviews per page.
        broker: change broker to subscribe to.
        viewer_id: profile id used to fill `isLiked`.
        on_change: optional callback invoked with the review list after each update.
    """

    def __init__(
        self,
        session_factory,
        business_id: str,
        page_size: int = REVIEWS_PAGE_SIZE,
        broker: ChangeBroker = default_broker,
        viewer_id: str | None = None,
        on_change=None,
    ):
        self.session_factory = session_factory
        self.business_id = business_id
        self.page_size = page_size
        self.broker = broker
        self.viewer_id = viewer_id
        self.on_change = on_change
        self.reviews: list[dict] = []
        self.page = 0
        self.has_more = True
        self.channel = None
        self._lock = threading.RLock()

    def _fetch(self, page: int) -> list[dict] | None:
        try:
            with self.session_factory() as db:
                return fetch_page(db, self.business_id, page, self.page_size, self.viewer_id)
        except Exception as exc:
            logger.error("review_feed_fetch_failed", business_id=self.business_id, page=page, error=str(exc))
            return None

    def _notify(self) -> None:
        if self.on_change is not None:
            self.on_change(list(self.reviews))

    def open(self) -> "ReviewFeed":
        self.channel = (
            self.broker.channel(f"reviews-changes-{self.business_id}")
            .on(TBL_REVIEWS, self._on_change, filter={"reviewee_id": self.business_id})
            .on(TBL_REVIEW_COMMENTS, self._on_change)
            .on(TBL_USER_LIKES, self._on_change)
            .on(TBL_USER_COMMENT_LIKES, self._on_change)
            .subscribe()
        )
        self.refresh()
        return self

    def refresh(self, removed_ids=()) -> list[dict]:
        """Re-fetch page 1 and swap it in as the head of the feed.

        Rows already shown on later pages stay, in their order, unless the new
        head now holds them or they were deleted (`removed_ids`).
        """
        head = self._fetch(1)
        with self._lock:
            if head is None:
                self.has_more = False
                return self.reviews
            head_ids = {r["id"] for r in head}
            gone = head_ids | set(removed_ids)
            tail = [r for r in self.reviews if r["id"] not in gone] if self.page > 1 else []
            self.reviews = head + tail
            if self.page <= 1:
                self.page = 1
                self.has_more = len(head) == self.page_size
        self._notify()
        return self.reviews

    def load_more(self) -> list[dict]:
        """Append the next page; no-op once a short page has been seen."""
        with self._lock:
            if not self.has_more:
                return self.reviews
            next_page = self.page + 1
        rows = self._fetch(next_page)
        with self._lock:
            if rows is None:
                self.has_more = False
                return self.reviews
            seen = {r["id"] for r in self.reviews}
            self.reviews = self.reviews + [r for r in rows if r["id"] not in seen]
            self.page = next_page
            self.has_more = len(rows) == self.page_size
        self._notify()
        return self.reviews

    def _on_change(self, change: ChangeEvent) -> None:
        logger.debug(
            "review_feed_change", business_id=self.business_id, table=change.table, change_type=change.event
        )
        removed = ()
        if change.table == TBL_REVIEWS and change.event == EVT_DELETE:
            removed = (change.old.get("id"),)
        self.refresh(removed)

    def close(self) -> None:
        if self.channel is not None:
            self.broker.remove_channel(self.channel)
            self.channel = None

    def __enter__(self):
        return self.open()

    def __exit__(self, exc_type, exc, tb):
        self.close()
