import pytest
from sqlalchemy import select

from reviewtrust.database import SessionLocal
from reviewtrust.feed import ReviewFeed
from reviewtrust.likes import toggle_like
from reviewtrust.models import Review
from reviewtrust.realtime import ChangeEvent, broker


@pytest.fixture
def events():
    received = []
    channel = broker.channel("test").on("reviews", received.append).subscribe()
    yield received
    broker.remove_channel(channel)


def test_insert_delivered_after_commit(db, factory, events):
    business = factory.business()
    review = factory.review(business, rating=4)
    inserts = [e for e in events if e.event == "INSERT"]
    assert len(inserts) == 1
    assert inserts[0].new["id"] == review.id
    assert inserts[0].new["reviewee_id"] == business.id


def test_rolled_back_changes_are_dropped(db, factory, events):
    business = factory.business()
    reviewer = factory.profile()
    db.add(Review(rating=3, reviewer_id=reviewer.id, reviewee_id=business.id))
    db.flush()
    db.rollback()
    assert events == []


def test_update_and_delete_events(db, factory, events):
    review = factory.review(factory.business())
    toggle_like(db, review.id, factory.profile().id)
    db.delete(db.get(Review, review.id))
    db.commit()
    kinds = [e.event for e in events]
    assert kinds == ["INSERT", "UPDATE", "DELETE"]
    assert events[-1].old["id"] == review.id


def test_filter_and_event_kind():
    seen = []
    channel = (
        broker.channel("filtered")
        .on("reviews", seen.append, event="DELETE", filter={"reviewee_id": "b1"})
        .subscribe()
    )
    try:
        broker.publish(ChangeEvent("reviews", "INSERT", new={"reviewee_id": "b1"}))
        broker.publish(ChangeEvent("reviews", "DELETE", old={"reviewee_id": "b2"}))
        broker.publish(ChangeEvent("reviews", "DELETE", old={"reviewee_id": "b1"}))
    finally:
        broker.remove_channel(channel)
    assert len(seen) == 1 and seen[0].record == {"reviewee_id": "b1"}


def test_failing_callback_does_not_block_others():
    seen = []

    def boom(change):
        raise RuntimeError("subscriber bug")

    channel = broker.channel("mixed").on("reviews", boom).on("reviews", seen.append).subscribe()
    try:
        broker.publish(ChangeEvent("reviews", "INSERT", new={"id": "r1"}))
    finally:
        broker.remove_channel(channel)
    assert len(seen) == 1


def test_feed_pages_and_load_more(factory):
    business = factory.business()
    for i in range(7):
        factory.review(business, minutes=i)

    feed = ReviewFeed(SessionLocal, business.id, page_size=5).open()
    try:
        assert len(feed.reviews) == 5 and feed.has_more
        feed.load_more()
        assert len(feed.reviews) == 7
        assert feed.has_more is False
        # no-op once exhausted
        feed.load_more()
        assert len(feed.reviews) == 7
    finally:
        feed.close()


def test_feed_refreshes_head_on_new_review(factory):
    business = factory.business()
    factory.review(business, minutes=0)
    updates = []

    with ReviewFeed(SessionLocal, business.id, on_change=updates.append) as feed:
        newest = factory.review(business, minutes=60, comment="fresh")
        assert feed.reviews[0]["id"] == newest.id
        assert len(feed.reviews) == 2
    assert updates


def test_feed_sees_like_changes(db, factory):
    business = factory.business()
    review = factory.review(business)
    viewer = factory.profile()

    with ReviewFeed(SessionLocal, business.id, viewer_id=viewer.id) as feed:
        toggle_like(db, review.id, viewer.id)
        assert feed.reviews[0]["likes"] == 1
        assert feed.reviews[0]["isLiked"] is True


def test_closed_feed_stops_updating(factory):
    business = factory.business()
    feed = ReviewFeed(SessionLocal, business.id).open()
    feed.close()
    factory.review(business)
    assert feed.reviews == []
    assert feed.channel is None


def test_feed_degrades_when_fetch_fails():
    def broken_factory():
        raise RuntimeError("database unavailable")

    feed = ReviewFeed(broken_factory, "biz-x").open()
    try:
        assert feed.reviews == []
        assert feed.has_more is False
    finally:
        feed.close()


def test_expression_updates_are_published(db, factory):
    updates = []
    channel = broker.channel("updates").on("reviews", updates.append, event="UPDATE").subscribe()
    try:
        review = factory.review(factory.business())
        toggle_like(db, review.id, factory.profile().id)
    finally:
        broker.remove_channel(channel)
    assert len(updates) == 1
    assert updates[0].new["id"] == review.id
    assert updates[0].new["reviewee_id"] == review.reviewee_id


def test_feed_change_handler_refreshes(factory):
    business = factory.business()
    feed = ReviewFeed(SessionLocal, business.id)
    review = factory.review(business)
    # called directly so an error in the handler is not swallowed by the channel
    feed._on_change(ChangeEvent("reviews", "INSERT", new={"id": review.id, "reviewee_id": business.id}))
    assert [r["id"] for r in feed.reviews] == [review.id]


def test_feed_keeps_loaded_pages_when_head_changes(db, factory):
    business = factory.business()
    for i in range(10):
        factory.review(business, minutes=i)

    with ReviewFeed(SessionLocal, business.id, page_size=5) as feed:
        feed.load_more()
        shown = [r["id"] for r in feed.reviews]
        assert len(shown) == 10

        newest = factory.review(business, minutes=60)
        ids = [r["id"] for r in feed.reviews]
        assert ids == [newest.id] + shown
        assert feed.page == 2

        oldest = db.execute(select(Review).where(Review.id == shown[-1])).scalar_one()
        db.delete(oldest)
        db.commit()
        assert [r["id"] for r in feed.reviews] == [newest.id] + shown[:-1]
