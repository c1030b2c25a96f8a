import pytest

from reviewtrust.exceptions import NotFoundError
from reviewtrust.likes import toggle_comment_like, toggle_like, viewer_likes
from reviewtrust.models import Review, UserLike


def test_toggle_twice_restores_state(db, factory):
    review = factory.review(factory.business())
    user = factory.profile()

    first = toggle_like(db, review.id, user.id)
    assert first.liked is True and first.new_count == 1

    second = toggle_like(db, review.id, user.id)
    assert second.liked is False and second.new_count == 0
    assert db.query(UserLike).count() == 0


def test_likes_from_different_users_accumulate(db, factory):
    review = factory.review(factory.business())
    for _ in range(3):
        toggle_like(db, review.id, factory.profile().id)
    db.expire_all()
    assert db.get(Review, review.id).likes_count == 3


def test_unlike_never_goes_negative(db, factory):
    review = factory.review(factory.business())
    user = factory.profile()
    toggle_like(db, review.id, user.id)

    # counter drifted below the join rows
    review.likes_count = 0
    db.commit()

    result = toggle_like(db, review.id, user.id)
    assert result.liked is False
    assert result.new_count == 0


def test_unknown_review(db, factory):
    with pytest.raises(NotFoundError):
        toggle_like(db, "missing", factory.profile().id)


def test_comment_likes(db, factory):
    business = factory.business()
    review = factory.review(business)
    reply = factory.reply(review, business.owner)
    user = factory.profile()

    result = toggle_comment_like(db, reply.id, user.id)
    assert result.liked and result.new_count == 1

    review_ids, comment_ids = viewer_likes(db, user.id)
    assert review_ids == set()
    assert comment_ids == {reply.id}


def test_viewer_likes_anonymous(db):
    assert viewer_likes(db, None) == (set(), set())
