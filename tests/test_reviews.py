import pytest

from reviewtrust.auth import Identity
from reviewtrust.crud import add_reply, create_review, fetch_page, rating_distribution
from reviewtrust.exceptions import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from reviewtrust.likes import toggle_like
from reviewtrust.models import Business


def _seed(factory, count):
    business = factory.business()
    reviews = [factory.review(business, rating=(i % 5) + 1, minutes=i) for i in range(count)]
    return business, reviews


def test_pages_are_disjoint_and_newest_first(db, factory):
    business, reviews = _seed(factory, 8)

    page1 = fetch_page(db, business.id, page=1, page_size=5)
    page2 = fetch_page(db, business.id, page=2, page_size=5)

    ids1 = [r["id"] for r in page1]
    ids2 = [r["id"] for r in page2]
    assert len(ids1) == 5 and len(ids2) == 3
    assert not set(ids1) & set(ids2)
    expected = [r.id for r in sorted(reviews, key=lambda r: r.created_at, reverse=True)]
    assert ids1 + ids2 == expected


def test_page_past_the_end_is_empty(db, factory):
    business, _ = _seed(factory, 2)
    assert fetch_page(db, business.id, page=3, page_size=5) == []


def test_page_below_one_is_rejected(db, factory):
    business, _ = _seed(factory, 1)
    with pytest.raises(ValidationError):
        fetch_page(db, business.id, page=0)


def test_reviewer_and_reply_fallback_names(db, factory):
    owner = factory.profile(role="business", name=None)
    business = factory.business(owner=owner)
    named = factory.profile(name="Alice")
    review = factory.review(business, reviewer=named)
    anonymous = factory.review(business, minutes=5)
    factory.reply(review, owner, "second", minutes=10)
    factory.reply(review, owner, "first", minutes=1)

    rows = {r["id"]: r for r in fetch_page(db, business.id)}
    assert rows[review.id]["reviewer_name"] == "Alice"
    assert rows[anonymous.id]["reviewer_name"] == "Anonymous User"
    replies = rows[review.id]["replies"]
    assert [r["content"] for r in replies] == ["first", "second"]
    assert replies[0]["author"] == "Business Owner"


def test_viewer_like_state(db, factory):
    business, reviews = _seed(factory, 2)
    viewer = factory.profile()
    toggle_like(db, reviews[0].id, viewer.id)

    rows = {r["id"]: r for r in fetch_page(db, business.id, viewer_id=viewer.id)}
    assert rows[reviews[0].id]["isLiked"] is True
    assert rows[reviews[0].id]["likes"] == 1
    assert rows[reviews[1].id]["isLiked"] is False


def _identity(profile):
    return Identity(user_id=profile.id, role=profile.role)


def test_create_review_counts_and_rejects_duplicates(db, factory):
    business = factory.business()
    user = factory.profile()

    review = create_review(db, business.id, _identity(user), 4, "Nice")
    assert review.rating == 4
    db.expire_all()
    assert db.get(Business, business.id).rating_count == 1

    with pytest.raises(ConflictError):
        create_review(db, business.id, _identity(user), 5)


def test_business_cannot_review_itself(db, factory):
    business = factory.business()
    with pytest.raises(PermissionDeniedError):
        create_review(db, business.id, _identity(business.owner), 5)


def test_banned_business_cannot_be_reviewed(db, factory):
    business = factory.business(is_banned=True)
    with pytest.raises(NotFoundError):
        create_review(db, business.id, _identity(factory.profile()), 5)


def test_only_owner_or_admin_can_reply(db, factory):
    business = factory.business()
    review = factory.review(business)

    reply = add_reply(db, review.id, _identity(business.owner), "Thank you")
    assert reply.comment == "Thank you"

    admin = factory.profile(role="admin")
    add_reply(db, review.id, _identity(admin), "Moderator note")

    with pytest.raises(PermissionDeniedError):
        add_reply(db, review.id, _identity(factory.profile()), "Me too")


def test_rating_distribution_from_rows(db, factory):
    business = factory.business()
    for i, rating in enumerate([5, 5, 3, 1]):
        factory.review(business, rating=rating, minutes=i)
    dist = rating_distribution(db, business.id)
    assert dist.average == 3.5
    assert dist.bucket(5).percentage == 50
