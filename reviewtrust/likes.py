"""One-like-per-user toggles for reviews and replies.

The join-table row is the source of truth for "liked"; the likes_count column
is a denormalised counter kept in step inside the same transaction. Counter
changes are SQL expressions evaluated by the database, so concurrent toggles
from different users cannot overwrite each other's increments.
"""

from dataclasses import dataclass

import structlog
from sqlalchemy import case, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .exceptions import ConflictError, NotFoundError
from .models import Review, ReviewComment, UserCommentLike, UserLike

logger = structlog.get_logger(__name__)


@dataclass
class LikeResult:
    new_count: int
    liked: bool


def _increment(column):
    return column + 1


def _decrement(column):
    return case((column > 0, column - 1), else_=0)


def _toggle(db: Session, target, like_model, target_field: str, user_id: str) -> LikeResult:
    counter = type(target).likes_count
    existing = db.execute(
        select(like_model).where(
            like_model.user_id == user_id,
            getattr(like_model, target_field) == target.id,
        )
    ).scalar_one_or_none()

    try:
        if existing is not None:
            db.delete(existing)
            target.likes_count = _decrement(counter)
            liked = False
        else:
            db.add(like_model(user_id=user_id, **{target_field: target.id}))
            target.likes_count = _increment(counter)
            liked = True
        db.commit()
    except IntegrityError:
        # Another request inserted the same (user, target) pair first
        db.rollback()
        raise ConflictError("Like state changed concurrently, please retry")
    except Exception:
        db.rollback()
        raise

    db.refresh(target)
    logger.info(
        "like_toggled",
        table=type(target).__tablename__,
        target_id=target.id,
        user_id=user_id,
        liked=liked,
        likes_count=target.likes_count,
    )
    return LikeResult(new_count=target.likes_count, liked=liked)


def toggle_like(db: Session, review_id: str, user_id: str) -> LikeResult:
    """Like the review if the user has not yet, otherwise remove the like.

    Args:
        db: SQLAlchemy Session.
        review_id: review being liked/unliked.
        user_id: profile id of the acting user.

    Returns:
        LikeResult with the stored count after the toggle and the new liked state.

    Raises:
        NotFoundError: unknown review.
        ConflictError: a concurrent toggle by the same user won the race.
    """
    review = db.get(Review, review_id)
    if review is None:
        raise NotFoundError("Review not found")
    return _toggle(db, review, UserLike, "review_id", user_id)


def toggle_comment_like(db: Session, comment_id: str, user_id: str) -> LikeResult:
    """Same contract as `toggle_like`, for a reply on a review."""
    comment = db.get(ReviewComment, comment_id)
    if comment is None:
        raise NotFoundError("Reply not found")
    return _toggle(db, comment, UserCommentLike, "comment_id", user_id)


def viewer_likes(db: Session, user_id: str | None) -> tuple[set[str], set[str]]:
    """Review ids and reply ids the viewer has liked; empty sets when anonymous."""
    if not user_id:
        return set(), set()
    review_ids = set(db.execute(select(UserLike.review_id).where(UserLike.user_id == user_id)).scalars())
    comment_ids = set(
        db.execute(select(UserCommentLike.comment_id).where(UserCommentLike.user_id == user_id)).scalars()
    )
    return review_ids, comment_ids
