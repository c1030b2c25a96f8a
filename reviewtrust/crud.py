from datetime import timedelta
from typing import Optional

import structlog
from sqlalchemy import case, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from .constants import (
    ANONYMOUS_REVIEWER,
    BLOG_AUTHOR_FALLBACK,
    BLOG_PLACEHOLDER_IMAGE,
    BLOG_PUBLISHED,
    REPLY_AUTHOR_FALLBACK,
    ROLE_BUSINESS,
    ROLE_USER,
)
from .aggregation import compute_distribution, rounded_average
from .auth import Identity
from .config import REVIEWS_PAGE_SIZE
from .exceptions import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from .hours import display_hours, normalize_hours
from .likes import viewer_likes
from .models import (
    Blog,
    Business,
    BusinessView,
    Category,
    Profile,
    Review,
    ReviewComment,
    Subcategory,
    utcnow,
)
from .utils import sa_to_dict, to_json_value
from .validate import is_valid_phone

logger = structlog.get_logger(__name__)

EXCERPT_LENGTH = 150
WORDS_PER_MINUTE_CHARS = 200


# --- Reviews ---

def reply_to_dict(c: ReviewComment, liked_comments: set[str]) -> dict:
    return {
        "id": c.id,
        "author": (c.commenter.name if c.commenter else None) or REPLY_AUTHOR_FALLBACK,
        "content": c.comment,
        "date": to_json_value(c.created_at),
        "likes": c.likes_count or 0,
        "isLiked": c.id in liked_comments,
    }


def review_to_dict(r: Review, liked_reviews: set[str], liked_comments: set[str]) -> dict:
    """Project a Review (with reviewer and replies loaded) to the feed shape."""
    return {
        "id": r.id,
        "rating": r.rating,
        "comment": r.comment,
        "reviewer_name": (r.reviewer.name if r.reviewer else None) or ANONYMOUS_REVIEWER,
        "created_at": to_json_value(r.created_at),
        "is_verified": bool(r.is_verified),
        "likes": r.likes_count or 0,
        "isLiked": r.id in liked_reviews,
        "replies": [reply_to_dict(c, liked_comments) for c in r.comments],
    }


def query_reviews_by_business(
    db: Session, business_id: str,
    limit: int = REVIEWS_PAGE_SIZE,
    offset: int = 0,
):
    """Reviews of a business, newest first, with reviewer and replies eager loaded.

    Args:
        db: SQLAlchemy Session.
        business_id: business (reviewee) identifier.
        limit: Max rows to return.
        offset: Row offset for pagination.

    Returns:
        List[Review]: ORM Review objects.
    """
    stmt = (
        select(Review)
        .where(Review.reviewee_id == business_id)
        .options(
            selectinload(Review.reviewer),
            selectinload(Review.comments).selectinload(ReviewComment.commenter),
        )
        .order_by(Review.created_at.desc(), Review.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return db.execute(stmt).scalars().all()


def fetch_page(
    db: Session,
    business_id: str,
    page: int = 1,
    page_size: int = REVIEWS_PAGE_SIZE,
    viewer_id: Optional[str] = None,
) -> list[dict]:
    """One page of a business's review feed.

    Args:
        db: SQLAlchemy Session.
        business_id: business whose reviews to list.
        page: 1-based page number.
        page_size: reviews per page.
        viewer_id: profile id used to fill `isLiked`; None for anonymous.

    Returns:
        list of review dicts, each with its replies oldest first.

    Raises:
        ValidationError: page or page_size below 1.
    """
    if page < 1 or page_size < 1:
        raise ValidationError("page and page_size must be at least 1")
    reviews = query_reviews_by_business(db, business_id, limit=page_size, offset=(page - 1) * page_size)
    liked_reviews, liked_comments = viewer_likes(db, viewer_id)
    return [review_to_dict(r, liked_reviews, liked_comments) for r in reviews]


def rating_distribution(db: Session, business_id: str):
    ratings = db.execute(select(Review.rating).where(Review.reviewee_id == business_id)).scalars().all()
    return compute_distribution(ratings)


def get_review(db: Session, review_id: str) -> Review:
    review = db.get(Review, review_id)
    if review is None:
        raise NotFoundError("Review not found")
    return review


def create_review(
    db: Session,
    business_id: str,
    identity: Identity,
    rating: int,
    comment: Optional[str] = None,
) -> Review:
    """Store a user's review of a business.

    Raises:
        NotFoundError: unknown or banned business.
        PermissionDeniedError: the business owner reviewing their own business.
        ConflictError: the user already reviewed this business.
    """
    business = db.get(Business, business_id)
    if business is None or business.is_banned:
        raise NotFoundError("Business not found")
    if business.business_owner_id == identity.user_id:
        raise PermissionDeniedError("Businesses cannot review themselves")

    existing = db.execute(
        select(Review.id).where(Review.reviewer_id == identity.user_id, Review.reviewee_id == business_id)
    ).first()
    if existing is not None:
        raise ConflictError("You have already submitted a review for this business.")

    review = Review(
        rating=rating,
        comment=comment or None,
        reviewer_id=identity.user_id,
        reviewee_id=business_id,
        is_verified=False,
    )
    db.add(review)
    business.rating_count = Business.rating_count + 1
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("You have already submitted a review for this business.")
    db.refresh(review)
    logger.info("review_created", review_id=review.id, business_id=business_id, rating=rating)
    return review


def add_reply(db: Session, review_id: str, identity: Identity, comment: str) -> ReviewComment:
    """Reply to a review as the reviewed business's owner (or an admin).

    Raises:
        NotFoundError: unknown review.
        PermissionDeniedError: caller does not own the reviewed business.
    """
    review = get_review(db, review_id)
    if not identity.is_admin and review.business.business_owner_id != identity.user_id:
        raise PermissionDeniedError("Only the business owner can reply to this review")
    reply = ReviewComment(review_id=review.id, commenter_id=identity.user_id, comment=comment)
    db.add(reply)
    db.commit()
    db.refresh(reply)
    logger.info("reply_created", review_id=review.id, comment_id=reply.id)
    return reply


def update_review(db: Session, review_id: str, **fields) -> Review:
    review = get_review(db, review_id)
    for key, value in fields.items():
        if value is not None:
            setattr(review, key, value)
    db.commit()
    db.refresh(review)
    return review


def delete_review(db: Session, review_id: str) -> None:
    review = get_review(db, review_id)
    business = review.business
    db.delete(review)
    if business is not None:
        business.rating_count = case((Business.rating_count > 0, Business.rating_count - 1), else_=0)
    db.commit()
    logger.info("review_deleted", review_id=review_id)


def recent_reviews(db: Session, limit: int = 10) -> list[dict]:
    stmt = (
        select(Review)
        .options(selectinload(Review.reviewer), selectinload(Review.business))
        .order_by(Review.created_at.desc(), Review.id.desc())
        .limit(limit)
    )
    out = []
    for r in db.execute(stmt).scalars():
        row = sa_to_dict(r)
        row["reviewer_name"] = (r.reviewer.name if r.reviewer else None) or ANONYMOUS_REVIEWER
        row["business_name"] = r.business.business_name if r.business else None
        out.append(row)
    return out


def reviews_for_owner(db: Session, owner_id: str) -> list[dict]:
    """Every review of the businesses a profile owns, newest first, with replies."""
    business_ids = select(Business.id).where(Business.business_owner_id == owner_id)
    stmt = (
        select(Review)
        .where(Review.reviewee_id.in_(business_ids))
        .options(
            selectinload(Review.reviewer),
            selectinload(Review.comments).selectinload(ReviewComment.commenter),
        )
        .order_by(Review.created_at.desc(), Review.id.desc())
    )
    return [review_to_dict(r, set(), set()) for r in db.execute(stmt).scalars()]


# --- Businesses ---

def get_business(db: Session, business_id: str, include_banned: bool = False) -> Business:
    business = db.get(Business, business_id)
    if business is None or (business.is_banned and not include_banned):
        raise NotFoundError("Business not found")
    return business


def owned_business(db: Session, owner_id: str) -> Business:
    business = db.execute(
        select(Business).where(Business.business_owner_id == owner_id).order_by(Business.created_at)
    ).scalars().first()
    if business is None:
        raise NotFoundError("No business profile for this account")
    return business


def business_to_dict(b: Business) -> dict:
    row = sa_to_dict(b)
    row["categories"] = [{"id": c.id, "name": c.name} for c in b.categories]
    row["subcategories"] = [{"id": s.id, "name": s.name, "category_id": s.category_id} for s in b.subcategories]
    row["images"] = [sa_to_dict(i) for i in b.images]
    return row


def business_detail(db: Session, business_id: str) -> dict:
    """Public service page payload: business row, hours, images and rating summary."""
    business = get_business(db, business_id)
    row = business_to_dict(business)
    distribution = rating_distribution(db, business_id)
    row["hours"] = display_hours(business.business_hours)
    rating_sum = sum(b.stars * b.count for b in distribution.buckets)
    row["rating"] = rounded_average(rating_sum, distribution.total)
    row["reviewCount"] = distribution.total
    row["ratingDistribution"] = distribution.to_dict()
    return row


def _link_taxonomy(db: Session, business: Business, category_ids, subcategory_ids) -> None:
    if category_ids is not None:
        categories = db.execute(select(Category).where(Category.id.in_(category_ids))).scalars().all()
        if len(categories) != len(set(category_ids)):
            raise ValidationError("Unknown category id")
        business.categories = list(categories)
    if subcategory_ids is not None:
        subs = db.execute(select(Subcategory).where(Subcategory.id.in_(subcategory_ids))).scalars().all()
        if len(subs) != len(set(subcategory_ids)):
            raise ValidationError("Unknown subcategory id")
        business.subcategories = list(subs)


def _clean_business_fields(fields: dict) -> dict:
    fields = {k: v for k, v in fields.items() if v is not None}
    if "phone" in fields and fields["phone"] and not is_valid_phone(fields["phone"]):
        raise ValidationError("Phone number must be in E.164 format (e.g. +251911234567)")
    if "business_hours" in fields and fields["business_hours"]:
        try:
            fields["business_hours"] = normalize_hours(fields["business_hours"])
        except ValueError as exc:
            raise ValidationError(str(exc))
    return fields


def create_business(
    db: Session,
    owner_id: str,
    category_ids: Optional[list[str]] = None,
    subcategory_ids: Optional[list[str]] = None,
    created_by_admin: bool = False,
    **fields,
) -> Business:
    """Insert a business together with its category links in one transaction.

    Raises:
        NotFoundError: unknown owner profile.
        ValidationError: bad phone, hours or taxonomy ids (nothing is stored).
    """
    if db.get(Profile, owner_id) is None:
        raise NotFoundError("Owner profile not found")
    business = Business(
        business_owner_id=owner_id,
        created_by_admin=created_by_admin,
        **_clean_business_fields(fields),
    )
    db.add(business)
    try:
        _link_taxonomy(db, business, category_ids or [], subcategory_ids or [])
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(business)
    logger.info("business_created", business_id=business.id, owner_id=owner_id, by_admin=created_by_admin)
    return business


def update_business(
    db: Session,
    business: Business,
    category_ids: Optional[list[str]] = None,
    subcategory_ids: Optional[list[str]] = None,
    **fields,
) -> Business:
    try:
        for key, value in _clean_business_fields(fields).items():
            setattr(business, key, value)
        _link_taxonomy(db, business, category_ids, subcategory_ids)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(business)
    return business


def list_businesses(db: Session, q: Optional[str] = None) -> list[dict]:
    stmt = select(Business).options(
        selectinload(Business.categories), selectinload(Business.subcategories), selectinload(Business.images)
    )
    if q:
        stmt = stmt.where(Business.business_name.ilike(f"%{q}%"))
    return [business_to_dict(b) for b in db.execute(stmt.order_by(Business.business_name)).scalars()]


def track_view(
    db: Session,
    business_id: str,
    user_id: Optional[str] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> BusinessView:
    get_business(db, business_id, include_banned=True)
    view = BusinessView(business_id=business_id, user_id=user_id, ip_address=ip_address, user_agent=user_agent)
    db.add(view)
    db.commit()
    return view


# --- Profiles ---

def profile_to_dict(p: Profile) -> dict:
    return sa_to_dict(p)


def get_profile(db: Session, user_id: str) -> Profile:
    profile = db.get(Profile, user_id)
    if profile is None:
        raise NotFoundError("User not found")
    return profile


def list_profiles(db: Session, role: Optional[str] = None, q: Optional[str] = None) -> list[dict]:
    stmt = select(Profile)
    if role:
        stmt = stmt.where(Profile.role == role)
    if q:
        stmt = stmt.where(or_(Profile.name.ilike(f"%{q}%"), Profile.email.ilike(f"%{q}%")))
    return [profile_to_dict(p) for p in db.execute(stmt.order_by(Profile.created_at.desc())).scalars()]


def update_profile(db: Session, user_id: str, **fields) -> Profile:
    """Admin edit of a profile; `is_banned` also bans the profile's businesses."""
    profile = get_profile(db, user_id)
    fields = {k: v for k, v in fields.items() if v is not None}
    if fields.get("phone") and not is_valid_phone(fields["phone"]):
        raise ValidationError("Phone number must be in E.164 format (e.g. +251911234567)")
    for key, value in fields.items():
        setattr(profile, key, value)
    if "is_banned" in fields:
        for business in profile.businesses:
            business.is_banned = fields["is_banned"]
    db.commit()
    db.refresh(profile)
    if "is_banned" in fields:
        logger.info("profile_ban_changed", user_id=user_id, is_banned=profile.is_banned)
    return profile


# --- Blog (public side) ---

def read_time(content: Optional[str]) -> str:
    return f"{max(1, len(content or '') // WORDS_PER_MINUTE_CHARS)} min read"


def blog_card(post: Blog) -> dict:
    content = post.content or ""
    return {
        "id": post.id,
        "title": post.title,
        "excerpt": content[:EXCERPT_LENGTH] + "..." if content else "",
        "author": (post.business.business_name if post.business else None) or BLOG_AUTHOR_FALLBACK,
        "date": to_json_value(post.created_at),
        "image": post.thumbnail_image or BLOG_PLACEHOLDER_IMAGE,
        "readTime": read_time(content),
        "isFeatured": bool(post.is_featured),
        "isTrending": bool(post.is_trending),
        "readCount": post.read_count or 0,
    }


def _published_posts():
    return (
        select(Blog)
        .where(Blog.published.is_(True), Blog.status == BLOG_PUBLISHED)
        .options(selectinload(Blog.business))
    )


def list_published_blogs(db: Session, trending: Optional[bool] = None) -> list[dict]:
    stmt = _published_posts()
    if trending is not None:
        stmt = stmt.where(Blog.is_trending.is_(trending))
    return [blog_card(p) for p in db.execute(stmt.order_by(Blog.created_at.desc())).scalars()]


def featured_blog(db: Session) -> Optional[dict]:
    post = db.execute(_published_posts().where(Blog.is_featured.is_(True))).scalars().first()
    return blog_card(post) if post else None


def get_published_blog(db: Session, post_id: str) -> dict:
    post = db.execute(_published_posts().where(Blog.id == post_id)).scalars().first()
    if post is None:
        raise NotFoundError("Blog post not found")
    return dict(blog_card(post), content=post.content)


def record_blog_read(db: Session, post_id: str) -> int:
    post = db.execute(_published_posts().where(Blog.id == post_id)).scalars().first()
    if post is None:
        raise NotFoundError("Blog post not found")
    post.read_count = Blog.read_count + 1
    db.commit()
    db.refresh(post)
    return post.read_count


def blog_to_dict(post: Blog) -> dict:
    row = sa_to_dict(post)
    row["business_name"] = post.business.business_name if post.business else None
    return row


def list_blogs(db: Session, status: Optional[str] = None, business_id: Optional[str] = None) -> list[dict]:
    stmt = select(Blog).options(selectinload(Blog.business))
    if status:
        stmt = stmt.where(Blog.status == status)
    if business_id:
        stmt = stmt.where(Blog.business_id == business_id)
    return [blog_to_dict(p) for p in db.execute(stmt.order_by(Blog.created_at.desc())).scalars()]


def get_blog(db: Session, post_id: str) -> Blog:
    post = db.get(Blog, post_id)
    if post is None:
        raise NotFoundError("Blog post not found")
    return post


# --- Admin dashboard ---

def admin_stats(db: Session) -> dict:
    """Counts for the admin dashboard cards."""
    week_ago = utcnow() - timedelta(days=7)
    users = db.execute(select(func.count()).select_from(Profile).where(Profile.role == ROLE_USER)).scalar_one()
    businesses = db.execute(
        select(func.count()).select_from(Profile).where(Profile.role == ROLE_BUSINESS)
    ).scalar_one()
    reviews = db.execute(
        select(func.count()).select_from(Review).where(Review.created_at >= week_ago)
    ).scalar_one()
    return {"users": users, "businesses": businesses, "reviewsThisWeek": reviews}

