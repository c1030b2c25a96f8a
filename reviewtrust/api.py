from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from .constants import SORT_RATING
from .auth import Identity, get_active_identity, get_identity, get_optional_identity
from .config import EXPLORE_PAGE_SIZE, REVIEWS_PAGE_SIZE, SUGGESTION_LIMIT
from .crud import (
    add_reply,
    business_detail,
    create_review,
    featured_blog,
    fetch_page,
    get_business,
    get_profile,
    get_published_blog,
    list_published_blogs,
    profile_to_dict,
    rating_distribution,
    record_blog_read,
    reply_to_dict,
    track_view,
)
from .database import get_db
from .directory import best_in_categories, explore, filter_categories, list_categories, search_suggestions
from .likes import toggle_comment_like, toggle_like
from .schemas import ReplyCreate, ReviewCreate, TrackView
from .utils import sa_to_dict

router = APIRouter()


def client_ip(request: Request) -> Optional[str]:
    """Visitor IP as seen through common proxy headers."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    return (
        request.headers.get("x-real-ip")
        or request.headers.get("cf-connecting-ip")
        or (request.client.host if request.client else None)
    )


@router.get("/health")
def health():
    """Healthcheck endpoint.

    Returns:
        dict: simple status payload.
    """
    return {"status": "ok"}


@router.get("/api/categories")
def categories(q: Optional[str] = None, db: Session = Depends(get_db)):
    """Categories with nested subcategories, optionally filtered by `q`.

    Args:
        q: browse filter; matches category or subcategory names.
        db: DB session dependency.

    Returns:
        list of category dicts.
    """
    return filter_categories(list_categories(db), q)


@router.get("/api/search")
def search(
    q: Optional[str] = None,
    limit: Annotated[int, Query(gt=0, le=50)] = SUGGESTION_LIMIT,
    db: Session = Depends(get_db),
):
    return search_suggestions(db, q, limit)


@router.get("/api/explore")
def explore_businesses(
    search: Optional[str] = None,
    category: Optional[str] = None,
    subcategory: Optional[str] = None,
    sort: str = SORT_RATING,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = EXPLORE_PAGE_SIZE,
    db: Session = Depends(get_db),
):
    """Filtered, sorted and paginated business listing.

    Args:
        search: free text over name, location, address, category and subcategory.
        category: category id or "all".
        subcategory: exact subcategory name (case-insensitive).
        sort: rating | reviews | recent.
        page: 1-based page.
        limit: page size.
        db: DB session dependency.

    Returns:
        dict: {"businesses": [...], "pagination": {...}}
    """
    return explore(db, search, category, subcategory, sort, page, limit)


@router.get("/api/best-in-categories")
def best_in(db: Session = Depends(get_db)):
    return best_in_categories(db)


@router.get("/api/blog")
def blog_posts(trending: Optional[bool] = None, db: Session = Depends(get_db)):
    return list_published_blogs(db, trending)


@router.get("/api/blog/featured")
def blog_featured(db: Session = Depends(get_db)):
    return {"post": featured_blog(db)}


@router.get("/api/blog/{post_id}")
def blog_post(post_id: str, db: Session = Depends(get_db)):
    return get_published_blog(db, post_id)


@router.post("/api/blog/{post_id}/read")
def blog_read(post_id: str, db: Session = Depends(get_db)):
    return {"read_count": record_blog_read(db, post_id)}


@router.post("/api/track-view")
def track_business_view(
    body: TrackView,
    request: Request,
    identity: Optional[Identity] = Depends(get_optional_identity),
    db: Session = Depends(get_db),
):
    """Record a visit to a business page; guests are tracked too."""
    track_view(
        db,
        body.business_id,
        user_id=identity.user_id if identity else None,
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    return {"success": True}


@router.get("/api/businesses/{business_id}")
def business(business_id: str, db: Session = Depends(get_db)):
    return business_detail(db, business_id)


@router.get("/api/businesses/{business_id}/reviews")
def business_reviews(
    business_id: str,
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int, Query(ge=1, le=50)] = REVIEWS_PAGE_SIZE,
    identity: Optional[Identity] = Depends(get_optional_identity),
    db: Session = Depends(get_db),
):
    """One page of reviews, newest first, with replies and the viewer's like state.

    Args:
        business_id: business identifier path param.
        page: 1-based page number.
        page_size: reviews per page.
        identity: optional caller identity.
        db: DB session dependency.

    Returns:
        dict: reviews plus paging hints.
    """
    get_business(db, business_id)
    rows = fetch_page(db, business_id, page, page_size, identity.user_id if identity else None)
    return {"reviews": rows, "page": page, "has_more": len(rows) == page_size}


@router.get("/api/businesses/{business_id}/rating-distribution")
def business_rating_distribution(business_id: str, db: Session = Depends(get_db)):
    get_business(db, business_id)
    return rating_distribution(db, business_id).to_dict()


@router.post("/api/businesses/{business_id}/reviews", status_code=201)
def write_review(
    business_id: str,
    body: ReviewCreate,
    identity: Identity = Depends(get_active_identity),
    db: Session = Depends(get_db),
):
    review = create_review(db, business_id, identity, body.rating, body.comment)
    return sa_to_dict(review)


@router.post("/api/reviews/{review_id}/like")
def like_review(
    review_id: str,
    identity: Identity = Depends(get_active_identity),
    db: Session = Depends(get_db),
):
    result = toggle_like(db, review_id, identity.user_id)
    return {"likes": result.new_count, "liked": result.liked}


@router.post("/api/comments/{comment_id}/like")
def like_comment(
    comment_id: str,
    identity: Identity = Depends(get_active_identity),
    db: Session = Depends(get_db),
):
    result = toggle_comment_like(db, comment_id, identity.user_id)
    return {"likes": result.new_count, "liked": result.liked}


@router.post("/api/reviews/{review_id}/comments", status_code=201)
def reply(
    review_id: str,
    body: ReplyCreate,
    identity: Identity = Depends(get_active_identity),
    db: Session = Depends(get_db),
):
    """Business owner's reply to a review of their business."""
    comment = add_reply(db, review_id, identity, body.comment)
    return reply_to_dict(comment, set())


@router.get("/api/me")
def me(identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    return profile_to_dict(get_profile(db, identity.user_id))
