"""Category browse, business search and the explore listing."""

import math

import pandas as pd
import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session, selectinload

from .constants import (
    BEST_IN_ADMIN_LIMIT,
    BEST_IN_MIN_REVIEWS,
    BEST_IN_PUBLIC_LIMIT,
    CATEGORY_FALLBACK,
    PLACEHOLDER_IMAGE,
    SORT_KEYS,
    SORT_RATING,
    SORT_REVIEWS,
)
from .aggregation import rounded_average
from .config import EXPLORE_PAGE_SIZE, SUGGESTION_LIMIT
from .exceptions import ValidationError
from .models import Business, BusinessImage, Category, FeaturedSubcategory, Review, Subcategory

logger = structlog.get_logger(__name__)


def category_to_dict(category: Category, subcategories=None) -> dict:
    subs = category.subcategories if subcategories is None else subcategories
    return {
        "id": category.id,
        "name": category.name,
        "icon": category.icon,
        "bg_color": category.bg_color,
        "subcategories": [
            {"id": s.id, "name": s.name, "category_id": s.category_id} for s in subs
        ],
    }


def list_categories(db: Session) -> list[dict]:
    """All categories ordered by name, each with its subcategories nested."""
    stmt = select(Category).options(selectinload(Category.subcategories)).order_by(Category.name)
    return [category_to_dict(c) for c in db.execute(stmt).scalars()]


def filter_categories(categories: list[dict], term: str | None) -> list[dict]:
    """Client-side browse filter over `list_categories` output.

    A category whose name matches keeps all of its subcategories; otherwise
    it is kept with only the subcategories whose names match, and dropped when
    none do. Matching is a case-insensitive substring test.

    Args:
        categories: category dicts with nested "subcategories".
        term: search box contents; blank returns the input unchanged.

    Returns:
        Filtered list of category dicts (new dicts, input untouched).
    """
    needle = (term or "").strip().lower()
    if not needle:
        return categories

    out = []
    for category in categories:
        if needle in (category.get("name") or "").lower():
            out.append(category)
            continue
        subs = [
            s for s in category.get("subcategories") or []
            if needle in (s.get("name") or "").lower()
        ]
        if subs:
            out.append(dict(category, subcategories=subs))
    return out


def search_suggestions(db: Session, query: str | None, limit: int = SUGGESTION_LIMIT) -> list[dict]:
    """Typeahead: non-banned businesses whose name contains `query`."""
    q = (query or "").strip()
    if not q:
        return []
    stmt = (
        select(Business.id, Business.business_name, Business.location)
        .where(Business.is_banned.is_(False), Business.business_name.ilike(f"%{q}%"))
        .order_by(Business.business_name)
        .limit(limit)
    )
    return [
        {"id": row.id, "name": row.business_name, "location": row.location or ""}
        for row in db.execute(stmt)
    ]


def _review_stats():
    return (
        select(
            Review.reviewee_id.label("business_id"),
            func.count(Review.id).label("review_count"),
            func.sum(Review.rating).label("rating_total"),
            func.avg(Review.rating).label("rating_avg"),
        )
        .group_by(Review.reviewee_id)
        .subquery()
    )


def _primary_images(db: Session, business_ids: list[str]) -> dict[str, str]:
    if not business_ids:
        return {}
    stmt = select(BusinessImage.business_id, BusinessImage.image_url).where(
        BusinessImage.business_id.in_(business_ids),
        BusinessImage.is_primary.is_(True),
    )
    return {row.business_id: row.image_url for row in db.execute(stmt)}


def pagination(page: int, limit: int, total: int) -> dict:
    total_pages = math.ceil(total / limit) if total else 0
    return {
        "currentPage": page,
        "totalPages": total_pages,
        "totalCount": total,
        "hasNext": page < total_pages,
        "hasPrev": page > 1,
    }


def explore(
    db: Session,
    search: str | None = None,
    category: str | None = None,
    subcategory: str | None = None,
    sort: str = SORT_RATING,
    page: int = 1,
    limit: int = EXPLORE_PAGE_SIZE,
) -> dict:
    """Filtered, sorted, paginated business listing for the explore page.

    Filters combine with AND; the free-text search ORs across business name,
    location, address, category name and subcategory name. Sorting happens in
    the database so pagination is stable across pages.

    Args:
        db: SQLAlchemy Session.
        search: free text, matched case-insensitively as a substring.
        category: category id, or "all"/None for no category filter.
        subcategory: subcategory name, matched case-insensitively in full.
        sort: "rating" (average, then review count), "reviews" or "recent".
        page: 1-based page number; values below 1 are treated as 1.
        limit: page size; values below 1 are treated as 1.

    Returns:
        {"businesses": [...], "pagination": {...}}

    Raises:
        ValidationError: unknown sort key.
    """
    if sort not in SORT_KEYS:
        raise ValidationError(f"sort must be one of {', '.join(SORT_KEYS)}")
    page = max(1, page)
    limit = max(1, limit)

    stats = _review_stats()
    review_count = func.coalesce(stats.c.review_count, 0)
    rating_total = func.coalesce(stats.c.rating_total, 0)
    rating_avg = func.coalesce(stats.c.rating_avg, 0)

    conditions = [Business.is_banned.is_(False)]
    text = (search or "").strip()
    if text:
        pattern = f"%{text}%"
        conditions.append(
            or_(
                Business.business_name.ilike(pattern),
                Business.location.ilike(pattern),
                Business.address.ilike(pattern),
                Business.categories.any(Category.name.ilike(pattern)),
                Business.subcategories.any(Subcategory.name.ilike(pattern)),
            )
        )
    if category and category != "all":
        conditions.append(Business.categories.any(Category.id == category))
    sub_name = (subcategory or "").strip()
    if sub_name:
        conditions.append(
            Business.subcategories.any(func.lower(Subcategory.name) == sub_name.lower())
        )

    total = db.execute(
        select(func.count()).select_from(Business).where(*conditions)
    ).scalar_one()

    if sort == SORT_REVIEWS:
        order = [review_count.desc()]
    elif sort == SORT_RATING:
        order = [rating_avg.desc(), review_count.desc()]
    else:
        order = [Business.created_at.desc()]

    stmt = (
        select(Business, review_count.label("review_count"), rating_total.label("rating_total"))
        .outerjoin(stats, stats.c.business_id == Business.id)
        .where(*conditions)
        .options(selectinload(Business.categories))
        .order_by(*order, Business.id)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    rows = db.execute(stmt).all()
    images = _primary_images(db, [b.id for b, _, _ in rows])

    businesses = []
    for business, count, rating_sum in rows:
        businesses.append({
            "id": business.id,
            "name": business.business_name,
            "location": business.location or "",
            "address": business.address or "",
            "description": business.description or "",
            "rating": rounded_average(rating_sum, count),
            "reviewCount": count,
            "imageUrl": images.get(business.id, PLACEHOLDER_IMAGE),
            "category": business.categories[0].name if business.categories else CATEGORY_FALLBACK,
        })

    logger.debug("explore_listed", search=text, category=category, sort=sort, page=page, total=total)
    return {"businesses": businesses, "pagination": pagination(page, limit, total)}


def rating_stats_frame(db: Session, business_ids: list[str]) -> pd.DataFrame:
    """Per-business review totals as a DataFrame indexed by business id.

    Columns: review_count, rating_total, average_rating. Businesses without
    reviews are absent.
    """
    columns = ["review_count", "rating_total", "average_rating"]
    if not business_ids:
        return pd.DataFrame(columns=columns)
    rows = db.execute(
        select(Review.reviewee_id, Review.rating).where(Review.reviewee_id.in_(business_ids))
    ).all()
    if not rows:
        return pd.DataFrame(columns=columns)
    df = pd.DataFrame([tuple(r) for r in rows], columns=["business_id", "rating"])
    grouped = df.groupby("business_id")["rating"].agg(review_count="count", rating_total="sum")
    grouped["average_rating"] = grouped["rating_total"] / grouped["review_count"]
    return grouped


def rank_businesses(
    stats: pd.DataFrame,
    min_reviews: int = BEST_IN_MIN_REVIEWS,
    limit: int = BEST_IN_ADMIN_LIMIT,
) -> pd.DataFrame:
    """Businesses with at least `min_reviews` reviews, best average first (ties by count)."""
    ranked = stats[stats["review_count"] >= min_reviews]
    ranked = ranked.sort_values(["average_rating", "review_count"], ascending=[False, False], kind="stable")
    return ranked.head(limit)


def top_businesses_in_category(
    db: Session,
    category_id: str,
    min_reviews: int = BEST_IN_MIN_REVIEWS,
    limit: int = BEST_IN_ADMIN_LIMIT,
) -> list[dict]:
    """Admin helper for curating "best in" lists: top rated businesses of a category."""
    names = dict(
        db.execute(
            select(Business.id, Business.business_name).where(
                Business.is_banned.is_(False),
                Business.categories.any(Category.id == category_id),
            )
        ).all()
    )
    ranked = rank_businesses(rating_stats_frame(db, list(names)), min_reviews, limit)
    return [
        {
            "id": business_id,
            "business_name": names[business_id] or "",
            "average_rating": float(row.average_rating),
            "review_count": int(row.review_count),
        }
        for business_id, row in ranked.iterrows()
    ]


def best_in_categories(db: Session, per_subcategory: int = BEST_IN_PUBLIC_LIMIT) -> list[dict]:
    """Public "best in" section: each featured subcategory with its top businesses."""
    featured = db.execute(
        select(FeaturedSubcategory)
        .options(selectinload(FeaturedSubcategory.subcategory).selectinload(Subcategory.category))
        .order_by(FeaturedSubcategory.created_at)
    ).scalars().all()

    sections = []
    for entry in featured:
        sub = entry.subcategory
        businesses = {
            b.id: b
            for b in db.execute(
                select(Business).where(
                    Business.is_banned.is_(False),
                    Business.subcategories.any(Subcategory.id == entry.subcategory_id),
                )
            ).scalars()
        }
        ranked = rank_businesses(rating_stats_frame(db, list(businesses)), limit=per_subcategory)
        category_name = sub.category.name if sub and sub.category else "Unknown"
        sections.append({
            "id": entry.id,
            "categoryName": f"{category_name} - {sub.name if sub else 'Unknown'}",
            "categoryId": sub.category_id if sub else None,
            "subcategoryId": entry.subcategory_id,
            "subcategoryName": sub.name if sub else None,
            "businesses": [
                {
                    "id": business_id,
                    "business_name": businesses[business_id].business_name or "",
                    "website": businesses[business_id].website,
                    "rating": float(row.average_rating),
                    "review_count": int(row.review_count),
                }
                for business_id, row in ranked.iterrows()
            ],
        })
    return sections
