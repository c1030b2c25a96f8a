from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from .constants import ACT_APPROVE, ACT_REJECT
from .auth import require_admin
from .crud import (
    admin_stats,
    blog_to_dict,
    business_to_dict,
    create_business,
    delete_review,
    get_blog,
    get_business,
    list_blogs,
    list_businesses,
    list_profiles,
    profile_to_dict,
    recent_reviews,
    update_business,
    update_profile,
    update_review,
)
from .database import get_db
from .directory import category_to_dict, list_categories, top_businesses_in_category
from .exceptions import NotFoundError
from .moderation import moderate_document, set_blog_flags, set_primary_image, transition_blog
from .models import BusinessDocument, BusinessImage, Category, FeaturedSubcategory, Subcategory
from .schemas import (
    BlogFlags,
    BlogTransition,
    BusinessCreate,
    BusinessUpdate,
    CategoryCreate,
    FeaturedSubcategoryCreate,
    FeaturedSubcategoryUpdate,
    ImageCreate,
    ImageUpdate,
    ProfileUpdate,
    ReviewUpdate,
    SubcategoryCreate,
)
from .utils import sa_to_dict

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/admin", dependencies=[Depends(require_admin)])


def _get_or_404(db: Session, model, obj_id: str, label: str):
    obj = db.get(model, obj_id)
    if obj is None:
        raise NotFoundError(f"{label} not found")
    return obj


# --- Categories ---

@router.get("/categories")
def categories(db: Session = Depends(get_db)):
    return list_categories(db)


@router.post("/categories", status_code=201)
def create_category(body: CategoryCreate, db: Session = Depends(get_db)):
    category = Category(**body.model_dump())
    db.add(category)
    db.commit()
    db.refresh(category)
    return category_to_dict(category)


@router.delete("/categories/{category_id}")
def delete_category(category_id: str, db: Session = Depends(get_db)):
    """Delete a category together with its subcategories."""
    db.delete(_get_or_404(db, Category, category_id, "Category"))
    db.commit()
    logger.info("category_deleted", category_id=category_id)
    return {"message": "Successfully deleted"}


@router.post("/subcategories", status_code=201)
def create_subcategory(body: SubcategoryCreate, db: Session = Depends(get_db)):
    _get_or_404(db, Category, body.category_id, "Category")
    sub = Subcategory(name=body.name, category_id=body.category_id)
    db.add(sub)
    db.commit()
    db.refresh(sub)
    return sa_to_dict(sub)


@router.delete("/subcategories/{subcategory_id}")
def delete_subcategory(subcategory_id: str, db: Session = Depends(get_db)):
    db.delete(_get_or_404(db, Subcategory, subcategory_id, "Subcategory"))
    db.commit()
    return {"message": "Successfully deleted"}


# --- Businesses ---

@router.get("/businesses")
def businesses(q: Optional[str] = None, db: Session = Depends(get_db)):
    return list_businesses(db, q)


@router.post("/businesses", status_code=201)
def add_business(body: BusinessCreate, db: Session = Depends(get_db)):
    """Create a business for an owner profile, categories attached atomically.

    Args:
        body: business fields plus owner id and taxonomy ids.
        db: DB session dependency.

    Returns:
        dict: the stored business with its categories.
    """
    fields = body.model_dump(exclude_unset=True)
    owner_id = fields.pop("business_owner_id")
    business = create_business(
        db,
        owner_id,
        category_ids=fields.pop("category_ids", None),
        subcategory_ids=fields.pop("subcategory_ids", None),
        created_by_admin=True,
        **fields,
    )
    return business_to_dict(business)


@router.patch("/businesses/{business_id}")
def edit_business(business_id: str, body: BusinessUpdate, db: Session = Depends(get_db)):
    business = get_business(db, business_id, include_banned=True)
    fields = body.model_dump(exclude_unset=True)
    business = update_business(
        db,
        business,
        category_ids=fields.pop("category_ids", None),
        subcategory_ids=fields.pop("subcategory_ids", None),
        **fields,
    )
    if "is_banned" in fields:
        logger.info("business_ban_changed", business_id=business_id, is_banned=business.is_banned)
    return business_to_dict(business)


@router.delete("/businesses/{business_id}")
def delete_business(business_id: str, db: Session = Depends(get_db)):
    db.delete(get_business(db, business_id, include_banned=True))
    db.commit()
    logger.info("business_deleted", business_id=business_id)
    return {"message": "Successfully deleted"}


# --- Users ---

@router.get("/users")
def users(role: Optional[str] = None, q: Optional[str] = None, db: Session = Depends(get_db)):
    return list_profiles(db, role, q)


@router.patch("/users/{user_id}")
def edit_user(user_id: str, body: ProfileUpdate, db: Session = Depends(get_db)):
    """Edit a profile; banning a user also bans the businesses they own."""
    return profile_to_dict(update_profile(db, user_id, **body.model_dump(exclude_unset=True)))


# --- Reviews ---

@router.get("/reviews")
def reviews(db: Session = Depends(get_db)):
    return recent_reviews(db, limit=10)


@router.patch("/reviews/{review_id}")
def edit_review(review_id: str, body: ReviewUpdate, db: Session = Depends(get_db)):
    return sa_to_dict(update_review(db, review_id, **body.model_dump(exclude_unset=True)))


@router.delete("/reviews/{review_id}")
def remove_review(review_id: str, db: Session = Depends(get_db)):
    delete_review(db, review_id)
    return {"message": "Successfully deleted"}


# --- Blog moderation ---

@router.get("/blogs")
def blogs(status: Optional[str] = None, db: Session = Depends(get_db)):
    return list_blogs(db, status=status)


@router.get("/blogs/{post_id}")
def blog(post_id: str, db: Session = Depends(get_db)):
    return blog_to_dict(get_blog(db, post_id))


@router.post("/blogs/{post_id}/transition")
def blog_transition(post_id: str, body: BlogTransition, db: Session = Depends(get_db)):
    """Apply approve / withdraw / publish / unpublish / republish to a post."""
    return blog_to_dict(transition_blog(db, post_id, body.action))


@router.patch("/blogs/{post_id}/flags")
def blog_flags(post_id: str, body: BlogFlags, db: Session = Depends(get_db)):
    """Set featured / trending on a published or unpublished post."""
    return blog_to_dict(set_blog_flags(db, post_id, body.is_featured, body.is_trending))


# --- Business documents ---

@router.get("/business-documents")
def business_documents(status: Optional[str] = None, db: Session = Depends(get_db)):
    stmt = select(BusinessDocument).options(selectinload(BusinessDocument.business))
    if status:
        stmt = stmt.where(BusinessDocument.status == status)
    out = []
    for document in db.execute(stmt.order_by(BusinessDocument.uploaded_at.desc())).scalars():
        row = sa_to_dict(document)
        row["business_name"] = document.business.business_name if document.business else None
        out.append(row)
    return out


@router.post("/business-documents/{document_id}/approve")
def approve_document(document_id: str, db: Session = Depends(get_db)):
    return sa_to_dict(moderate_document(db, document_id, ACT_APPROVE))


@router.post("/business-documents/{document_id}/reject")
def reject_document(document_id: str, db: Session = Depends(get_db)):
    return sa_to_dict(moderate_document(db, document_id, ACT_REJECT))


@router.delete("/business-documents/{document_id}")
def delete_document(document_id: str, db: Session = Depends(get_db)):
    db.delete(_get_or_404(db, BusinessDocument, document_id, "Document"))
    db.commit()
    return {"message": "Successfully deleted"}


# --- Business images ---

@router.post("/business-images", status_code=201)
def add_image(body: ImageCreate, db: Session = Depends(get_db)):
    get_business(db, body.business_id, include_banned=True)
    image = BusinessImage(business_id=body.business_id, image_url=body.image_url)
    db.add(image)
    db.commit()
    if body.is_primary:
        image = set_primary_image(db, image.id, True)
    else:
        db.refresh(image)
    return sa_to_dict(image)


@router.patch("/business-images/{image_id}")
def edit_image(image_id: str, body: ImageUpdate, db: Session = Depends(get_db)):
    """Mark or unmark the primary image; at most one per business."""
    return sa_to_dict(set_primary_image(db, image_id, body.is_primary))


@router.delete("/business-images/{image_id}")
def delete_image(image_id: str, db: Session = Depends(get_db)):
    db.delete(_get_or_404(db, BusinessImage, image_id, "Image"))
    db.commit()
    return {"message": "Successfully deleted"}


# --- Dashboard ---

@router.get("/stats")
def stats(db: Session = Depends(get_db)):
    return admin_stats(db)


# --- Best in category curation ---

def featured_to_dict(entry: FeaturedSubcategory) -> dict:
    row = sa_to_dict(entry)
    sub = entry.subcategory
    row["subcategories"] = {
        "name": sub.name,
        "categories": {"name": sub.category.name if sub.category else None},
    } if sub else None
    return row


@router.get("/best-in-categories")
def featured_subcategories(db: Session = Depends(get_db)):
    stmt = (
        select(FeaturedSubcategory)
        .options(selectinload(FeaturedSubcategory.subcategory).selectinload(Subcategory.category))
        .order_by(FeaturedSubcategory.created_at)
    )
    return [featured_to_dict(e) for e in db.execute(stmt).scalars()]


@router.post("/best-in-categories", status_code=201)
def add_featured_subcategory(body: FeaturedSubcategoryCreate, db: Session = Depends(get_db)):
    _get_or_404(db, Subcategory, body.subcategory_id, "Subcategory")
    entry = FeaturedSubcategory(subcategory_id=body.subcategory_id)
    db.add(entry)
    db.commit()
    db.refresh(entry)
    return featured_to_dict(entry)


@router.put("/best-in-categories")
def edit_featured_subcategory(body: FeaturedSubcategoryUpdate, db: Session = Depends(get_db)):
    entry = _get_or_404(db, FeaturedSubcategory, body.id, "Featured subcategory")
    _get_or_404(db, Subcategory, body.subcategory_id, "Subcategory")
    entry.subcategory_id = body.subcategory_id
    db.commit()
    db.refresh(entry)
    return featured_to_dict(entry)


@router.delete("/best-in-categories")
def remove_featured_subcategory(id: Optional[str] = None, db: Session = Depends(get_db)):
    if not id:
        raise HTTPException(status_code=400, detail="ID is required")
    db.delete(_get_or_404(db, FeaturedSubcategory, id, "Featured subcategory"))
    db.commit()
    return {"message": "Successfully deleted"}


@router.get("/best-in-categories/businesses")
def best_in_candidates(category_id: Optional[str] = None, db: Session = Depends(get_db)):
    """Top rated businesses of a category (at least 3 reviews), to pick from."""
    if not category_id:
        raise HTTPException(status_code=400, detail="Category ID is required")
    return top_businesses_in_category(db, category_id)
