from dataclasses import asdict

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from .auth import Identity, require_business
from .crud import blog_to_dict, business_to_dict, list_blogs, owned_business, reviews_for_owner, update_business
from .database import get_db
from .hours import parse_hours
from .moderation import save_business_post
from .models import BusinessDocument
from .schemas import BlogWrite, BusinessFields, DocumentCreate
from .utils import sa_to_dict

router = APIRouter(prefix="/api/business", dependencies=[Depends(require_business)])


@router.get("/profile")
def profile(identity: Identity = Depends(require_business), db: Session = Depends(get_db)):
    """The caller's business with its hours expanded to editable rows."""
    business = owned_business(db, identity.user_id)
    row = business_to_dict(business)
    row["hours"] = [asdict(h) for h in parse_hours(business.business_hours)]
    return row


@router.patch("/profile")
def edit_profile(
    body: BusinessFields,
    identity: Identity = Depends(require_business),
    db: Session = Depends(get_db),
):
    business = owned_business(db, identity.user_id)
    fields = body.model_dump(exclude_unset=True)
    business = update_business(
        db,
        business,
        category_ids=fields.pop("category_ids", None),
        subcategory_ids=fields.pop("subcategory_ids", None),
        **fields,
    )
    return business_to_dict(business)


@router.get("/blogs")
def blogs(identity: Identity = Depends(require_business), db: Session = Depends(get_db)):
    return list_blogs(db, business_id=owned_business(db, identity.user_id).id)


@router.post("/blogs", status_code=201)
def create_blog(
    body: BlogWrite,
    identity: Identity = Depends(require_business),
    db: Session = Depends(get_db),
):
    """Save a new post as a draft, or submit it straight for review (`submit=true`)."""
    business = owned_business(db, identity.user_id)
    post = save_business_post(db, business.id, body.title, body.content, body.thumbnail_image, body.submit)
    return blog_to_dict(post)


@router.put("/blogs/{post_id}")
def edit_blog(
    post_id: str,
    body: BlogWrite,
    identity: Identity = Depends(require_business),
    db: Session = Depends(get_db),
):
    """Edit a drafted or pending post; anything further along is a 409."""
    business = owned_business(db, identity.user_id)
    post = save_business_post(
        db, business.id, body.title, body.content, body.thumbnail_image, body.submit, post_id=post_id
    )
    return blog_to_dict(post)


@router.get("/documents")
def documents(identity: Identity = Depends(require_business), db: Session = Depends(get_db)):
    business = owned_business(db, identity.user_id)
    stmt = (
        select(BusinessDocument)
        .where(BusinessDocument.business_id == business.id)
        .order_by(BusinessDocument.uploaded_at.desc())
    )
    return [sa_to_dict(d) for d in db.execute(stmt).scalars()]


@router.post("/documents", status_code=201)
def upload_document(
    body: DocumentCreate,
    identity: Identity = Depends(require_business),
    db: Session = Depends(get_db),
):
    """Register an uploaded verification document; it starts out pending."""
    business = owned_business(db, identity.user_id)
    document = BusinessDocument(
        business_id=business.id,
        document_url=body.document_url,
        document_name=body.document_name,
    )
    db.add(document)
    db.commit()
    db.refresh(document)
    return sa_to_dict(document)


@router.get("/reviews")
def reviews(identity: Identity = Depends(require_business), db: Session = Depends(get_db)):
    return reviews_for_owner(db, identity.user_id)
