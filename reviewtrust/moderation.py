"""Moderation workflows: blog post lifecycle, curation flags, documents, images."""

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .constants import (
    ACT_APPROVE,
    ACT_PUBLISH,
    ACT_REJECT,
    ACT_REPUBLISH,
    ACT_SAVE_DRAFT,
    ACT_SUBMIT,
    ACT_UNPUBLISH,
    ACT_WITHDRAW,
    BLOG_APPROVED,
    BLOG_CURATABLE,
    BLOG_DRAFTED,
    BLOG_PENDING,
    BLOG_PUBLISHED,
    BLOG_UNPUBLISHED,
    BLOG_WITHDRAWN,
    DOC_APPROVED,
    DOC_PENDING,
    DOC_REJECTED,
    ROLE_ADMIN,
    ROLE_BUSINESS,
)
from .exceptions import ConflictError, InvalidTransitionError, NotFoundError, PermissionDeniedError, ValidationError
from .models import Blog, BusinessDocument, BusinessImage, utcnow

logger = structlog.get_logger(__name__)

# (current status, action) -> (next status, role allowed to act). None is a post not yet saved.
BLOG_TRANSITIONS = {
    (None, ACT_SAVE_DRAFT): (BLOG_DRAFTED, ROLE_BUSINESS),
    (BLOG_DRAFTED, ACT_SAVE_DRAFT): (BLOG_DRAFTED, ROLE_BUSINESS),
    (BLOG_PENDING, ACT_SAVE_DRAFT): (BLOG_DRAFTED, ROLE_BUSINESS),
    (None, ACT_SUBMIT): (BLOG_PENDING, ROLE_BUSINESS),
    (BLOG_DRAFTED, ACT_SUBMIT): (BLOG_PENDING, ROLE_BUSINESS),
    (BLOG_PENDING, ACT_SUBMIT): (BLOG_PENDING, ROLE_BUSINESS),
    (BLOG_PENDING, ACT_APPROVE): (BLOG_APPROVED, ROLE_ADMIN),
    (BLOG_PENDING, ACT_WITHDRAW): (BLOG_WITHDRAWN, ROLE_ADMIN),
    (BLOG_APPROVED, ACT_PUBLISH): (BLOG_PUBLISHED, ROLE_ADMIN),
    (BLOG_PUBLISHED, ACT_UNPUBLISH): (BLOG_UNPUBLISHED, ROLE_ADMIN),
    (BLOG_UNPUBLISHED, ACT_REPUBLISH): (BLOG_PUBLISHED, ROLE_ADMIN),
}

DOCUMENT_TRANSITIONS = {
    (DOC_PENDING, ACT_APPROVE): DOC_APPROVED,
    (DOC_PENDING, ACT_REJECT): DOC_REJECTED,
}


def next_blog_status(current: str | None, action: str, role: str) -> str:
    """Look up the status a blog post moves to.

    Args:
        current: present status, or None for a post being created.
        action: one of the ACT_* moderation actions.
        role: role of the acting profile.

    Returns:
        The next status.

    Raises:
        InvalidTransitionError: the action is not allowed from `current`.
        PermissionDeniedError: the action is allowed but not for `role`.
    """
    entry = BLOG_TRANSITIONS.get((current, action))
    if entry is None:
        raise InvalidTransitionError(current or "new", action)
    status, actor = entry
    if role != actor:
        raise PermissionDeniedError(f"Only a {actor} account can {action} a post")
    return status


def apply_blog_status(post: Blog, status: str) -> Blog:
    # `published` mirrors the status on every write
    post.status = status
    post.published = status == BLOG_PUBLISHED
    post.updated_at = utcnow()
    return post


def transition_blog(db: Session, post_id: str, action: str, role: str = ROLE_ADMIN) -> Blog:
    """Apply an admin moderation action to a stored post and commit."""
    post = db.get(Blog, post_id)
    if post is None:
        raise NotFoundError("Blog post not found")
    previous = post.status
    apply_blog_status(post, next_blog_status(previous, action, role))
    db.commit()
    db.refresh(post)
    logger.info("blog_transitioned", blog_id=post.id, action=action, previous=previous, status=post.status)
    return post


def save_business_post(
    db: Session,
    business_id: str,
    title: str,
    content: str,
    thumbnail_image: str | None = None,
    submit: bool = False,
    post_id: str | None = None,
) -> Blog:
    """Create or edit a business's post as a draft, or submit it for review.

    Raises:
        NotFoundError: `post_id` does not belong to the business.
        InvalidTransitionError: the post is already past review.
    """
    action = ACT_SUBMIT if submit else ACT_SAVE_DRAFT
    if post_id is None:
        post = Blog(business_id=business_id)
        current = None
    else:
        post = db.get(Blog, post_id)
        if post is None or post.business_id != business_id:
            raise NotFoundError("Blog post not found")
        current = post.status
    status = next_blog_status(current, action, ROLE_BUSINESS)

    post.title = title
    post.content = content
    if thumbnail_image is not None:
        post.thumbnail_image = thumbnail_image
    apply_blog_status(post, status)
    if post_id is None:
        db.add(post)
    db.commit()
    db.refresh(post)
    logger.info("blog_saved", blog_id=post.id, business_id=business_id, status=post.status)
    return post


def set_blog_flags(
    db: Session,
    post_id: str,
    is_featured: bool | None = None,
    is_trending: bool | None = None,
) -> Blog:
    """Set the featured and/or trending flag on a moderated post.

    Featuring a post clears the flag on whichever post held it, in the same
    transaction; the partial unique index on blogs.is_featured rejects any
    write that would leave two featured posts.

    Raises:
        NotFoundError: unknown post.
        ValidationError: the post has not been through moderation yet.
    """
    post = db.get(Blog, post_id)
    if post is None:
        raise NotFoundError("Blog post not found")
    if post.status not in BLOG_CURATABLE:
        raise ValidationError("Only published or unpublished posts can be featured or trending")

    if is_featured:
        holders = db.execute(
            select(Blog).where(Blog.is_featured.is_(True), Blog.id != post.id)
        ).scalars().all()
        for holder in holders:
            holder.is_featured = False
        # Clear the previous holder before the new one is written
        db.flush()
        post.is_featured = True
    elif is_featured is not None:
        post.is_featured = False
    if is_trending is not None:
        post.is_trending = is_trending

    try:
        db.commit()
    except IntegrityError:
        # Another admin featured a post between our read and write
        db.rollback()
        raise ConflictError("Another post was featured concurrently, please retry")
    db.refresh(post)
    logger.info(
        "blog_flags_updated",
        blog_id=post.id,
        is_featured=post.is_featured,
        is_trending=post.is_trending,
    )
    return post


def moderate_document(db: Session, document_id: str, action: str) -> BusinessDocument:
    """Approve or reject a pending business document.

    Raises:
        NotFoundError: unknown document.
        InvalidTransitionError: the document has already been decided.
    """
    document = db.get(BusinessDocument, document_id)
    if document is None:
        raise NotFoundError("Document not found")
    status = DOCUMENT_TRANSITIONS.get((document.status, action))
    if status is None:
        raise InvalidTransitionError(document.status, action)
    document.status = status
    db.commit()
    db.refresh(document)
    logger.info("document_moderated", document_id=document.id, status=status)
    return document


def set_primary_image(db: Session, image_id: str, is_primary: bool) -> BusinessImage:
    """Mark an image as the business's primary image (clearing the others), or unmark it."""
    image = db.get(BusinessImage, image_id)
    if image is None:
        raise NotFoundError("Image not found")
    if is_primary:
        others = db.execute(
            select(BusinessImage).where(
                BusinessImage.business_id == image.business_id,
                BusinessImage.id != image.id,
                BusinessImage.is_primary.is_(True),
            )
        ).scalars().all()
        for other in others:
            other.is_primary = False
    image.is_primary = is_primary
    db.commit()
    db.refresh(image)
    return image
