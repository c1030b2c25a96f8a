import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship, Mapped, mapped_column
from .database import Base
from .constants import (
    BLOG_DRAFTED,
    DOC_PENDING,
    ROLE_USER,
    TBL_BLOGS,
    TBL_BUSINESS_CATEGORIES,
    TBL_BUSINESS_DOCUMENTS,
    TBL_BUSINESS_IMAGES,
    TBL_BUSINESS_SUBCATEGORIES,
    TBL_BUSINESS_VIEWS,
    TBL_BUSINESSES,
    TBL_CATEGORIES,
    TBL_FEATURED_SUBCATEGORIES,
    TBL_PROFILES,
    TBL_REVIEW_COMMENTS,
    TBL_REVIEWS,
    TBL_SUBCATEGORIES,
    TBL_USER_COMMENT_LIKES,
    TBL_USER_LIKES,
)


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


business_categories = Table(
    TBL_BUSINESS_CATEGORIES,
    Base.metadata,
    Column("business_id", String, ForeignKey("businesses.id", ondelete="CASCADE"), primary_key=True),
    Column("category_id", String, ForeignKey("categories.id", ondelete="CASCADE"), primary_key=True),
)

business_subcategories = Table(
    TBL_BUSINESS_SUBCATEGORIES,
    Base.metadata,
    Column("business_id", String, ForeignKey("businesses.id", ondelete="CASCADE"), primary_key=True),
    Column("subcategory_id", String, ForeignKey("subcategories.id", ondelete="CASCADE"), primary_key=True),
)


class Profile(Base):
    __tablename__ = TBL_PROFILES
    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    name: Mapped[str | None] = mapped_column(String, nullable=True)
    email: Mapped[str | None] = mapped_column(String, nullable=True)
    phone: Mapped[str | None] = mapped_column(String, nullable=True)
    role: Mapped[str] = mapped_column(String, nullable=False, default=ROLE_USER)
    is_banned: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    businesses = relationship("Business", back_populates="owner")


class Category(Base):
    __tablename__ = TBL_CATEGORIES
    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String, nullable=False)
    icon: Mapped[str | None] = mapped_column(String, nullable=True)
    bg_color: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    subcategories = relationship(
        "Subcategory",
        back_populates="category",
        cascade="all, delete-orphan",
        order_by="Subcategory.name",
    )


class Subcategory(Base):
    __tablename__ = TBL_SUBCATEGORIES
    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String, nullable=False)
    category_id: Mapped[str] = mapped_column(
        String, ForeignKey("categories.id", ondelete="CASCADE"), index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    category = relationship("Category", back_populates="subcategories")


class Business(Base):
    __tablename__ = TBL_BUSINESSES
    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    business_name: Mapped[str] = mapped_column(String, nullable=False, index=True)
    business_owner_id: Mapped[str] = mapped_column(String, ForeignKey("profiles.id"), index=True)
    location: Mapped[str | None] = mapped_column(String, nullable=True)
    address: Mapped[str | None] = mapped_column(String, nullable=True)
    phone: Mapped[str | None] = mapped_column(String, nullable=True)
    website: Mapped[str | None] = mapped_column(String, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    business_hours: Mapped[str | None] = mapped_column(Text, nullable=True)  # JSON day -> "open - close"
    google_map_embed: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_banned: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    rating_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_by_admin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    owner = relationship("Profile", back_populates="businesses")
    categories = relationship("Category", secondary=business_categories, order_by="Category.name")
    subcategories = relationship("Subcategory", secondary=business_subcategories, order_by="Subcategory.name")
    images = relationship("BusinessImage", back_populates="business", cascade="all, delete-orphan")
    documents = relationship("BusinessDocument", back_populates="business", cascade="all, delete-orphan")
    reviews = relationship("Review", back_populates="business", cascade="all, delete-orphan")
    blogs = relationship("Blog", back_populates="business", cascade="all, delete-orphan")


class BusinessImage(Base):
    __tablename__ = TBL_BUSINESS_IMAGES
    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    business_id: Mapped[str] = mapped_column(String, ForeignKey("businesses.id", ondelete="CASCADE"), index=True)
    image_url: Mapped[str] = mapped_column(String, nullable=False)
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    business = relationship("Business", back_populates="images")


class BusinessDocument(Base):
    __tablename__ = TBL_BUSINESS_DOCUMENTS
    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    business_id: Mapped[str] = mapped_column(String, ForeignKey("businesses.id", ondelete="CASCADE"), index=True)
    document_url: Mapped[str] = mapped_column(String, nullable=False)
    document_name: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default=DOC_PENDING)
    uploaded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    business = relationship("Business", back_populates="documents")


class BusinessView(Base):
    __tablename__ = TBL_BUSINESS_VIEWS
    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    business_id: Mapped[str] = mapped_column(String, ForeignKey("businesses.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[str | None] = mapped_column(String, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String, nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class Review(Base):
    __tablename__ = TBL_REVIEWS
    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    reviewer_id: Mapped[str] = mapped_column(String, ForeignKey("profiles.id"), index=True)
    reviewee_id: Mapped[str] = mapped_column(String, ForeignKey("businesses.id", ondelete="CASCADE"), index=True)
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    likes_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    reviewer = relationship("Profile")
    business = relationship("Business", back_populates="reviews")
    comments = relationship(
        "ReviewComment",
        back_populates="review",
        cascade="all, delete-orphan",
        order_by="ReviewComment.created_at",
    )
    likes = relationship("UserLike", back_populates="review", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint("rating >= 1 AND rating <= 5", name="check_rating_range"),
        CheckConstraint("likes_count >= 0", name="check_review_likes_non_negative"),
        UniqueConstraint("reviewer_id", "reviewee_id", name="uq_reviews_reviewer_business"),
    )


class ReviewComment(Base):
    __tablename__ = TBL_REVIEW_COMMENTS
    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    review_id: Mapped[str] = mapped_column(String, ForeignKey("reviews.id", ondelete="CASCADE"), index=True)
    commenter_id: Mapped[str] = mapped_column(String, ForeignKey("profiles.id"), index=True)
    comment: Mapped[str] = mapped_column(Text, nullable=False)
    likes_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    review = relationship("Review", back_populates="comments")
    commenter = relationship("Profile")
    likes = relationship("UserCommentLike", back_populates="comment", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint("likes_count >= 0", name="check_comment_likes_non_negative"),
    )


class UserLike(Base):
    __tablename__ = TBL_USER_LIKES
    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String, ForeignKey("profiles.id"), index=True)
    review_id: Mapped[str] = mapped_column(String, ForeignKey("reviews.id", ondelete="CASCADE"), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    review = relationship("Review", back_populates="likes")

    __table_args__ = (
        UniqueConstraint("user_id", "review_id", name="uq_user_likes_user_review"),
    )


class UserCommentLike(Base):
    __tablename__ = TBL_USER_COMMENT_LIKES
    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String, ForeignKey("profiles.id"), index=True)
    comment_id: Mapped[str] = mapped_column(String, ForeignKey("review_comments.id", ondelete="CASCADE"), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    comment = relationship("ReviewComment", back_populates="likes")

    __table_args__ = (
        UniqueConstraint("user_id", "comment_id", name="uq_user_comment_likes_user_comment"),
    )


class Blog(Base):
    __tablename__ = TBL_BLOGS
    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    title: Mapped[str] = mapped_column(String, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    thumbnail_image: Mapped[str | None] = mapped_column(String, nullable=True)
    published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default=BLOG_DRAFTED)
    is_featured: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_trending: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    business_id: Mapped[str] = mapped_column(String, ForeignKey("businesses.id", ondelete="CASCADE"), index=True)
    read_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    business = relationship("Business", back_populates="blogs")

    __table_args__ = (
        # At most one featured post platform-wide
        Index(
            "uq_blogs_single_featured",
            "is_featured",
            unique=True,
            sqlite_where=text("is_featured = 1"),
            postgresql_where=text("is_featured"),
        ),
    )


class FeaturedSubcategory(Base):
    __tablename__ = TBL_FEATURED_SUBCATEGORIES
    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    subcategory_id: Mapped[str] = mapped_column(
        String, ForeignKey("subcategories.id", ondelete="CASCADE"), index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    subcategory = relationship("Subcategory")
