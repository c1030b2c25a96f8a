from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, Field, field_validator

from .constants import ADMIN_BLOG_ACTIONS, ROLES
from .validate import is_valid_phone


def _check_phone(value: Optional[str]) -> Optional[str]:
    if value and not is_valid_phone(value):
        raise ValueError("Phone number must be in E.164 format (e.g. +251911234567)")
    return value


Phone = Annotated[Optional[str], AfterValidator(_check_phone)]


class ReviewCreate(BaseModel):
    rating: int = Field(ge=1, le=5)
    comment: Optional[str] = None


class ReviewUpdate(BaseModel):
    rating: Optional[int] = Field(default=None, ge=1, le=5)
    comment: Optional[str] = None
    is_verified: Optional[bool] = None


class ReplyCreate(BaseModel):
    comment: str = Field(min_length=1)


class TrackView(BaseModel):
    business_id: str = Field(min_length=1)


class CategoryCreate(BaseModel):
    name: str = Field(min_length=1)
    icon: Optional[str] = None
    bg_color: Optional[str] = None


class SubcategoryCreate(BaseModel):
    name: str = Field(min_length=1)
    category_id: str


class BusinessFields(BaseModel):
    business_name: Optional[str] = None
    location: Optional[str] = None
    address: Optional[str] = None
    phone: Phone = None
    website: Optional[str] = None
    description: Optional[str] = None
    business_hours: Optional[str] = None
    google_map_embed: Optional[str] = None
    category_ids: Optional[list[str]] = None
    subcategory_ids: Optional[list[str]] = None


class BusinessCreate(BusinessFields):
    business_name: str = Field(min_length=1)
    business_owner_id: str


class BusinessUpdate(BusinessFields):
    is_banned: Optional[bool] = None


class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    phone: Phone = None
    role: Optional[str] = None
    is_banned: Optional[bool] = None

    @field_validator("role")
    @classmethod
    def known_role(cls, value):
        if value is not None and value not in ROLES:
            raise ValueError(f"role must be one of {', '.join(ROLES)}")
        return value


class BlogWrite(BaseModel):
    title: str = Field(min_length=1)
    content: str = Field(min_length=1)
    thumbnail_image: Optional[str] = None
    submit: bool = False


class BlogTransition(BaseModel):
    action: str

    @field_validator("action")
    @classmethod
    def admin_action(cls, value):
        if value not in ADMIN_BLOG_ACTIONS:
            raise ValueError(f"action must be one of {', '.join(ADMIN_BLOG_ACTIONS)}")
        return value


class BlogFlags(BaseModel):
    is_featured: Optional[bool] = None
    is_trending: Optional[bool] = None


class DocumentCreate(BaseModel):
    document_url: str = Field(min_length=1)
    document_name: Optional[str] = None


class ImageCreate(BaseModel):
    business_id: str
    image_url: str = Field(min_length=1)
    is_primary: bool = False


class ImageUpdate(BaseModel):
    is_primary: bool


class FeaturedSubcategoryCreate(BaseModel):
    subcategory_id: str


class FeaturedSubcategoryUpdate(BaseModel):
    id: str
    subcategory_id: str

