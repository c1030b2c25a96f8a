import os
import tempfile
from datetime import datetime, timedelta, timezone

# Configure an isolated writable test database BEFORE importing the app.
# Use a temp file so parallel runs / reruns don't collide.
_tmp_db_path = os.path.join(tempfile.gettempdir(), f"reviewtrust_test_{os.getpid()}.db")
os.environ["DATABASE_URL"] = f"sqlite:///{_tmp_db_path}"
os.environ["JWT_SECRET"] = "test-secret"
if os.path.exists(_tmp_db_path):
    os.remove(_tmp_db_path)

import jwt
import pytest
from fastapi.testclient import TestClient

from reviewtrust.main import app
from reviewtrust.database import SessionLocal, engine
from reviewtrust.models import (
    Base,
    Blog,
    Business,
    Category,
    Profile,
    Review,
    ReviewComment,
    Subcategory,
)

BASE_TIME = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def make_token(user_id: str, expires_in: int = 3600, secret: str = "test-secret", audience: str = "authenticated") -> str:
    claims = {
        "sub": user_id,
        "aud": audience,
        "exp": datetime.now(timezone.utc) + timedelta(seconds=expires_in),
    }
    return jwt.encode(claims, secret, algorithm="HS256")


def auth(user_id: str) -> dict:
    return {"Authorization": f"Bearer {make_token(user_id)}"}


@pytest.fixture(autouse=True)
def fresh_schema():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


class Factory:
    """Creates committed rows with predictable ids and timestamps."""

    def __init__(self, session):
        self.db = session
        self.counter = 0

    def _save(self, obj):
        self.db.add(obj)
        self.db.commit()
        self.db.refresh(obj)
        return obj

    def profile(self, id=None, role="user", name=None, is_banned=False, **kw):
        self.counter += 1
        return self._save(Profile(
            id=id or f"user-{self.counter}",
            role=role,
            name=name,
            email=kw.pop("email", None),
            is_banned=is_banned,
            **kw,
        ))

    def business(self, owner=None, name="CoffeeCo", id=None, categories=(), subcategories=(), **kw):
        self.counter += 1
        owner = owner or self.profile(role="business")
        business = Business(
            id=id or f"biz-{self.counter}",
            business_name=name,
            business_owner_id=owner.id,
            **kw,
        )
        business.categories = list(categories)
        business.subcategories = list(subcategories)
        return self._save(business)

    def category(self, name, subcategories=()):
        category = Category(name=name)
        category.subcategories = [Subcategory(name=s) for s in subcategories]
        return self._save(category)

    def review(self, business, reviewer=None, rating=5, minutes=0, comment=None, **kw):
        reviewer = reviewer or self.profile()
        return self._save(Review(
            rating=rating,
            comment=comment,
            reviewer_id=reviewer.id,
            reviewee_id=business.id,
            created_at=BASE_TIME + timedelta(minutes=minutes),
            **kw,
        ))

    def reply(self, review, author, text="Thanks!", minutes=0):
        return self._save(ReviewComment(
            review_id=review.id,
            commenter_id=author.id,
            comment=text,
            created_at=BASE_TIME + timedelta(minutes=minutes),
        ))

    def blog(self, business, status="drafted", title="Post", content="Body", **kw):
        return self._save(Blog(
            business_id=business.id,
            title=title,
            content=content,
            status=status,
            published=status == "published",
            **kw,
        ))


@pytest.fixture
def factory(db):
    return Factory(db)
