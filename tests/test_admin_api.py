import pytest
from sqlalchemy import select

from conftest import auth
from reviewtrust.models import Business, BusinessDocument, BusinessImage, Review


@pytest.fixture
def admin(factory):
    return auth(factory.profile(role="admin", name="Root").id)


def test_guards(client, factory):
    assert client.get("/api/admin/stats").status_code == 401
    user = factory.profile()
    r = client.get("/api/admin/stats", headers=auth(user.id))
    assert r.status_code == 403
    assert r.json() == {"error": "Forbidden"}
    owner = factory.profile(role="business")
    assert client.get("/api/admin/categories", headers=auth(owner.id)).status_code == 403


def test_category_crud(client, admin):
    r = client.post("/api/admin/categories", json={"name": "Food", "icon": "utensils"}, headers=admin)
    assert r.status_code == 201
    category_id = r.json()["id"]

    r = client.post("/api/admin/subcategories", json={"name": "Bakery", "category_id": category_id}, headers=admin)
    assert r.status_code == 201
    sub_id = r.json()["id"]

    listing = client.get("/api/admin/categories", headers=admin).json()
    assert listing[0]["subcategories"][0]["id"] == sub_id

    missing = client.post("/api/admin/subcategories", json={"name": "X", "category_id": "nope"}, headers=admin)
    assert missing.status_code == 404

    r = client.delete(f"/api/admin/categories/{category_id}", headers=admin)
    assert r.json() == {"message": "Successfully deleted"}
    assert client.get("/api/categories").json() == []
    assert client.delete(f"/api/admin/subcategories/{sub_id}", headers=admin).status_code == 404


def test_create_business_with_taxonomy(client, admin, factory, db):
    owner = factory.profile(role="business")
    food = factory.category("Food", ["Bakery"])

    r = client.post(
        "/api/admin/businesses",
        json={
            "business_name": "Bread & Co",
            "business_owner_id": owner.id,
            "phone": "+251911234567",
            "category_ids": [food.id],
            "subcategory_ids": [food.subcategories[0].id],
        },
        headers=admin,
    )
    assert r.status_code == 201
    body = r.json()
    assert body["created_by_admin"] is True
    assert [c["name"] for c in body["categories"]] == ["Food"]
    assert [s["name"] for s in body["subcategories"]] == ["Bakery"]


def test_create_business_is_all_or_nothing(client, admin, factory, db):
    owner = factory.profile(role="business")
    r = client.post(
        "/api/admin/businesses",
        json={"business_name": "Ghost", "business_owner_id": owner.id, "category_ids": ["missing"]},
        headers=admin,
    )
    assert r.status_code == 422
    assert db.query(Business).count() == 0

    bad_phone = client.post(
        "/api/admin/businesses",
        json={"business_name": "Ghost", "business_owner_id": owner.id, "phone": "0911"},
        headers=admin,
    )
    assert bad_phone.status_code == 422


def test_ban_user_hides_their_business(client, admin, factory):
    business = factory.business(name="Shady")
    owner_id = business.owner.id

    r = client.patch(f"/api/admin/users/{owner_id}", json={"is_banned": True}, headers=admin)
    assert r.status_code == 200
    assert r.json()["is_banned"] is True
    assert client.get(f"/api/businesses/{business.id}").status_code == 404

    admin_view = client.get("/api/admin/businesses", params={"q": "shady"}, headers=admin).json()
    assert admin_view[0]["is_banned"] is True

    assert client.patch(f"/api/admin/users/{owner_id}", json={"role": "wizard"}, headers=admin).status_code == 422


def test_user_listing_filters(client, admin, factory):
    factory.profile(name="Alice", email="alice@example.com")
    factory.profile(role="business", name="Bob")
    users = client.get("/api/admin/users", params={"role": "user"}, headers=admin).json()
    assert [u["name"] for u in users] == ["Alice"]
    found = client.get("/api/admin/users", params={"q": "example"}, headers=admin).json()
    assert [u["name"] for u in found] == ["Alice"]


def test_review_moderation(client, admin, factory, db):
    business = factory.business(name="CoffeeCo")
    review = factory.review(business, rating=2, comment="meh")
    business.rating_count = 1
    db.commit()

    recent = client.get("/api/admin/reviews", headers=admin).json()
    assert recent[0]["business_name"] == "CoffeeCo"

    r = client.patch(f"/api/admin/reviews/{review.id}", json={"is_verified": True}, headers=admin)
    assert r.json()["is_verified"] is True

    review_id, business_id = review.id, business.id
    assert client.delete(f"/api/admin/reviews/{review_id}", headers=admin).status_code == 200
    db.expunge_all()
    assert db.execute(select(Review).where(Review.id == review_id)).first() is None
    assert db.get(Business, business_id).rating_count == 0


def test_blog_transitions_and_flags(client, admin, factory):
    business = factory.business()
    post = factory.blog(business, status="pending")

    r = client.patch(f"/api/admin/blogs/{post.id}/flags", json={"is_featured": True}, headers=admin)
    assert r.status_code == 422

    r = client.post(f"/api/admin/blogs/{post.id}/transition", json={"action": "submit"}, headers=admin)
    assert r.status_code == 422
    assert "action must be one of" in r.json()["error"]

    for action, status in [("approve", "approved"), ("publish", "published")]:
        r = client.post(f"/api/admin/blogs/{post.id}/transition", json={"action": action}, headers=admin)
        assert r.status_code == 200
        assert r.json()["status"] == status
    assert r.json()["published"] is True

    again = client.post(f"/api/admin/blogs/{post.id}/transition", json={"action": "approve"}, headers=admin)
    assert again.status_code == 409

    r = client.patch(f"/api/admin/blogs/{post.id}/flags", json={"is_featured": True}, headers=admin)
    assert r.json()["is_featured"] is True
    assert client.get("/api/blog/featured").json()["post"]["id"] == post.id

    pending = client.get("/api/admin/blogs", params={"status": "published"}, headers=admin).json()
    assert [p["id"] for p in pending] == [post.id]


def test_documents_review(client, admin, factory, db):
    business = factory.business()
    document = BusinessDocument(business_id=business.id, document_url="/docs/license.pdf")
    db.add(document)
    db.commit()

    listing = client.get("/api/admin/business-documents", params={"status": "pending"}, headers=admin).json()
    assert [d["id"] for d in listing] == [document.id]

    r = client.post(f"/api/admin/business-documents/{document.id}/approve", headers=admin)
    assert r.json()["status"] == "approved"
    r = client.post(f"/api/admin/business-documents/{document.id}/reject", headers=admin)
    assert r.status_code == 409

    assert client.delete(f"/api/admin/business-documents/{document.id}", headers=admin).status_code == 200


def test_images_single_primary(client, admin, factory, db):
    business = factory.business()
    first = client.post(
        "/api/admin/business-images",
        json={"business_id": business.id, "image_url": "/a.png", "is_primary": True},
        headers=admin,
    ).json()
    second = client.post(
        "/api/admin/business-images",
        json={"business_id": business.id, "image_url": "/b.png", "is_primary": True},
        headers=admin,
    ).json()
    assert second["is_primary"] is True

    db.expire_all()
    assert db.get(BusinessImage, first["id"]).is_primary is False

    r = client.delete(f"/api/admin/business-images/{first['id']}", headers=admin)
    assert r.json() == {"message": "Successfully deleted"}


def test_stats(client, admin, factory):
    factory.review(factory.business())
    stats = client.get("/api/admin/stats", headers=admin).json()
    # the admin profile is not counted
    assert stats == {"users": 1, "businesses": 1, "reviewsThisWeek": 0}


def test_best_in_curation(client, admin, factory):
    food = factory.category("Food", ["Bakery", "Cafe"])
    bakery, cafe = food.subcategories

    r = client.post("/api/admin/best-in-categories", json={"subcategory_id": bakery.id}, headers=admin)
    assert r.status_code == 201
    entry = r.json()
    assert entry["subcategories"] == {"name": "Bakery", "categories": {"name": "Food"}}

    r = client.put(
        "/api/admin/best-in-categories", json={"id": entry["id"], "subcategory_id": cafe.id}, headers=admin
    )
    assert r.json()["subcategories"]["name"] == "Cafe"
    assert client.get("/api/best-in-categories").json()[0]["categoryName"] == "Food - Cafe"

    r = client.delete("/api/admin/best-in-categories", headers=admin)
    assert r.status_code == 400
    assert r.json() == {"error": "ID is required"}
    r = client.delete("/api/admin/best-in-categories", params={"id": entry["id"]}, headers=admin)
    assert r.status_code == 200
    assert client.get("/api/admin/best-in-categories", headers=admin).json() == []

    r = client.get("/api/admin/best-in-categories/businesses", headers=admin)
    assert r.json() == {"error": "Category ID is required"}
    r = client.get("/api/admin/best-in-categories/businesses", params={"category_id": food.id}, headers=admin)
    assert r.json() == []
