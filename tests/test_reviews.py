from bson import ObjectId

import reviews
from conftest import add_review
from database import create_document

REVIEW = {"rating": 4, "title": "Solid", "comment": "Comfortable on long runs."}


def _post(client, product_id, headers, **overrides):
    return client.post(f"/products/{product_id}/reviews", json={**REVIEW, **overrides}, headers=headers)


def test_create_review_updates_product_rating(client, db, product_id, make_user):
    add_review(db, product_id, 5)
    add_review(db, product_id, 3)
    user_id, headers = make_user(name="Ada")

    res = _post(client, product_id, headers)

    assert res.status_code == 201
    body = res.json()
    assert body["review"]["user_id"] == user_id
    assert body["review"]["user_name"] == "Ada"
    assert body["review"]["rating"] == 4
    assert body["review"]["verified_purchase"] is False
    assert body["updated_product"] == {"rating": 4.0, "review_count": 3}

    product = db["product"].find_one({"_id": ObjectId(product_id)})
    assert product["rating"] == 4.0
    assert product["review_count"] == 3


def test_user_name_defaults_to_email_local_part(client, product_id, make_user):
    _, headers = make_user(name=None, email="quiet.reader@example.com")

    res = _post(client, product_id, headers)

    assert res.status_code == 201
    assert res.json()["review"]["user_name"] == "quiet.reader"


def test_second_review_by_same_user_is_rejected(client, db, product_id, user):
    _, headers = user
    assert _post(client, product_id, headers).status_code == 201

    res = _post(client, product_id, headers, rating=1)

    assert res.status_code == 400
    assert db["review"].count_documents({"product_id": product_id}) == 1
    product = db["product"].find_one({"_id": ObjectId(product_id)})
    assert product["review_count"] == 1
    assert product["rating"] == 4.0


def test_rating_out_of_range_is_rejected(client, db, product_id, user):
    _, headers = user

    for rating in (0, 6, -1):
        res = _post(client, product_id, headers, rating=rating)
        assert res.status_code == 400

    assert db["review"].count_documents({}) == 0


def test_fractional_rating_is_rejected(client, product_id, user):
    _, headers = user
    assert _post(client, product_id, headers, rating=4.5).status_code == 400


def test_missing_fields_are_rejected(client, product_id, user):
    _, headers = user
    res = client.post(f"/products/{product_id}/reviews", json={"rating": 5}, headers=headers)
    assert res.status_code == 400
    assert _post(client, product_id, headers, title="").status_code == 400
    assert _post(client, product_id, headers, comment="x" * 1001).status_code == 400


def test_review_requires_authentication(client, product_id):
    res = client.post(f"/products/{product_id}/reviews", json=REVIEW)
    assert res.status_code == 401


def test_review_with_bad_token_is_unauthorized(client, product_id):
    res = _post(client, product_id, {"Authorization": "Bearer not-a-jwt"})
    assert res.status_code == 401


def test_review_for_missing_product(client, user):
    _, headers = user
    assert _post(client, str(ObjectId()), headers).status_code == 404
    assert _post(client, "not-an-id", headers).status_code == 400


def test_recompute_failure_does_not_fail_submission(client, db, product_id, user, monkeypatch):
    def broken(database, pid):
        raise RuntimeError("write failed")

    monkeypatch.setattr(reviews, "recompute_one", broken)
    _, headers = user

    res = _post(client, product_id, headers)

    assert res.status_code == 201
    assert res.json()["updated_product"] is None
    assert db["review"].count_documents({"product_id": product_id}) == 1
    assert db["product"].find_one({"_id": ObjectId(product_id)})["review_count"] == 0


def test_verified_purchase_when_user_ordered_product(client, db, product_id, user):
    user_id, headers = user
    create_document(db, "order", {
        "user_id": user_id,
        "order_number": "ORD-1-abc",
        "items": [{"product": {"id": product_id, "name": "Trail Runner", "price": 89.99}, "quantity": 1, "price": 89.99}],
        "total": 89.99,
        "status": "delivered",
    })

    res = _post(client, product_id, headers)

    assert res.json()["review"]["verified_purchase"] is True


def test_list_reviews_with_summary(client, db, product_id):
    for rating in (5, 4, 3):
        add_review(db, product_id, rating)

    res = client.get(f"/products/{product_id}/reviews", params={"sort": "highest"})

    assert res.status_code == 200
    body = res.json()
    assert [r["rating"] for r in body["reviews"]] == [5, 4, 3]
    assert body["summary"]["average_rating"] == 4.0
    assert body["summary"]["total_reviews"] == 3
    assert body["summary"]["rating_distribution"] == [
        {"rating": 5, "count": 1},
        {"rating": 4, "count": 1},
        {"rating": 3, "count": 1},
    ]
    assert body["pagination"] == {"page": 1, "limit": 10, "total_reviews": 3, "total_pages": 1}


def test_list_reviews_sorting_and_paging(client, db, product_id):
    for rating in (2, 5, 1, 4):
        add_review(db, product_id, rating)

    lowest = client.get(f"/products/{product_id}/reviews", params={"sort": "lowest"}).json()
    assert [r["rating"] for r in lowest["reviews"]] == [1, 2, 4, 5]

    page = client.get(f"/products/{product_id}/reviews", params={"sort": "lowest", "limit": 3, "page": 2}).json()
    assert [r["rating"] for r in page["reviews"]] == [5]
    assert page["pagination"]["total_pages"] == 2

    oldest = client.get(f"/products/{product_id}/reviews", params={"sort": "oldest"}).json()
    assert [r["rating"] for r in oldest["reviews"]] == [2, 5, 1, 4]


def test_list_reviews_for_missing_product(client):
    assert client.get(f"/products/{ObjectId()}/reviews").status_code == 404


def test_sync_ratings_endpoint(client, db, make_product):
    product_id = make_product(rating=1.0, review_count=9)
    add_review(db, product_id, 5)
    add_review(db, product_id, 4)

    res = client.get("/sync-ratings")

    assert res.status_code == 200
    assert res.json()["updated"] == 1
    product = db["product"].find_one({"_id": ObjectId(product_id)})
    assert product["rating"] == 4.5
    assert product["review_count"] == 2


def test_sync_ratings_failure_returns_500(client, monkeypatch):
    def broken(database):
        raise RuntimeError("database down")

    monkeypatch.setattr(reviews, "recompute_all", broken)

    assert client.get("/sync-ratings").status_code == 500


def test_sync_ratings_token_gate(client, admin_user, user, monkeypatch):
    monkeypatch.setattr(reviews, "SYNC_RATINGS_TOKEN", "s3cret")
    _, admin_headers = admin_user
    _, user_headers = user

    assert client.get("/sync-ratings").status_code == 403
    assert client.get("/sync-ratings", headers=user_headers).status_code == 403
    assert client.get("/sync-ratings", headers={"X-Sync-Token": "wrong"}).status_code == 403
    assert client.get("/sync-ratings", headers={"X-Sync-Token": "s3cret"}).status_code == 200
    assert client.get("/sync-ratings", headers=admin_headers).status_code == 200


def test_list_reviews_for_product_without_reviews(client, make_product):
    product_id = make_product(rating=3.5, review_count=2)

    res = client.get(f"/products/{product_id}/reviews")

    assert res.status_code == 200
    body = res.json()
    assert body["reviews"] == []
    assert body["summary"]["average_rating"] == 3.5
    assert body["summary"]["total_reviews"] == 0
    assert body["summary"]["rating_distribution"] == []
