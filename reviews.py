import logging
import math
import os
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from pydantic import BaseModel, Field
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

from database import create_document, get_db
from products import find_product
from ratings import rating_summary, recompute_all, recompute_one
from schemas import Review
from security import get_current_user, get_optional_user, serialize_doc

logger = logging.getLogger(__name__)

router = APIRouter(tags=["reviews"])

SYNC_RATINGS_TOKEN = os.getenv("SYNC_RATINGS_TOKEN")

REVIEW_SORTS = {
    "newest": [("created_at", -1), ("_id", -1)],
    "oldest": [("created_at", 1), ("_id", 1)],
    "highest": [("rating", -1), ("created_at", -1)],
    "lowest": [("rating", 1), ("created_at", -1)],
    "helpful": [("helpful", -1), ("created_at", -1)],
}


class ReviewIn(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    title: str = Field(..., min_length=1, max_length=100)
    comment: str = Field(..., min_length=1, max_length=1000)


def has_purchased(db: Database, user_id: str, product_id: str) -> bool:
    order = db["order"].find_one({
        "user_id": user_id,
        "status": {"$ne": "cancelled"},
        "items.product.id": product_id,
    })
    return order is not None


@router.get("/products/{product_id}/reviews")
def list_reviews(
    product_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort: str = "newest",
    db: Database = Depends(get_db),
):
    product = find_product(db, product_id)
    try:
        total = db["review"].count_documents({"product_id": product_id})
        cursor = (
            db["review"].find({"product_id": product_id})
            .sort(REVIEW_SORTS.get(sort, REVIEW_SORTS["newest"]))
            .skip((page - 1) * limit)
            .limit(limit)
        )
        reviews = [serialize_doc(r) for r in cursor]
        summary = rating_summary(db, product_id, product)
    except PyMongoError:
        logger.exception("Reviews fetch failed for product %s", product_id)
        raise HTTPException(status_code=500, detail="Failed to fetch reviews")

    return {
        "reviews": reviews,
        "pagination": {
            "page": page,
            "limit": limit,
            "total_reviews": total,
            "total_pages": math.ceil(total / limit),
        },
        "summary": summary,
    }


@router.post("/products/{product_id}/reviews", status_code=201)
def create_review(
    product_id: str,
    payload: ReviewIn,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    find_product(db, product_id)

    user_id = current_user["id"]
    if db["review"].find_one({"product_id": product_id, "user_id": user_id}):
        raise HTTPException(status_code=400, detail="You have already reviewed this product")

    email = current_user["email"]
    review = Review(
        product_id=product_id,
        user_id=user_id,
        user_name=current_user.get("name") or email.split("@")[0],
        user_email=email,
        rating=payload.rating,
        title=payload.title,
        comment=payload.comment,
        verified_purchase=has_purchased(db, user_id, product_id),
    )
    try:
        review_id = create_document(db, "review", review)
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="You have already reviewed this product")
    logger.info("Review %s created for product %s by user %s", review_id, product_id, user_id)

    try:
        updated = recompute_one(db, product_id)
    except Exception:
        # the review is stored; stale rating fields are repaired by /sync-ratings
        logger.exception("Rating recompute failed for product %s", product_id)
        updated = None

    created = db["review"].find_one({"product_id": product_id, "user_id": user_id})
    return {
        "message": "Review submitted successfully",
        "review": serialize_doc(created),
        "updated_product": updated,
    }


@router.get("/sync-ratings")
def sync_ratings(
    x_sync_token: Optional[str] = Header(default=None),
    current_user: Optional[dict] = Depends(get_optional_user),
    db: Database = Depends(get_db),
):
    if SYNC_RATINGS_TOKEN:
        is_admin = current_user is not None and current_user.get("role") == "admin"
        if x_sync_token != SYNC_RATINGS_TOKEN and not is_admin:
            raise HTTPException(status_code=403, detail="Sync token required")
    try:
        updated = recompute_all(db)
    except Exception:
        logger.exception("Ratings sync failed")
        raise HTTPException(status_code=500, detail="Sync failed")
    return {"message": "Ratings sync completed", "updated": updated}
