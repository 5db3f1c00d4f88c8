"""
Product rating synchronization

``product.rating`` and ``product.review_count`` are a denormalized copy of the
product's reviews. They are rewritten from the full review set right after a
review is created, and ``recompute_all`` repairs drift across the whole catalog.

The read of the reviews and the write to the product are separate round trips
without a transaction: two concurrent submissions for the same product can
both read before either writes, and the last write wins. Running
``recompute_all`` brings the fields back in line.
"""

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo.database import Database

logger = logging.getLogger(__name__)


def _one_decimal(value: Decimal) -> float:
    return float(value.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def average_rating(ratings: List[int]) -> float:
    """Mean of the ratings rounded half-up to one decimal (4.25 -> 4.3)."""
    return _one_decimal(Decimal(sum(ratings)) / Decimal(len(ratings)))


def recompute_one(db: Database, product_id: str) -> Optional[Dict[str, Any]]:
    """
    Rewrite a product's rating fields from its reviews.

    Returns the written ``{"rating", "review_count"}``, or None when the product
    has no reviews, in which case the product is left untouched.
    """
    reviews = list(db["review"].find({"product_id": product_id}, {"rating": 1}))
    if not reviews:
        return None

    fields = {
        "rating": average_rating([int(r["rating"]) for r in reviews]),
        "review_count": len(reviews),
    }
    db["product"].update_one({"_id": ObjectId(product_id)}, {"$set": fields})
    return fields


def recompute_all(db: Database) -> int:
    """Run recompute_one over every product, one at a time. Returns how many were written."""
    updated = 0
    for product in db["product"].find({}, {"name": 1}):
        fields = recompute_one(db, str(product["_id"]))
        if fields is None:
            continue
        updated += 1
        logger.info(
            "Updated product %s: %s stars, %s reviews",
            product.get("name"), fields["rating"], fields["review_count"],
        )
    logger.info("Product ratings sync completed, %s products updated", updated)
    return updated


def rating_summary(db: Database, product_id: str, product: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    stats = list(db["review"].aggregate([
        {"$match": {"product_id": product_id}},
        {"$group": {"_id": None, "average": {"$avg": "$rating"}, "count": {"$sum": 1}}},
    ]))
    distribution = db["review"].aggregate([
        {"$match": {"product_id": product_id}},
        {"$group": {"_id": "$rating", "count": {"$sum": 1}}},
        {"$sort": {"_id": -1}},
    ])

    product = product or {}
    if stats and stats[0].get("average") is not None:
        average = _one_decimal(Decimal(str(stats[0]["average"])))
        total = stats[0]["count"]
    else:
        average = product.get("rating", 0)
        total = 0

    return {
        "average_rating": average,
        "total_reviews": total,
        "rating_distribution": [{"rating": d["_id"], "count": d["count"]} for d in distribution],
        "product_rating": product.get("rating", 0),
        "product_review_count": product.get("review_count", 0),
    }
