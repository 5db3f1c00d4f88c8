import math
import re
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pymongo.database import Database

from database import get_db
from security import serialize_doc, to_object_id

router = APIRouter(tags=["products"])

PRODUCT_SORTS = {
    "newest": [("created_at", -1), ("_id", -1)],
    "price_asc": [("price", 1)],
    "price_desc": [("price", -1)],
    "rating": [("rating", -1), ("review_count", -1)],
}


def product_out(doc: Dict[str, Any]) -> Dict[str, Any]:
    product = serialize_doc(doc)
    product.setdefault("images", [])
    product.setdefault("tags", [])
    product.setdefault("rating", 0)
    product.setdefault("review_count", 0)
    product["in_stock"] = int(product.get("inventory") or 0) > 0
    return product


def find_product(db: Database, product_id: str) -> Dict[str, Any]:
    product = db["product"].find_one({"_id": to_object_id(product_id, "product id")})
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


def search_filter(search: str) -> Dict[str, Any]:
    pattern = re.escape(search)
    return {"$or": [
        {"name": {"$regex": pattern, "$options": "i"}},
        {"description": {"$regex": pattern, "$options": "i"}},
        {"tags": {"$regex": pattern, "$options": "i"}},
    ]}


def paginate(total: int, page: int, limit: int) -> Dict[str, Any]:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": math.ceil(total / limit) if limit else 0,
    }


@router.get("/products")
def list_products(
    category: Optional[str] = None,
    search: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    in_stock: Optional[bool] = None,
    featured: Optional[bool] = None,
    sort: str = "newest",
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=100),
    db: Database = Depends(get_db),
):
    query: Dict[str, Any] = {"status": "active"}
    if category:
        query["category"] = {"$in": [c.strip() for c in category.split(",") if c.strip()]}
    if search:
        query.update(search_filter(search))
    price_filter: Dict[str, Any] = {}
    if min_price is not None:
        price_filter["$gte"] = float(min_price)
    if max_price is not None:
        price_filter["$lte"] = float(max_price)
    if price_filter:
        query["price"] = price_filter
    # in_stock only narrows; false means no stock filter
    if in_stock:
        query["inventory"] = {"$gt": 0}
    if featured is not None:
        query["featured"] = featured

    total = db["product"].count_documents(query)
    cursor = (
        db["product"].find(query)
        .sort(PRODUCT_SORTS.get(sort, PRODUCT_SORTS["newest"]))
        .skip((page - 1) * limit)
        .limit(limit)
    )
    return {
        "products": [product_out(d) for d in cursor],
        "pagination": paginate(total, page, limit),
        "filters": {"category": category, "search": search, "max_price": max_price, "in_stock": in_stock or None},
    }


@router.get("/products/{product_id}")
def get_product(product_id: str, db: Database = Depends(get_db)):
    return {"product": product_out(find_product(db, product_id))}


@router.get("/categories")
def list_categories(db: Database = Depends(get_db)):
    groups = db["product"].aggregate([
        {"$match": {"status": "active"}},
        {"$group": {"_id": "$category", "count": {"$sum": 1}, "images": {"$first": "$images"}}},
        {"$sort": {"count": -1}},
    ])
    categories: List[Dict[str, Any]] = []
    for g in groups:
        images = g.get("images") or []
        categories.append({"name": g["_id"], "count": g["count"], "image": images[0] if images else None})
    return {"categories": categories}
