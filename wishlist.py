from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from bson import ObjectId
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from pymongo.database import Database

from database import get_db, get_documents
from products import find_product, product_out
from security import get_current_user, get_optional_user

router = APIRouter(tags=["wishlist"])


class WishlistItem(BaseModel):
    product_id: str


def wishlist_products(db: Database, product_ids: List[str]) -> List[Dict[str, Any]]:
    ids = [ObjectId(p) for p in product_ids if ObjectId.is_valid(p)]
    if not ids:
        return []
    return [product_out(p) for p in get_documents(db, "product", {"_id": {"$in": ids}})]


@router.get("/wishlist")
def get_wishlist(current_user: Optional[dict] = Depends(get_optional_user), db: Database = Depends(get_db)):
    if current_user is None:
        return {"wishlist": []}
    return {"wishlist": wishlist_products(db, current_user.get("wishlist") or [])}


@router.post("/wishlist")
def add_to_wishlist(item: WishlistItem, current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    find_product(db, item.product_id)
    db["user"].update_one(
        {"_id": ObjectId(current_user["id"])},
        {"$addToSet": {"wishlist": item.product_id}, "$set": {"updated_at": datetime.now(timezone.utc)}},
    )
    user = db["user"].find_one({"_id": ObjectId(current_user["id"])})
    return {"message": "Added to wishlist", "wishlist": wishlist_products(db, user.get("wishlist") or [])}


@router.delete("/wishlist/{product_id}")
def remove_from_wishlist(product_id: str, current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    db["user"].update_one(
        {"_id": ObjectId(current_user["id"])},
        {"$pull": {"wishlist": product_id}, "$set": {"updated_at": datetime.now(timezone.utc)}},
    )
    user = db["user"].find_one({"_id": ObjectId(current_user["id"])})
    return {"message": "Removed from wishlist", "wishlist": wishlist_products(db, user.get("wishlist") or [])}
