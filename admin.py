import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from pymongo.database import Database
from pymongo.errors import PyMongoError

from database import create_document, get_db
from orders import order_out
from products import find_product, product_out, search_filter
from schemas import Category, OrderStatus, Product, ProductStatus, Role
from security import public_user, require_admin, to_object_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])

# Statuses an order may move to from its current one
ORDER_TRANSITIONS = {
    "pending": {"processing", "cancelled"},
    "processing": {"shipped", "cancelled"},
    "shipped": {"delivered"},
    "delivered": set(),
    "cancelled": set(),
}


class ProductIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=2000)
    price: float = Field(..., ge=0)
    compare_price: Optional[float] = Field(None, ge=0)
    images: List[str] = Field(..., min_length=1)
    category: Category
    tags: List[str] = Field(default_factory=list)
    inventory: int = Field(0, ge=0)
    featured: bool = False
    status: ProductStatus = "draft"


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, min_length=1, max_length=2000)
    price: Optional[float] = Field(None, ge=0)
    compare_price: Optional[float] = Field(None, ge=0)
    images: Optional[List[str]] = None
    category: Optional[Category] = None
    tags: Optional[List[str]] = None
    inventory: Optional[int] = Field(None, ge=0)
    featured: Optional[bool] = None
    status: Optional[ProductStatus] = None


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class OrderNoteIn(BaseModel):
    note: str = Field(..., min_length=1, max_length=1000)


class RoleUpdate(BaseModel):
    role: Role


def _find_order(db: Database, order_id: str) -> Dict[str, Any]:
    order = db["order"].find_one({"_id": to_object_id(order_id, "order id")})
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


def _find_user(db: Database, user_id: str) -> Dict[str, Any]:
    user = db["user"].find_one({"_id": to_object_id(user_id, "user id")})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


# Dashboard

@router.get("/dashboard")
def dashboard(admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    try:
        sales = list(db["order"].aggregate([
            {"$match": {"status": {"$ne": "cancelled"}}},
            {"$group": {"_id": None, "total_sales": {"$sum": "$total"}}},
        ]))
        recent = db["order"].find().sort([("created_at", -1), ("_id", -1)]).limit(5)
        popular = db["product"].find().sort([("review_count", -1), ("rating", -1)]).limit(5)
        return {
            "total_sales": round(sales[0]["total_sales"], 2) if sales else 0,
            "total_orders": db["order"].count_documents({}),
            "total_products": db["product"].count_documents({}),
            "total_users": db["user"].count_documents({}),
            "recent_orders": [
                {k: v for k, v in order_out(o).items() if k in ("id", "order_number", "total", "status", "created_at", "shipping_info")}
                for o in recent
            ],
            "popular_products": [
                {
                    "id": p["id"],
                    "name": p.get("name"),
                    "price": p.get("price"),
                    "image": p["images"][0] if p["images"] else None,
                    "rating": p["rating"],
                    "review_count": p["review_count"],
                }
                for p in map(product_out, popular)
            ],
        }
    except PyMongoError:
        logger.exception("Dashboard data fetch failed")
        raise HTTPException(status_code=500, detail="Failed to fetch dashboard data")


# Products

@router.get("/products")
def list_products(
    search: Optional[str] = None,
    category: Optional[str] = None,
    status: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    admin: dict = Depends(require_admin),
    db: Database = Depends(get_db),
):
    query: Dict[str, Any] = {}
    if search:
        query.update(search_filter(search))
    if category:
        query["category"] = category
    if status:
        query["status"] = status

    total = db["product"].count_documents(query)
    total_pages = math.ceil(total / limit)
    cursor = db["product"].find(query).sort([("created_at", -1), ("_id", -1)]).skip((page - 1) * limit).limit(limit)
    return {
        "products": [product_out(p) for p in cursor],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


@router.post("/products", status_code=201)
def create_product(data: ProductIn, admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    product = Product(**data.model_dump())
    product_id = create_document(db, "product", product)
    logger.info("Product %s created by %s", product_id, admin["id"])
    return {"message": "Product created successfully", "product": product_out(find_product(db, product_id))}


@router.get("/products/{product_id}")
def get_product(product_id: str, admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    return {"product": product_out(find_product(db, product_id))}


@router.put("/products/{product_id}")
def update_product(product_id: str, data: ProductUpdate, admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    oid = to_object_id(product_id, "product id")
    update_dict = data.model_dump(exclude_unset=True)
    if not update_dict:
        raise HTTPException(status_code=400, detail="No fields to update")
    # compare_price is the only optional product field
    nulled = sorted(k for k, v in update_dict.items() if v is None and k != "compare_price")
    if nulled:
        raise HTTPException(status_code=400, detail=f"Fields cannot be null: {', '.join(nulled)}")
    if "images" in update_dict and not update_dict["images"]:
        raise HTTPException(status_code=400, detail="At least one product image is required")
    update_dict["updated_at"] = datetime.now(timezone.utc)
    res = db["product"].update_one({"_id": oid}, {"$set": update_dict})
    if res.matched_count == 0:
        raise HTTPException(status_code=404, detail="Product not found")
    return {"message": "Product updated successfully", "product": product_out(db["product"].find_one({"_id": oid}))}


@router.delete("/products/{product_id}")
def delete_product(product_id: str, admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    res = db["product"].delete_one({"_id": to_object_id(product_id, "product id")})
    if res.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Product not found")
    logger.info("Product %s deleted by %s", product_id, admin["id"])
    return {"message": "Product deleted successfully"}


# Orders

@router.get("/orders")
def list_orders(status: Optional[OrderStatus] = None, admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    query = {"status": status} if status else {}
    orders = db["order"].find(query).sort([("created_at", -1), ("_id", -1)])
    return {"orders": [order_out(o) for o in orders]}


@router.get("/orders/{order_id}")
def get_order(order_id: str, admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    return {"order": order_out(_find_order(db, order_id))}


@router.patch("/orders/{order_id}")
def update_order_status(order_id: str, payload: OrderStatusUpdate, admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    order = _find_order(db, order_id)
    current = order.get("status", "pending")
    if payload.status != current and payload.status not in ORDER_TRANSITIONS.get(current, set()):
        raise HTTPException(status_code=400, detail=f"Cannot change order status from {current} to {payload.status}")
    db["order"].update_one(
        {"_id": order["_id"]},
        {"$set": {"status": payload.status, "updated_at": datetime.now(timezone.utc)}},
    )
    logger.info("Order %s status %s -> %s by %s", order.get("order_number"), current, payload.status, admin["id"])
    return {"message": "Order updated successfully", "order": order_out(db["order"].find_one({"_id": order["_id"]}))}


@router.post("/orders/{order_id}/notes")
def add_order_note(order_id: str, payload: OrderNoteIn, admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    order = _find_order(db, order_id)
    now = datetime.now(timezone.utc)
    note = {"note": payload.note, "author": admin.get("name") or admin["email"], "created_at": now}
    db["order"].update_one({"_id": order["_id"]}, {"$push": {"notes": note}, "$set": {"updated_at": now}})
    return {"order": order_out(db["order"].find_one({"_id": order["_id"]}))}


# Users

@router.get("/users")
def list_users(admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    users = []
    for doc in db["user"].find().sort([("created_at", -1), ("_id", -1)]):
        user = public_user(doc)
        users.append({
            "id": user["id"],
            "name": user.get("name"),
            "email": user["email"],
            "role": user.get("role", "user"),
            "created_at": user.get("created_at"),
            "orders_count": db["order"].count_documents({"user_id": user["id"]}),
        })
    return {"users": users}


@router.get("/users/{user_id}")
def get_user(user_id: str, admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    user = public_user(_find_user(db, user_id))
    user["orders_count"] = db["order"].count_documents({"user_id": user["id"]})
    return {"user": user}


@router.patch("/users/{user_id}")
def update_user_role(user_id: str, payload: RoleUpdate, admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    user = _find_user(db, user_id)
    if str(user["_id"]) == admin["id"] and payload.role != "admin":
        raise HTTPException(status_code=400, detail="You cannot remove your own admin role")
    db["user"].update_one({"_id": user["_id"]}, {"$set": {"role": payload.role, "updated_at": datetime.now(timezone.utc)}})
    logger.info("User %s role set to %s by %s", user_id, payload.role, admin["id"])
    return {"message": "User role updated successfully", "user": public_user(db["user"].find_one({"_id": user["_id"]}))}


@router.delete("/users/{user_id}")
def delete_user(user_id: str, admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    user = _find_user(db, user_id)
    if str(user["_id"]) == admin["id"]:
        raise HTTPException(status_code=400, detail="You cannot delete your own account")
    db["user"].delete_one({"_id": user["_id"]})
    logger.info("User %s deleted by %s", user_id, admin["id"])
    return {"message": "User deleted successfully"}


@router.get("/users/{user_id}/orders")
def get_user_orders(user_id: str, admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    user = _find_user(db, user_id)
    orders = db["order"].find({"user_id": str(user["_id"])}).sort([("created_at", -1), ("_id", -1)])
    return {"orders": [order_out(o) for o in orders]}
