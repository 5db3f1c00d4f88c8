import logging
import secrets
import string
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from cart import CartItem, snapshot
from database import create_document, get_db
from schemas import Cart, Order, OrderItem, ShippingInfo
from security import get_current_user, serialize_doc, to_object_id

logger = logging.getLogger(__name__)

router = APIRouter(tags=["orders"])

ORDER_NUMBER_ATTEMPTS = 3
_SUFFIX_ALPHABET = string.digits + string.ascii_lowercase


class CheckoutInput(BaseModel):
    items: List[CartItem] = Field(..., min_length=1)
    shipping_info: ShippingInfo


def generate_order_number(now: Optional[float] = None) -> str:
    """ORD-<epoch millis>-<9 random base36 chars>."""
    millis = int((time.time() if now is None else now) * 1000)
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(9))
    return f"ORD-{millis}-{suffix}"


def order_out(doc: Dict[str, Any]) -> Dict[str, Any]:
    return serialize_doc(doc)


def insert_order(db: Database, order: Dict[str, Any]) -> str:
    """Insert with a fresh order number, drawing a new one if the unique index rejects it."""
    for attempt in range(1, ORDER_NUMBER_ATTEMPTS + 1):
        order["order_number"] = generate_order_number()
        try:
            return create_document(db, "order", Order(**order))
        except DuplicateKeyError:
            logger.warning("Order number collision on attempt %s", attempt)
    raise HTTPException(status_code=500, detail="Failed to create order")


@router.post("/orders", status_code=201)
def create_order(payload: CheckoutInput, current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    items: List[OrderItem] = []
    for item in payload.items:
        product = db["product"].find_one({"_id": to_object_id(item.product_id, "product id")})
        if not product:
            raise HTTPException(status_code=404, detail=f"Product not found: {item.product_id}")
        snap = snapshot(product)
        items.append(OrderItem(product=snap, quantity=item.quantity, price=snap.price))

    total = round(sum(i.price * i.quantity for i in items), 2)
    order_id = insert_order(db, {
        "user_id": current_user["id"],
        "items": items,
        "shipping_info": payload.shipping_info,
        "total": total,
        "status": "pending",
    })
    db["user"].update_one(
        {"_id": ObjectId(current_user["id"])},
        {"$set": {"cart": Cart().model_dump(), "updated_at": datetime.now(timezone.utc)}},
    )
    order = db["order"].find_one({"_id": ObjectId(order_id)})
    logger.info("Order %s placed by user %s, total %.2f", order["order_number"], current_user["id"], total)
    return {"message": "Order created successfully", "order": order_out(order)}


@router.get("/orders")
def list_orders(current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    orders = db["order"].find({"user_id": current_user["id"]}).sort([("created_at", -1), ("_id", -1)])
    return {"orders": [order_out(o) for o in orders]}


@router.get("/orders/{order_id}")
def get_order(order_id: str, current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    order = db["order"].find_one({"_id": to_object_id(order_id, "order id"), "user_id": current_user["id"]})
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return {"order": order_out(order)}
