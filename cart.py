from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from pymongo.database import Database

from database import get_db
from products import find_product
from schemas import Cart, CartLine, ProductSnapshot
from security import get_current_user, get_optional_user

router = APIRouter(tags=["cart"])


class CartItem(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)


class CartSync(BaseModel):
    items: List[CartItem] = Field(default_factory=list)


class UpdateCartItem(BaseModel):
    product_id: str
    quantity: Optional[int] = None
    remove: Optional[bool] = False


def snapshot(product: Dict[str, Any]) -> ProductSnapshot:
    return ProductSnapshot(
        id=str(product["_id"]),
        name=product.get("name", ""),
        price=float(product.get("price", 0)),
        images=product.get("images") or [],
        inventory=int(product.get("inventory") or 0),
        category=product.get("category"),
    )


def build_cart(lines: List[CartLine]) -> Cart:
    total = sum(line.product.price * line.quantity for line in lines)
    return Cart(items=lines, total=round(total, 2), item_count=sum(line.quantity for line in lines))


def load_cart(user: Dict[str, Any]) -> Cart:
    return Cart(**(user.get("cart") or {}))


def save_cart(db: Database, user_id: str, cart: Cart) -> Dict[str, Any]:
    data = cart.model_dump()
    db["user"].update_one(
        {"_id": ObjectId(user_id)},
        {"$set": {"cart": data, "updated_at": datetime.now(timezone.utc)}},
    )
    return data


@router.get("/cart")
def get_cart(current_user: Optional[dict] = Depends(get_optional_user)):
    if current_user is None:
        return {"cart": Cart().model_dump()}
    return {"cart": load_cart(current_user).model_dump()}


@router.put("/cart")
def sync_cart(payload: CartSync, current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    """Replace the stored cart, re-reading prices from the catalog."""
    ids = [ObjectId(i.product_id) for i in payload.items if ObjectId.is_valid(i.product_id)]
    products = {str(p["_id"]): p for p in db["product"].find({"_id": {"$in": ids}})}

    merged: Dict[str, int] = {}
    for item in payload.items:
        if item.product_id in products:
            merged[item.product_id] = merged.get(item.product_id, 0) + item.quantity
    lines = [CartLine(product=snapshot(products[pid]), quantity=qty) for pid, qty in merged.items()]
    cart = save_cart(db, current_user["id"], build_cart(lines))
    return {"message": "Cart updated successfully", "cart": cart}


@router.post("/cart")
def add_to_cart(item: CartItem, current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    product = find_product(db, item.product_id)
    lines = load_cart(current_user).items
    # merge if already in cart
    for line in lines:
        if line.product.id == item.product_id:
            line.quantity += item.quantity
            line.product = snapshot(product)
            break
    else:
        lines.append(CartLine(product=snapshot(product), quantity=item.quantity))
    return {"cart": save_cart(db, current_user["id"], build_cart(lines))}


@router.patch("/cart")
def update_cart(item: UpdateCartItem, current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    lines = load_cart(current_user).items
    if not any(line.product.id == item.product_id for line in lines):
        raise HTTPException(status_code=404, detail="Item not in cart")
    new_lines = []
    for line in lines:
        if line.product.id == item.product_id:
            if item.remove or (item.quantity is not None and item.quantity <= 0):
                continue
            if item.quantity is not None:
                line.quantity = int(item.quantity)
        new_lines.append(line)
    return {"cart": save_cart(db, current_user["id"], build_cart(new_lines))}


@router.delete("/cart")
def clear_cart(current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return {"cart": save_cart(db, current_user["id"], Cart())}
