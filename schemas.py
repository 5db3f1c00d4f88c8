"""
Database Schemas

MongoDB collection schemas as Pydantic models.
Each Pydantic model represents a collection in your database.
Model name lowercased is the collection name.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field

Category = Literal["electronics", "clothing", "books", "home", "beauty", "sports", "other"]
ProductStatus = Literal["active", "inactive", "draft"]
OrderStatus = Literal["pending", "processing", "shipped", "delivered", "cancelled"]
Role = Literal["user", "admin"]


class Product(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., max_length=2000)
    price: float = Field(..., ge=0)
    compare_price: Optional[float] = Field(None, ge=0)
    images: List[str] = Field(default_factory=list, description="Ordered image URLs")
    category: Category
    tags: List[str] = Field(default_factory=list)
    inventory: int = Field(0, ge=0)
    rating: float = Field(0, ge=0, le=5, description="Average review rating, derived")
    review_count: int = Field(0, ge=0, description="Number of reviews, derived")
    featured: bool = False
    status: ProductStatus = "active"


class Review(BaseModel):
    product_id: str
    user_id: str
    user_name: str
    user_email: EmailStr
    rating: int = Field(..., ge=1, le=5)
    title: str = Field(..., min_length=1, max_length=100)
    comment: str = Field(..., min_length=1, max_length=1000)
    verified_purchase: bool = False
    helpful: int = Field(0, ge=0)
    not_helpful: int = Field(0, ge=0)


class ProductSnapshot(BaseModel):
    """Copy of the product fields at the moment it went into a cart or order."""
    id: str
    name: str
    price: float
    images: List[str] = Field(default_factory=list)
    inventory: int = 0
    category: Optional[str] = None


class CartLine(BaseModel):
    product: ProductSnapshot
    quantity: int = Field(1, ge=1)


class Cart(BaseModel):
    items: List[CartLine] = Field(default_factory=list)
    total: float = 0
    item_count: int = 0


class User(BaseModel):
    name: Optional[str] = Field(None, description="Full name")
    email: EmailStr = Field(..., description="Email address")
    password_hash: str = Field(..., description="BCrypt hashed password")
    role: Role = "user"
    cart: Cart = Field(default_factory=Cart)
    wishlist: List[str] = Field(default_factory=list, description="Product ids")
    reset_token: Optional[str] = None
    reset_token_expiry: Optional[datetime] = None


class ShippingInfo(BaseModel):
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    email: EmailStr
    address: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = ""
    zip_code: str = Field(..., min_length=1)
    country: str = Field(..., min_length=1)


class OrderItem(BaseModel):
    product: ProductSnapshot
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0, description="Unit price at checkout")


class OrderNote(BaseModel):
    note: str
    author: Optional[str] = None
    created_at: datetime


class Order(BaseModel):
    user_id: str
    order_number: str
    items: List[OrderItem]
    shipping_info: ShippingInfo
    total: float = Field(..., ge=0)
    status: OrderStatus = "pending"
    notes: List[OrderNote] = Field(default_factory=list)
