"""Catalog tables: staff users, categories, products and their variants."""
from datetime import datetime
from typing import Optional

from sqlmodel import Field

from posync.models.base import TrackedRecord


class User(TrackedRecord, table=True):
    __tablename__ = "users"

    username: str = Field(unique=True, index=True)
    pin_hash: str
    role: str = Field(index=True)  # "admin", "manager", "cashier"
    is_active: bool = True
    last_login_at: Optional[datetime] = None


class Category(TrackedRecord, table=True):
    __tablename__ = "categories"

    name: str = Field(index=True)
    description: Optional[str] = None
    parent_id: Optional[str] = Field(default=None, index=True)
    keywords: Optional[str] = None  # JSON array of search terms
    is_active: bool = True


class Product(TrackedRecord, table=True):
    __tablename__ = "products"

    name: str = Field(index=True)
    description: Optional[str] = None
    base_price: float
    category_id: Optional[str] = Field(default=None, foreign_key="categories.id", index=True)
    keywords: Optional[str] = None
    metadata_json: Optional[str] = None  # custom attributes
    is_active: bool = True


class ProductVariant(TrackedRecord, table=True):
    __tablename__ = "product_variants"

    product_id: Optional[str] = Field(default=None, foreign_key="products.id", index=True)
    name: str
    price: float
    stock_quantity: int = 0
    attributes: Optional[str] = None  # JSON object
    keywords: Optional[str] = None
