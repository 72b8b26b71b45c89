"""Sales tables: transactions and their line items."""
from typing import Optional

from sqlmodel import Field

from posync.models.base import TrackedRecord


class Transaction(TrackedRecord, table=True):
    __tablename__ = "transactions"

    user_id: Optional[str] = Field(default=None, foreign_key="users.id", index=True)
    subtotal: float
    tax: float = 0.0
    discount: float = 0.0
    total: float
    payment_method: str  # "cash", "upi"
    payment_reference: Optional[str] = None
    status: str = Field(default="completed", index=True)  # "completed", "pending", "cancelled"
    sync_status: str = Field(default="pending", index=True)  # "synced", "pending", "failed"


class TransactionItem(TrackedRecord, table=True):
    __tablename__ = "transaction_items"

    transaction_id: Optional[str] = Field(default=None, foreign_key="transactions.id", index=True)
    product_id: Optional[str] = Field(default=None, foreign_key="products.id", index=True)
    variant_id: Optional[str] = Field(default=None, foreign_key="product_variants.id")
    quantity: int
    unit_price: float
    total_price: float

    # Custom (ad hoc) variants sold without a catalog row
    is_custom_variant: bool = False
    custom_variant_data: Optional[str] = None  # JSON object
