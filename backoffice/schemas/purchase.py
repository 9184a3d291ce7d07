from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from backoffice.models.inventory import Purchase, PurchaseItem, PurchaseStatus


class PurchaseUpdate(BaseModel):
    status: PurchaseStatus | None = None
    note: str | None = Field(default=None, max_length=255)


class PurchaseItemOut(BaseModel):
    id: int
    product_id: int
    quantity: int
    purchase_price: Decimal
    subtotal: Decimal

    model_config = {"from_attributes": True}


class PurchaseOut(BaseModel):
    id: int
    store_id: int
    supplier_id: int | None
    user_id: int | None
    source_distribution_id: int | None
    purchase_date: datetime
    total_amount: Decimal
    status: PurchaseStatus
    note: str | None
    items: list[PurchaseItemOut] = []

    model_config = {"from_attributes": True}

    @classmethod
    def build(cls, purchase: Purchase, items: list[PurchaseItem]) -> "PurchaseOut":
        return cls(
            id=purchase.id,
            store_id=purchase.store_id,
            supplier_id=purchase.supplier_id,
            user_id=purchase.user_id,
            source_distribution_id=purchase.source_distribution_id,
            purchase_date=purchase.purchase_date,
            total_amount=purchase.total_amount,
            status=purchase.status,
            note=purchase.note,
            items=[PurchaseItemOut.model_validate(item) for item in items],
        )
