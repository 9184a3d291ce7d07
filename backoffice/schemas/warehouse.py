from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from backoffice.models.warehouse import DistributionStatus


class CamelRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MasterCategoryCreate(CamelRequest):
    name: str = Field(min_length=1, max_length=120)
    description: str | None = None
    icon: str | None = Field(default=None, max_length=64)


class MasterSupplierCreate(CamelRequest):
    code: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=160)
    contact_person: str | None = Field(default=None, max_length=120)
    address: str | None = Field(default=None, max_length=255)
    phone: str | None = Field(default=None, max_length=32)
    email: str | None = Field(default=None, max_length=320)


class MasterProductCreate(CamelRequest):
    product_code: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=160)
    category_id: int
    supplier_id: int
    purchase_price: Decimal = Field(gt=0)
    retail_price: Decimal | None = Field(default=None, ge=0)
    silver_price: Decimal | None = Field(default=None, ge=0)
    gold_price: Decimal | None = Field(default=None, ge=0)
    platinum_price: Decimal | None = Field(default=None, ge=0)
    stock: int = Field(default=0, ge=0)
    description: str | None = None


class DistributionItemIn(CamelRequest):
    master_product_id: int
    quantity: int
    unit_price: Decimal | None = None


class DistributeRequest(CamelRequest):
    target_store_id: int
    items: list[DistributionItemIn]
    notes: str | None = Field(default=None, max_length=500)


class CategoryOut(BaseModel):
    id: int
    store_id: int
    name: str
    description: str | None
    icon: str | None

    model_config = {"from_attributes": True}


class SupplierOut(BaseModel):
    id: int
    store_id: int
    code: str
    name: str
    contact_person: str | None
    address: str | None
    phone: str | None
    email: str | None

    model_config = {"from_attributes": True}


class ProductOut(BaseModel):
    id: int
    store_id: int
    product_code: str
    name: str
    category_id: int | None
    supplier_id: int | None
    stock: int
    purchase_price: Decimal
    retail_price: Decimal | None
    silver_price: Decimal | None
    gold_price: Decimal | None
    platinum_price: Decimal | None
    description: str | None

    model_config = {"from_attributes": True}


class DistributionOut(BaseModel):
    id: int
    warehouse_id: int
    store_id: int
    product_id: int
    master_product_id: int | None
    quantity: int
    unit_price: Decimal
    total_amount: Decimal
    status: DistributionStatus
    distributed_at: datetime
    distributed_by: int
    notes: str | None
    stock_credited: bool
    accepted_at: datetime | None
    accepted_by: int | None

    model_config = {"from_attributes": True}


class DistributionBatchOut(BaseModel):
    warehouse_id: int
    store_id: int
    distributed_at: datetime
    distributed_by: int
    total_items: int
    total_amount: Decimal
    distributions: list[DistributionOut]


class BatchLineOut(DistributionOut):
    product_name: str
    product_code: str


class BatchOut(BaseModel):
    id: int
    invoice_number: str
    distributed_at: datetime
    warehouse_id: int
    warehouse_name: str
    store_id: int
    store_name: str
    store_code: str
    distributed_by: int
    distributed_by_username: str | None
    status: DistributionStatus
    status_counts: dict[str, int]
    notes: str | None
    total_items: int
    total_amount: Decimal
    items: list[BatchLineOut]


class PaginationOut(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_more: bool


class BatchPageOut(BaseModel):
    distributions: list[BatchOut]
    pagination: PaginationOut


class PendingCountOut(BaseModel):
    pending_distributions: int
