from backoffice.models.audit import AuditLog
from backoffice.models.inventory import (
    Category,
    Product,
    Purchase,
    PurchaseItem,
    PurchaseStatus,
    Store,
    StoreKind,
    StoreStatus,
    Supplier,
)
from backoffice.models.user import User, UserRole
from backoffice.models.warehouse import DistributionStatus, WarehouseDistribution

__all__ = [
    "AuditLog",
    "Category",
    "DistributionStatus",
    "Product",
    "Purchase",
    "PurchaseItem",
    "PurchaseStatus",
    "Store",
    "StoreKind",
    "StoreStatus",
    "Supplier",
    "User",
    "UserRole",
    "WarehouseDistribution",
]
