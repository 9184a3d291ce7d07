import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from backoffice.core.errors import NotFoundError, ValidationError
from backoffice.core.permissions import Action, ensure_can
from backoffice.db.database import atomic
from backoffice.models.inventory import Category, Product, Store, Supplier
from backoffice.models.user import User
from backoffice.models.warehouse import DistributionStatus, WarehouseDistribution
from backoffice.schemas.warehouse import DistributionItemIn
from backoffice.services import audit
from backoffice.services.catalog import get_or_create_warehouse, get_target_store
from backoffice.services.mirror import MirrorResolver
from backoffice.services.stock import credits_stock_at, increment_stock, quantize_money

logger = logging.getLogger(__name__)


@dataclass
class DistributionBatch:
    warehouse: Store
    store: Store
    distributed_at: datetime
    distributed_by: int
    rows: list[WarehouseDistribution] = field(default_factory=list)

    @property
    def total_items(self) -> int:
        return sum(row.quantity for row in self.rows)

    @property
    def total_amount(self) -> Decimal:
        return sum((Decimal(row.total_amount) for row in self.rows), Decimal("0.00"))


def _merge_items(items: list[DistributionItemIn]) -> list[DistributionItemIn]:
    if not items:
        raise ValidationError("At least one item is required")
    merged: dict[int, DistributionItemIn] = {}
    for item in items:
        if item.quantity <= 0:
            raise ValidationError("Quantity must be greater than zero")
        if item.unit_price is not None and item.unit_price < 0:
            raise ValidationError("Unit price cannot be negative")
        previous = merged.get(item.master_product_id)
        if previous is None:
            merged[item.master_product_id] = item.model_copy()
            continue
        if item.unit_price is not None and previous.unit_price is not None and item.unit_price != previous.unit_price:
            raise ValidationError(f"Conflicting unit prices for master product {item.master_product_id}")
        previous.quantity += item.quantity
        if previous.unit_price is None:
            previous.unit_price = item.unit_price
    return list(merged.values())


def _take_from_warehouse(db: Session, master: Product, quantity: int) -> None:
    result = db.execute(
        update(Product)
        .where(Product.id == master.id, Product.stock >= quantity)
        .values(stock=Product.stock - quantity)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.refresh(master, ["stock"])
        raise ValidationError(
            f"Insufficient warehouse stock for {master.name}. Available: {master.stock}, requested: {quantity}"
        )


def distribute(
    db: Session,
    target_store_id: int,
    items: list[DistributionItemIn],
    actor: User,
    notes: str | None = None,
) -> DistributionBatch:
    ensure_can(actor, Action.DISTRIBUTE)
    lines = _merge_items(items)
    credit_now = credits_stock_at("distribution")

    with atomic(db):
        warehouse = get_or_create_warehouse(db)
        store = get_target_store(db, target_store_id)
        resolver = MirrorResolver(db)
        # One timestamp per call: it is part of the batch key.
        distributed_at = datetime.utcnow()
        batch = DistributionBatch(
            warehouse=warehouse,
            store=store,
            distributed_at=distributed_at,
            distributed_by=actor.id,
        )

        for line in lines:
            master = db.scalar(
                select(Product).where(Product.id == line.master_product_id, Product.store_id == warehouse.id)
            )
            if not master:
                raise NotFoundError(f"Master product {line.master_product_id} not found in warehouse")

            _take_from_warehouse(db, master, line.quantity)

            category = resolver.resolve_category(
                store.id,
                db.get(Category, master.category_id) if master.category_id else None,
            )
            supplier = resolver.resolve_supplier(
                store.id,
                db.get(Supplier, master.supplier_id) if master.supplier_id else None,
            )
            mirror, created = resolver.resolve_product(
                store.id,
                master,
                category_id=category.id if category else None,
                supplier_id=supplier.id if supplier else None,
            )
            unit_price = quantize_money(line.unit_price if line.unit_price is not None else master.purchase_price)
            if line.unit_price is not None:
                mirror.purchase_price = unit_price
            if not created:
                if category is not None and mirror.category_id is None:
                    mirror.category_id = category.id
                if supplier is not None and mirror.supplier_id is None:
                    mirror.supplier_id = supplier.id
            db.flush()
            if credit_now:
                increment_stock(db, mirror.id, line.quantity)

            row = WarehouseDistribution(
                warehouse_id=warehouse.id,
                store_id=store.id,
                product_id=mirror.id,
                master_product_id=master.id,
                quantity=line.quantity,
                unit_price=unit_price,
                total_amount=quantize_money(unit_price * line.quantity),
                status=DistributionStatus.PENDING_ACCEPTANCE,
                distributed_at=distributed_at,
                distributed_by=actor.id,
                notes=notes,
                stock_credited=credit_now,
            )
            db.add(row)
            batch.rows.append(row)

        db.flush()
        audit.record_audit(
            db,
            actor_id=actor.id,
            action=audit.WAREHOUSE_DISTRIBUTION_CREATE,
            entity="WarehouseDistribution",
            entity_id=batch.rows[0].id,
            new_value={
                "distribution_ids": [row.id for row in batch.rows],
                "total_items": batch.total_items,
                "total_amount": batch.total_amount,
            },
            store_id=store.id,
        )

    for row in batch.rows:
        db.refresh(row)
    logger.info(
        "distribution.created store_id=%s rows=%s total_items=%s by=%s",
        store.id,
        len(batch.rows),
        batch.total_items,
        actor.id,
    )
    return batch
