import logging
from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from backoffice.core.errors import ConflictError, NotFoundError
from backoffice.core.permissions import Action, ensure_can
from backoffice.db.database import atomic
from backoffice.models.inventory import Category, Product, Purchase, PurchaseItem, PurchaseStatus, Supplier
from backoffice.models.user import User
from backoffice.models.warehouse import DistributionStatus, WarehouseDistribution
from backoffice.services import audit
from backoffice.services.mirror import MirrorResolver
from backoffice.services.stock import increment_stock

logger = logging.getLogger(__name__)

NOT_PENDING = "Distribution item is not pending acceptance"


def _append_note(existing: str | None, note: str) -> str:
    return f"{existing} | {note}" if existing else note


def _load_line(db: Session, distribution_id: int, actor: User) -> WarehouseDistribution:
    line = db.get(WarehouseDistribution, distribution_id)
    if not line:
        raise NotFoundError("Distribution item not found")
    ensure_can(actor, Action.ACCEPT_DISTRIBUTION, line.store_id)
    return line


def _claim(db: Session, line: WarehouseDistribution, actor: User, note: str) -> bool:
    """Returns True when the claimed line still owed its stock credit."""
    owes_credit = not line.stock_credited
    result = db.execute(
        update(WarehouseDistribution)
        .where(
            WarehouseDistribution.id == line.id,
            WarehouseDistribution.status == DistributionStatus.PENDING_ACCEPTANCE,
        )
        .values(
            status=DistributionStatus.ACCEPTED,
            notes=_append_note(line.notes, note),
            accepted_at=datetime.utcnow(),
            accepted_by=actor.id,
            stock_credited=True,
            updated_at=datetime.utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConflictError(NOT_PENDING)
    return owes_credit


def _settle_line(
    db: Session,
    resolver: MirrorResolver,
    line: WarehouseDistribution,
    actor: User,
    *,
    owes_credit: bool,
) -> Purchase:
    local = db.get(Product, line.product_id)
    master = db.get(Product, line.master_product_id) if line.master_product_id else None
    if master is None:
        # Master was removed after shipping; the local mirror carries the catalog data.
        master = local
    if master is None:
        raise NotFoundError("Distributed product no longer exists")

    supplier = resolver.resolve_supplier(
        line.store_id,
        db.get(Supplier, master.supplier_id) if master.supplier_id else None,
    )
    category = resolver.resolve_category(
        line.store_id,
        db.get(Category, master.category_id) if master.category_id else None,
    )

    purchase = Purchase(
        store_id=line.store_id,
        supplier_id=supplier.id if supplier else None,
        user_id=actor.id,
        source_distribution_id=line.id,
        purchase_date=line.distributed_at,
        total_amount=line.total_amount,
        status=PurchaseStatus.COMPLETED,
        note=f"Warehouse distribution #{line.id}",
    )
    db.add(purchase)

    category_id = category.id if category else None
    supplier_id = supplier.id if supplier else None
    if local is None or local.store_id != line.store_id:
        local, _ = resolver.resolve_product(line.store_id, master, category_id=category_id, supplier_id=supplier_id)
    elif master is not local:
        resolver.refresh_product(local, master, category_id=category_id, supplier_id=supplier_id)
    local.purchase_price = line.unit_price
    db.flush()

    db.add(
        PurchaseItem(
            purchase_id=purchase.id,
            product_id=local.id,
            quantity=line.quantity,
            purchase_price=line.unit_price,
            subtotal=line.total_amount,
        )
    )
    audit.record_audit(
        db,
        actor_id=actor.id,
        action=audit.PURCHASE_CREATE,
        entity="Purchase",
        entity_id=purchase.id,
        new_value={"source_distribution_id": line.id, "total_amount": line.total_amount},
        store_id=line.store_id,
    )
    if owes_credit:
        increment_stock(db, local.id, line.quantity)
    db.flush()
    return purchase


def accept_item(db: Session, distribution_id: int, actor: User) -> WarehouseDistribution:
    line = _load_line(db, distribution_id, actor)
    if line.status != DistributionStatus.PENDING_ACCEPTANCE:
        raise ConflictError(NOT_PENDING)

    with atomic(db):
        owes_credit = _claim(db, line, actor, "Accepted individually")
        purchase = _settle_line(db, MirrorResolver(db), line, actor, owes_credit=owes_credit)
        audit.record_audit(
            db,
            actor_id=actor.id,
            action=audit.WAREHOUSE_DISTRIBUTION_UPDATE,
            entity="WarehouseDistribution",
            entity_id=line.id,
            old_value={"status": DistributionStatus.PENDING_ACCEPTANCE.value},
            new_value={"status": DistributionStatus.ACCEPTED.value, "purchase_id": purchase.id},
            store_id=line.store_id,
        )

    db.refresh(line)
    logger.info("distribution.accepted id=%s store_id=%s purchase_id=%s", line.id, line.store_id, purchase.id)
    return line


def batch_rows(db: Session, reference: WarehouseDistribution, *, pending_only: bool = False) -> list[WarehouseDistribution]:
    query = select(WarehouseDistribution).where(
        WarehouseDistribution.distributed_at == reference.distributed_at,
        WarehouseDistribution.store_id == reference.store_id,
        WarehouseDistribution.warehouse_id == reference.warehouse_id,
        WarehouseDistribution.distributed_by == reference.distributed_by,
    )
    if pending_only:
        query = query.where(WarehouseDistribution.status == DistributionStatus.PENDING_ACCEPTANCE)
    return list(db.scalars(query.order_by(WarehouseDistribution.id.asc())).all())


def accept_batch(db: Session, distribution_id: int, actor: User) -> list[WarehouseDistribution]:
    reference = _load_line(db, distribution_id, actor)
    pending = batch_rows(db, reference, pending_only=True)
    if not pending:
        raise NotFoundError("No pending distributions found in this batch")

    with atomic(db):
        resolver = MirrorResolver(db)
        purchase_ids = []
        for line in pending:
            owes_credit = _claim(db, line, actor, "Accepted in batch")
            purchase_ids.append(_settle_line(db, resolver, line, actor, owes_credit=owes_credit).id)
        audit.record_audit(
            db,
            actor_id=actor.id,
            action=audit.WAREHOUSE_DISTRIBUTION_UPDATE,
            entity="WarehouseDistribution",
            entity_id=reference.id,
            new_value={
                "status": DistributionStatus.ACCEPTED.value,
                "distribution_ids": [line.id for line in pending],
                "purchase_ids": purchase_ids,
            },
            store_id=reference.store_id,
        )

    for line in pending:
        db.refresh(line)
    logger.info("distribution.batch_accepted reference_id=%s rows=%s", reference.id, len(pending))
    return pending


def count_pending(db: Session, actor: User) -> int:
    ensure_can(actor, Action.ACCEPT_DISTRIBUTION, actor.store_id)
    return db.scalar(
        select(func.count(WarehouseDistribution.id)).where(
            WarehouseDistribution.store_id == actor.store_id,
            WarehouseDistribution.status == DistributionStatus.PENDING_ACCEPTANCE,
        )
    ) or 0
