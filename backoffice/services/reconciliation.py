import logging
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice.core.errors import NotFoundError
from backoffice.core.permissions import Action, ensure_can, is_store_scoped
from backoffice.db.database import atomic
from backoffice.models.inventory import Purchase, PurchaseItem, PurchaseStatus
from backoffice.models.user import User
from backoffice.schemas.purchase import PurchaseOut
from backoffice.services import audit
from backoffice.services.stock import decrement_stock, increment_stock, quantize_money

logger = logging.getLogger(__name__)

CONSUMED = "Cannot cancel purchase because purchased stock has already been consumed"


def purchase_items(db: Session, purchase_id: int) -> list[PurchaseItem]:
    return list(
        db.scalars(
            select(PurchaseItem).where(PurchaseItem.purchase_id == purchase_id).order_by(PurchaseItem.id.asc())
        ).all()
    )


def get_purchase(db: Session, purchase_id: int, actor: User, action: Action = Action.VIEW_PURCHASES) -> Purchase:
    purchase = db.get(Purchase, purchase_id)
    if not purchase:
        raise NotFoundError("Purchase not found")
    ensure_can(actor, action, purchase.store_id)
    return purchase


def list_purchases(
    db: Session,
    actor: User,
    *,
    store_id: int | None = None,
    status: PurchaseStatus | None = None,
) -> list[Purchase]:
    ensure_can(actor, Action.VIEW_PURCHASES, store_id)
    if is_store_scoped(actor):
        store_id = actor.store_id
    query = select(Purchase).order_by(Purchase.purchase_date.desc(), Purchase.id.desc())
    if store_id is not None:
        query = query.where(Purchase.store_id == store_id)
    if status is not None:
        query = query.where(Purchase.status == status)
    return list(db.scalars(query).all())


def _remove_items_effect(db: Session, items: list[PurchaseItem]) -> None:
    for item in items:
        decrement_stock(db, item.product_id, item.quantity, reason=CONSUMED)


def _apply_items_effect(db: Session, items: list[PurchaseItem]) -> None:
    for item in items:
        increment_stock(db, item.product_id, item.quantity)


def _recompute_total(items: list[PurchaseItem]) -> Decimal:
    return quantize_money(sum((Decimal(item.subtotal) for item in items), Decimal("0")))


def set_purchase_status(
    db: Session,
    purchase_id: int,
    new_status: PurchaseStatus | None,
    actor: User,
    note: str | None = None,
) -> Purchase:
    """Apply a status transition and its stock effect in one transaction.

    COMPLETED -> CANCELLED takes each item's quantity back out of stock and is
    refused if that would drive stock negative; CANCELLED -> COMPLETED puts it
    back. Same-status updates only touch the other fields.
    """
    purchase = get_purchase(db, purchase_id, actor, Action.MANAGE_PURCHASES)
    old_status = purchase.status
    target_status = new_status or old_status

    with atomic(db):
        items = purchase_items(db, purchase.id)
        if old_status == PurchaseStatus.COMPLETED and target_status == PurchaseStatus.CANCELLED:
            _remove_items_effect(db, items)
        elif old_status == PurchaseStatus.CANCELLED and target_status == PurchaseStatus.COMPLETED:
            _apply_items_effect(db, items)

        purchase.status = target_status
        if note is not None:
            purchase.note = note.strip() or None
        purchase.total_amount = _recompute_total(items)
        audit.record_audit(
            db,
            actor_id=actor.id,
            action=audit.PURCHASE_UPDATE,
            entity="Purchase",
            entity_id=purchase.id,
            old_value={"status": old_status.value},
            new_value={"status": target_status.value, "total_amount": purchase.total_amount},
            store_id=purchase.store_id,
        )

    db.refresh(purchase)
    if old_status != target_status:
        logger.info(
            "purchase.status_changed id=%s from=%s to=%s items=%s",
            purchase.id,
            old_status.value,
            target_status.value,
            len(items),
        )
    return purchase


def delete_purchase(db: Session, purchase_id: int, actor: User) -> PurchaseOut:
    purchase = get_purchase(db, purchase_id, actor, Action.MANAGE_PURCHASES)

    with atomic(db):
        items = purchase_items(db, purchase.id)
        snapshot = PurchaseOut.build(purchase, items)
        if purchase.status == PurchaseStatus.COMPLETED:
            _remove_items_effect(db, items)
        audit.record_audit(
            db,
            actor_id=actor.id,
            action=audit.PURCHASE_DELETE,
            entity="Purchase",
            entity_id=purchase.id,
            old_value={
                "status": purchase.status.value,
                "total_amount": purchase.total_amount,
                "items": [{"product_id": item.product_id, "quantity": item.quantity} for item in items],
            },
            store_id=purchase.store_id,
        )
        for item in items:
            db.delete(item)
        db.flush()
        db.delete(purchase)

    logger.info("purchase.deleted id=%s items=%s", purchase_id, len(items))
    return snapshot
