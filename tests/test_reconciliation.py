from decimal import Decimal

import pytest
from sqlalchemy import select, update

from backoffice.core.errors import ConflictError, ForbiddenError, NotFoundError
from backoffice.models.audit import AuditLog
from backoffice.models.inventory import Product, Purchase, PurchaseItem, PurchaseStatus
from backoffice.services import audit
from backoffice.services.acceptance import accept_item
from backoffice.services.distribution import distribute
from backoffice.services.reconciliation import (
    CONSUMED,
    delete_purchase,
    get_purchase,
    list_purchases,
    set_purchase_status,
)


@pytest.fixture
def received(db, store, manager, admin, master, item):
    """Purchase produced by accepting 10 x M1 at 1000."""
    row = distribute(db, store.id, [item(master["products"][0], 10, "1000")], manager).rows[0]
    accept_item(db, row.id, admin)
    return db.scalars(select(Purchase).where(Purchase.source_distribution_id == row.id)).one()


@pytest.fixture
def mirror_stock(store, mirror_of, stock_of):
    return lambda: stock_of(mirror_of(store.id, "M1").id)


def test_cancel_takes_stock_back_out(db, admin, received, mirror_stock):
    before = mirror_stock()

    purchase = set_purchase_status(db, received.id, PurchaseStatus.CANCELLED, admin)

    assert purchase.status == PurchaseStatus.CANCELLED
    assert purchase.total_amount == Decimal("10000")
    assert mirror_stock() == before - 10


def test_reinstate_puts_stock_back(db, admin, received, mirror_stock):
    set_purchase_status(db, received.id, PurchaseStatus.CANCELLED, admin)

    purchase = set_purchase_status(db, received.id, PurchaseStatus.COMPLETED, admin)

    assert purchase.status == PurchaseStatus.COMPLETED
    assert mirror_stock() == 10


def test_cancel_refused_when_stock_consumed(db, store, admin, received, mirror_of, mirror_stock):
    db.execute(update(Product).where(Product.id == mirror_of(store.id, "M1").id).values(stock=4))
    db.commit()

    with pytest.raises(ConflictError, match=CONSUMED):
        set_purchase_status(db, received.id, PurchaseStatus.CANCELLED, admin)

    assert db.get(Purchase, received.id).status == PurchaseStatus.COMPLETED
    assert mirror_stock() == 4


def test_same_status_update_only_changes_note(db, admin, received, mirror_stock):
    purchase = set_purchase_status(db, received.id, None, admin, note="  checked by store  ")

    assert purchase.status == PurchaseStatus.COMPLETED
    assert purchase.note == "checked by store"
    assert mirror_stock() == 10


def test_total_is_recomputed_from_items(db, admin, received):
    db.execute(update(Purchase).where(Purchase.id == received.id).values(total_amount=1))
    db.commit()

    purchase = set_purchase_status(db, received.id, PurchaseStatus.COMPLETED, admin)

    assert purchase.total_amount == Decimal("10000")


@pytest.mark.parametrize("credit_point", ["distribution", "acceptance"])
def test_stock_conservation(db, store, manager, admin, master, item, credit_at, mirror_of, stock_of, credit_point):
    credit_at(credit_point)
    row = distribute(db, store.id, [item(master["products"][0], 10, "1000")], manager).rows[0]
    mirror_id = mirror_of(store.id, "M1").id
    accept_item(db, row.id, admin)
    purchase_id = db.scalar(select(Purchase.id).where(Purchase.source_distribution_id == row.id))

    observed = [stock_of(mirror_id)]
    for status in (PurchaseStatus.CANCELLED, PurchaseStatus.COMPLETED, PurchaseStatus.CANCELLED):
        set_purchase_status(db, purchase_id, status, admin)
        observed.append(stock_of(mirror_id))

    assert observed == [10, 0, 10, 0]


def test_delete_completed_purchase_reverses_stock(db, admin, received, mirror_stock, count):
    snapshot = delete_purchase(db, received.id, admin)

    assert snapshot.id == received.id
    assert len(snapshot.items) == 1
    assert snapshot.items[0].subtotal == Decimal("10000")
    assert mirror_stock() == 0
    assert count(Purchase) == 0
    assert count(PurchaseItem) == 0


def test_delete_cancelled_purchase_keeps_stock(db, admin, received, mirror_stock):
    set_purchase_status(db, received.id, PurchaseStatus.CANCELLED, admin)

    delete_purchase(db, received.id, admin)

    assert mirror_stock() == 0


def test_mutations_are_audited(db, admin, received):
    set_purchase_status(db, received.id, PurchaseStatus.CANCELLED, admin)
    delete_purchase(db, received.id, admin)

    actions = db.scalars(
        select(AuditLog.action).where(AuditLog.entity == "Purchase").order_by(AuditLog.id.asc())
    ).all()
    assert actions == [audit.PURCHASE_CREATE, audit.PURCHASE_UPDATE, audit.PURCHASE_DELETE]


def test_unknown_purchase(db, admin, master):
    with pytest.raises(NotFoundError):
        set_purchase_status(db, 777, PurchaseStatus.CANCELLED, admin)


def test_cashier_can_view_but_not_change(db, cashier, received):
    assert get_purchase(db, received.id, cashier).id == received.id

    with pytest.raises(ForbiddenError):
        set_purchase_status(db, received.id, PurchaseStatus.CANCELLED, cashier)


def test_other_store_cannot_touch_purchase(db, other_admin, received):
    with pytest.raises(ForbiddenError):
        get_purchase(db, received.id, other_admin)
    with pytest.raises(ForbiddenError):
        delete_purchase(db, received.id, other_admin)


def test_list_purchases_scope(db, manager, admin, other_admin, received):
    assert [p.id for p in list_purchases(db, manager)] == [received.id]
    assert [p.id for p in list_purchases(db, admin)] == [received.id]
    assert list_purchases(db, other_admin) == []
    assert list_purchases(db, manager, status=PurchaseStatus.CANCELLED) == []
