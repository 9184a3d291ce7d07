from dataclasses import replace
from datetime import datetime, timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest

from backoffice.core.config import settings
from backoffice.core.errors import ForbiddenError, NotFoundError, ValidationError
from backoffice.models.warehouse import DistributionStatus
from backoffice.services.acceptance import accept_item
from backoffice.services.batches import BatchFilters, get_batch, group_batches, invoice_number, list_batches
from backoffice.services.distribution import distribute


def _row(id, distributed_at, store_id=1, distributed_by=7, quantity=1, total="1000", status="PENDING_ACCEPTANCE"):
    distribution = SimpleNamespace(
        id=id,
        distributed_at=distributed_at,
        store_id=store_id,
        distributed_by=distributed_by,
        warehouse_id=99,
        quantity=quantity,
        total_amount=Decimal(total),
        status=DistributionStatus(status),
        notes=None,
    )
    store = SimpleNamespace(id=store_id, name="Toko Maju", code=f"TK{store_id:03d}")
    product = SimpleNamespace(name=f"Produk {id}", product_code=f"P{id}")
    user = SimpleNamespace(username="budi")
    return distribution, store, product, user


def test_invoice_number_format():
    assert invoice_number(datetime(2026, 10, 19, 8, 30), "Toko Maju", "admin1") == "DIST-20261019-TOK-ADM"


def test_invoice_number_strips_spaces_after_truncation():
    assert invoice_number(datetime(2026, 1, 2), "Ab Cafe", "7") == "DIST-20260102-AB-7"


def test_group_batches_by_key():
    at = datetime(2026, 10, 19, 9, 0, 0, 123456)
    rows = [
        _row(5, at, quantity=2, total="2000"),
        _row(3, at, quantity=1, total="500", status="ACCEPTED"),
        _row(8, at + timedelta(minutes=1)),
        _row(9, at, store_id=2),
    ]

    batches = group_batches(rows, "Gudang Pusat")

    assert [batch.id for batch in batches] == [8, 9, 3]
    merged = batches[-1]
    assert merged.total_items == 3
    assert merged.total_amount == Decimal("2500")
    assert merged.status == DistributionStatus.ACCEPTED
    assert merged.status_counts == {"PENDING_ACCEPTANCE": 1, "ACCEPTED": 1}
    assert merged.invoice_number == "DIST-20261019-TOK-BUD"
    assert merged.warehouse_name == "Gudang Pusat"


def test_group_batches_is_deterministic():
    at = datetime(2026, 10, 19, 9, 0)
    rows = [_row(1, at), _row(2, at, quantity=4, total="4000"), _row(3, at, store_id=2)]

    first = group_batches(rows, "Gudang Pusat")
    second = group_batches(list(reversed(rows)), "Gudang Pusat")

    summary = [(b.id, b.invoice_number, b.total_items, b.total_amount) for b in first]
    assert summary == [(b.id, b.invoice_number, b.total_items, b.total_amount) for b in second]


def test_group_batches_falls_back_to_user_id():
    distribution, store, product, _ = _row(1, datetime(2026, 10, 19))

    (batch,) = group_batches([(distribution, store, product, None)], "Gudang Pusat")

    assert batch.invoice_number == "DIST-20261019-TOK-7"
    assert batch.distributed_by_username is None


@pytest.fixture
def three_batches(db, store, other_store, manager, master, item):
    m1, m2, m3 = master["products"]
    return [
        distribute(db, store.id, [item(m1, 1, "1000"), item(m2, 2, "2000")], manager),
        distribute(db, other_store.id, [item(m3, 3)], manager),
        distribute(db, store.id, [item(m3, 1)], manager),
    ]


def test_list_batches_groups_and_orders_newest_first(db, manager, three_batches):
    page = list_batches(db, manager, BatchFilters())

    assert page.total == 3
    assert [batch.id for batch in page.batches] == [
        three_batches[2].rows[0].id,
        three_batches[1].rows[0].id,
        three_batches[0].rows[0].id,
    ]
    oldest = page.batches[-1]
    assert len(oldest.lines) == 2
    assert oldest.total_items == 3
    assert oldest.total_amount == Decimal("5000")
    assert oldest.store_code == "TK001"


def test_list_batches_is_repeatable(db, manager, three_batches):
    first = list_batches(db, manager, BatchFilters())
    second = list_batches(db, manager, BatchFilters())

    assert [(b.invoice_number, b.total_items, b.total_amount) for b in first.batches] == [
        (b.invoice_number, b.total_items, b.total_amount) for b in second.batches
    ]


def test_list_batches_pagination(db, manager, three_batches):
    first = list_batches(db, manager, BatchFilters(), page=1, limit=2)
    second = list_batches(db, manager, BatchFilters(), page=2, limit=2)

    assert len(first.batches) == 2
    assert (first.total, first.total_pages, first.has_more) == (3, 2, True)
    assert len(second.batches) == 1
    assert second.has_more is False


@pytest.mark.parametrize("page,limit", [(0, 10), (1, 0), (1, 101)])
def test_list_batches_rejects_bad_pagination(db, manager, page, limit):
    with pytest.raises(ValidationError):
        list_batches(db, manager, BatchFilters(), page=page, limit=limit)


def test_list_batches_filters(db, manager, admin, other_store, three_batches):
    by_store = list_batches(db, manager, BatchFilters(store_id=other_store.id))
    assert [batch.store_id for batch in by_store.batches] == [other_store.id]

    by_search = list_batches(db, manager, BatchFilters(search="tk002"))
    assert by_search.total == 1

    by_product = list_batches(db, manager, BatchFilters(search="teh"))
    assert by_product.total == 1

    accept_item(db, three_batches[2].rows[0].id, admin)
    accepted = list_batches(db, manager, BatchFilters(status=DistributionStatus.ACCEPTED))
    assert [batch.id for batch in accepted.batches] == [three_batches[2].rows[0].id]


def test_list_batches_date_range(db, manager, three_batches):
    now = datetime.utcnow()

    assert list_batches(db, manager, BatchFilters(start_date=now - timedelta(hours=1))).total == 3
    assert list_batches(db, manager, BatchFilters(end_date=now - timedelta(hours=1))).total == 0
    with pytest.raises(ValidationError):
        list_batches(db, manager, BatchFilters(start_date=now, end_date=now - timedelta(days=1)))


def test_admin_sees_only_own_store(db, admin, other_store, store, three_batches):
    page = list_batches(db, admin, BatchFilters())

    assert page.total == 2
    assert {batch.store_id for batch in page.batches} == {store.id}
    with pytest.raises(ForbiddenError):
        list_batches(db, admin, BatchFilters(store_id=other_store.id))


def test_cashier_cannot_list(db, cashier):
    with pytest.raises(ForbiddenError):
        list_batches(db, cashier, BatchFilters())


def test_row_window_is_bounded(db, manager, three_batches, monkeypatch):
    monkeypatch.setattr("backoffice.services.batches.settings", replace(settings, distribution_max_rows=3))

    with pytest.raises(ValidationError, match="narrow the date range"):
        list_batches(db, manager, BatchFilters())
    assert list_batches(db, manager, BatchFilters(search="tk002")).total == 1


def test_get_batch_orders_lines_by_product_name(db, manager, three_batches):
    first = three_batches[0]

    batch = get_batch(db, first.rows[1].id, manager)

    assert batch.id == first.rows[0].id
    assert [line.product_name for line in batch.lines] == ["Air Mineral", "Teh Botol"]
    assert batch.invoice_number.startswith("DIST-")
    assert batch.invoice_number.endswith("-TOK-MAN")


def test_get_batch_scope_and_missing(db, other_admin, three_batches):
    with pytest.raises(ForbiddenError):
        get_batch(db, three_batches[0].rows[0].id, other_admin)
    with pytest.raises(NotFoundError):
        get_batch(db, 12345, other_admin)


def test_filtered_listing_keeps_the_batch_id(db, manager, admin, three_batches):
    first = three_batches[0]
    accept_item(db, first.rows[0].id, admin)

    pending = list_batches(db, manager, BatchFilters(status=DistributionStatus.PENDING_ACCEPTANCE))

    listed = next(batch for batch in pending.batches if batch.distributed_at == first.distributed_at)
    assert [line.distribution.id for line in listed.lines] == [first.rows[1].id]
    assert listed.id == first.rows[0].id
    assert listed.id == get_batch(db, first.rows[1].id, manager).id
    assert listed.status == DistributionStatus.ACCEPTED
    assert listed.status_counts == {"PENDING_ACCEPTANCE": 1}


def test_list_batches_leaves_caller_filters_alone(db, admin, three_batches):
    filters = BatchFilters(search="teh")

    list_batches(db, admin, filters)

    assert filters == BatchFilters(search="teh")


def test_group_batches_prefers_supplied_heads():
    at = datetime(2026, 10, 19, 9, 0)
    rows = [_row(4, at), _row(6, at)]
    head = _row(2, at, status="ACCEPTED")[0]

    (batch,) = group_batches(rows, "Gudang Pusat", {(at, 1, 7): head})

    assert batch.id == 2
    assert batch.status == DistributionStatus.ACCEPTED
    assert batch.total_items == 2
