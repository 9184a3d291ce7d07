import math
from collections import Counter
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from backoffice.core.config import settings
from backoffice.core.errors import NotFoundError, ValidationError
from backoffice.core.permissions import Action, ensure_can, is_store_scoped
from backoffice.models.inventory import Product, Store
from backoffice.models.user import User
from backoffice.models.warehouse import DistributionStatus, WarehouseDistribution
from backoffice.services.acceptance import batch_rows
from backoffice.services.catalog import ensure_warehouse


@dataclass
class BatchLine:
    distribution: WarehouseDistribution
    product_name: str
    product_code: str


@dataclass
class Batch:
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
    notes: str | None
    lines: list[BatchLine] = field(default_factory=list)
    total_items: int = 0
    total_amount: Decimal = Decimal("0.00")
    status_counts: dict[str, int] = field(default_factory=dict)


@dataclass
class BatchFilters:
    store_id: int | None = None
    status: DistributionStatus | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    search: str | None = None


@dataclass
class BatchPage:
    batches: list[Batch]
    page: int
    limit: int
    total: int
    total_pages: int
    has_more: bool


def _code(value: str) -> str:
    return value[:3].replace(" ", "").upper()


def invoice_number(distributed_at: datetime, store_name: str, user_code: str) -> str:
    return f"DIST-{distributed_at.strftime('%Y%m%d')}-{_code(store_name)}-{_code(user_code)}"


def _batch_key(distribution) -> tuple:
    return distribution.distributed_at, distribution.store_id, distribution.distributed_by


def group_batches(rows, warehouse_name: str, heads: dict | None = None) -> list[Batch]:
    # heads maps a batch key to its lowest-id row over the whole batch, so a
    # filtered listing reports the same id and status as get_batch.
    groups: dict[tuple, list] = {}
    for row in rows:
        groups.setdefault(_batch_key(row[0]), []).append(row)

    batches = []
    for key, members in groups.items():
        first, store, _, user = min(members, key=lambda member: member[0].id)
        representative = (heads or {}).get(key, first)
        username = user.username if user else None
        batch = Batch(
            id=representative.id,
            invoice_number=invoice_number(
                representative.distributed_at,
                store.name,
                username or str(representative.distributed_by),
            ),
            distributed_at=representative.distributed_at,
            warehouse_id=representative.warehouse_id,
            warehouse_name=warehouse_name,
            store_id=store.id,
            store_name=store.name,
            store_code=store.code,
            distributed_by=representative.distributed_by,
            distributed_by_username=username,
            status=representative.status,
            notes=representative.notes,
        )
        for distribution, _, product, _ in members:
            batch.lines.append(BatchLine(distribution, product.name, product.product_code))
            batch.total_items += distribution.quantity
            batch.total_amount += Decimal(distribution.total_amount)
        batch.status_counts = dict(Counter(line.distribution.status.value for line in batch.lines))
        batches.append(batch)

    batches.sort(key=lambda batch: (batch.distributed_at, batch.id), reverse=True)
    return batches


def _select_rows(warehouse_id: int):
    return (
        select(WarehouseDistribution, Store, Product, User)
        .join(Store, Store.id == WarehouseDistribution.store_id)
        .join(Product, Product.id == WarehouseDistribution.product_id)
        .outerjoin(User, User.id == WarehouseDistribution.distributed_by)
        .where(WarehouseDistribution.warehouse_id == warehouse_id)
    )


def _batch_heads(db: Session, warehouse_id: int, rows) -> dict:
    stamps = {row[0].distributed_at for row in rows}
    if not stamps:
        return {}
    first_ids = (
        select(func.min(WarehouseDistribution.id))
        .where(
            WarehouseDistribution.warehouse_id == warehouse_id,
            WarehouseDistribution.distributed_at.in_(stamps),
        )
        .group_by(
            WarehouseDistribution.distributed_at,
            WarehouseDistribution.store_id,
            WarehouseDistribution.distributed_by,
        )
    )
    heads = db.scalars(select(WarehouseDistribution).where(WarehouseDistribution.id.in_(first_ids))).all()
    return {_batch_key(head): head for head in heads}


def list_batches(db: Session, actor: User, filters: BatchFilters, page: int = 1, limit: int = 10) -> BatchPage:
    if page < 1 or limit < 1 or limit > settings.distribution_page_max_limit:
        raise ValidationError("Invalid pagination parameters")
    if is_store_scoped(actor):
        ensure_can(actor, Action.VIEW_DISTRIBUTIONS, filters.store_id)
        filters = replace(filters, store_id=actor.store_id)
    else:
        ensure_can(actor, Action.VIEW_DISTRIBUTIONS)
    if filters.start_date and filters.end_date and filters.start_date > filters.end_date:
        raise ValidationError("startDate must not be after endDate")

    warehouse = ensure_warehouse(db)
    query = _select_rows(warehouse.id)
    if filters.store_id is not None:
        query = query.where(WarehouseDistribution.store_id == filters.store_id)
    if filters.status is not None:
        query = query.where(WarehouseDistribution.status == filters.status)
    if filters.start_date is not None:
        query = query.where(WarehouseDistribution.distributed_at >= filters.start_date)
    if filters.end_date is not None:
        query = query.where(WarehouseDistribution.distributed_at <= filters.end_date)
    if filters.search:
        pattern = f"%{filters.search.strip()}%"
        query = query.where(or_(Product.name.ilike(pattern), Store.name.ilike(pattern), Store.code.ilike(pattern)))
    query = query.order_by(WarehouseDistribution.distributed_at.desc(), WarehouseDistribution.id.asc())

    # Grouping happens after the query, so the row window is bounded instead of paged.
    rows = db.execute(query.limit(settings.distribution_max_rows + 1)).all()
    if len(rows) > settings.distribution_max_rows:
        raise ValidationError("Too many distributions match; narrow the date range")

    batches = group_batches(rows, warehouse.name, _batch_heads(db, warehouse.id, rows))
    total = len(batches)
    total_pages = math.ceil(total / limit) if total else 0
    offset = (page - 1) * limit
    return BatchPage(
        batches=batches[offset : offset + limit],
        page=page,
        limit=limit,
        total=total,
        total_pages=total_pages,
        has_more=page < total_pages,
    )


def get_batch(db: Session, distribution_id: int, actor: User) -> Batch:
    reference = db.get(WarehouseDistribution, distribution_id)
    if not reference:
        raise NotFoundError("Distribution not found")
    ensure_can(actor, Action.VIEW_DISTRIBUTIONS, reference.store_id)

    ids = [row.id for row in batch_rows(db, reference)]
    query = (
        _select_rows(reference.warehouse_id)
        .where(WarehouseDistribution.id.in_(ids))
        .order_by(Product.name.asc(), WarehouseDistribution.id.asc())
    )
    warehouse = db.get(Store, reference.warehouse_id)
    return group_batches(db.execute(query).all(), warehouse.name)[0]
