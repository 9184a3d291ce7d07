from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from backoffice.api.deps import get_current_user
from backoffice.db.database import get_db
from backoffice.models.user import User
from backoffice.models.warehouse import DistributionStatus
from backoffice.schemas.warehouse import (
    BatchLineOut,
    BatchOut,
    BatchPageOut,
    CategoryOut,
    DistributeRequest,
    DistributionBatchOut,
    DistributionOut,
    MasterCategoryCreate,
    MasterProductCreate,
    MasterSupplierCreate,
    PaginationOut,
    PendingCountOut,
    ProductOut,
    SupplierOut,
)
from backoffice.services import acceptance, batches, catalog, distribution

router = APIRouter(prefix="/warehouse", tags=["Warehouse"])


def _batch_out(batch: batches.Batch) -> BatchOut:
    return BatchOut(
        id=batch.id,
        invoice_number=batch.invoice_number,
        distributed_at=batch.distributed_at,
        warehouse_id=batch.warehouse_id,
        warehouse_name=batch.warehouse_name,
        store_id=batch.store_id,
        store_name=batch.store_name,
        store_code=batch.store_code,
        distributed_by=batch.distributed_by,
        distributed_by_username=batch.distributed_by_username,
        status=batch.status,
        status_counts=batch.status_counts,
        notes=batch.notes,
        total_items=batch.total_items,
        total_amount=batch.total_amount,
        items=[
            BatchLineOut(
                **DistributionOut.model_validate(line.distribution).model_dump(),
                product_name=line.product_name,
                product_code=line.product_code,
            )
            for line in batch.lines
        ],
    )


@router.get("/master/products", response_model=list[ProductOut])
def list_master_products(
    search: str | None = None,
    product_code: str | None = Query(default=None, alias="productCode"),
    limit: int = Query(default=20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return catalog.list_master_products(db, current_user, search=search, product_code=product_code, limit=limit)


@router.post("/master/products", response_model=ProductOut, status_code=201)
def create_master_product(
    payload: MasterProductCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return catalog.create_master_product(db, payload, current_user)


@router.get("/master/categories", response_model=list[CategoryOut])
def list_master_categories(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return catalog.list_master_categories(db, current_user)


@router.post("/master/categories", response_model=CategoryOut, status_code=201)
def create_master_category(
    payload: MasterCategoryCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return catalog.create_master_category(db, payload, current_user)


@router.get("/master/suppliers", response_model=list[SupplierOut])
def list_master_suppliers(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return catalog.list_master_suppliers(db, current_user)


@router.post("/master/suppliers", response_model=SupplierOut, status_code=201)
def create_master_supplier(
    payload: MasterSupplierCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return catalog.create_master_supplier(db, payload, current_user)


@router.post("/distribute", response_model=DistributionBatchOut)
def distribute(
    payload: DistributeRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    batch = distribution.distribute(db, payload.target_store_id, payload.items, current_user, notes=payload.notes)
    return DistributionBatchOut(
        warehouse_id=batch.warehouse.id,
        store_id=batch.store.id,
        distributed_at=batch.distributed_at,
        distributed_by=batch.distributed_by,
        total_items=batch.total_items,
        total_amount=batch.total_amount,
        distributions=[DistributionOut.model_validate(row) for row in batch.rows],
    )


@router.get("/distributions", response_model=BatchPageOut)
def list_distributions(
    store_id: int | None = Query(default=None, alias="storeId"),
    status: DistributionStatus | None = None,
    start_date: datetime | None = Query(default=None, alias="startDate"),
    end_date: datetime | None = Query(default=None, alias="endDate"),
    search: str | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    filters = batches.BatchFilters(
        store_id=store_id,
        status=status,
        start_date=start_date,
        end_date=end_date,
        search=search,
    )
    result = batches.list_batches(db, current_user, filters, page=page, limit=limit)
    return BatchPageOut(
        distributions=[_batch_out(batch) for batch in result.batches],
        pagination=PaginationOut(
            page=result.page,
            limit=result.limit,
            total=result.total,
            total_pages=result.total_pages,
            has_more=result.has_more,
        ),
    )


@router.get("/distributions/pending-count", response_model=PendingCountOut)
def pending_count(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return PendingCountOut(pending_distributions=acceptance.count_pending(db, current_user))


@router.get("/distributions/{distribution_id}", response_model=BatchOut)
def get_distribution_batch(
    distribution_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return _batch_out(batches.get_batch(db, distribution_id, current_user))


@router.put("/distributions/{distribution_id}/accept", response_model=DistributionOut)
def accept_distribution(
    distribution_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return acceptance.accept_item(db, distribution_id, current_user)


@router.put("/distributions/{distribution_id}/accept-batch", response_model=list[DistributionOut])
def accept_distribution_batch(
    distribution_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return acceptance.accept_batch(db, distribution_id, current_user)
