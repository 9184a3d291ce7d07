from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from backoffice.api.deps import get_current_user
from backoffice.db.database import get_db
from backoffice.models.inventory import PurchaseStatus
from backoffice.models.user import User
from backoffice.schemas.purchase import PurchaseOut, PurchaseUpdate
from backoffice.services import reconciliation

router = APIRouter(prefix="/purchases", tags=["Purchases"])


@router.get("", response_model=list[PurchaseOut])
def list_purchases(
    store_id: int | None = None,
    status: PurchaseStatus | None = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    purchases = reconciliation.list_purchases(db, current_user, store_id=store_id, status=status)
    return [PurchaseOut.build(p, reconciliation.purchase_items(db, p.id)) for p in purchases]


@router.get("/{purchase_id}", response_model=PurchaseOut)
def get_purchase(
    purchase_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    purchase = reconciliation.get_purchase(db, purchase_id, current_user)
    return PurchaseOut.build(purchase, reconciliation.purchase_items(db, purchase.id))


@router.put("/{purchase_id}", response_model=PurchaseOut)
def update_purchase(
    purchase_id: int,
    payload: PurchaseUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    purchase = reconciliation.set_purchase_status(db, purchase_id, payload.status, current_user, note=payload.note)
    return PurchaseOut.build(purchase, reconciliation.purchase_items(db, purchase.id))


@router.delete("/{purchase_id}", response_model=PurchaseOut)
def delete_purchase(
    purchase_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return reconciliation.delete_purchase(db, purchase_id, current_user)
