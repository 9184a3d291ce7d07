import logging
from decimal import Decimal

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backoffice.core.config import settings
from backoffice.core.errors import ConflictError, NotFoundError, ValidationError
from backoffice.core.permissions import Action, ensure_can
from backoffice.db.database import atomic
from backoffice.models.inventory import Category, Product, Store, StoreKind, StoreStatus, Supplier
from backoffice.models.user import User
from backoffice.schemas.warehouse import MasterCategoryCreate, MasterProductCreate, MasterSupplierCreate
from backoffice.services import audit
from backoffice.services.mirror import get_or_create

logger = logging.getLogger(__name__)


def get_warehouse(db: Session) -> Store | None:
    return db.scalar(select(Store).where(Store.code == settings.warehouse_code))


def get_or_create_warehouse(db: Session) -> Store:
    """Return the central warehouse tenant, creating it on first use.

    The insert relies on the unique ``stores.code`` constraint, so concurrent
    first callers converge on a single row.
    """
    warehouse, created = get_or_create(
        db,
        lambda: get_warehouse(db),
        lambda: Store(
            code=settings.warehouse_code,
            name=settings.warehouse_name,
            kind=StoreKind.WAREHOUSE,
            status=StoreStatus.ACTIVE,
        ),
    )
    if created:
        logger.info("warehouse.created id=%s code=%s", warehouse.id, warehouse.code)
    elif warehouse.kind != StoreKind.WAREHOUSE:
        raise ConflictError(f"Store code {settings.warehouse_code} is taken by a retail store")
    return warehouse


def ensure_warehouse(db: Session) -> Store:
    with atomic(db):
        warehouse = get_or_create_warehouse(db)
    return warehouse


def list_master_products(
    db: Session,
    actor: User,
    *,
    search: str | None = None,
    product_code: str | None = None,
    limit: int = 20,
) -> list[Product]:
    ensure_can(actor, Action.VIEW_MASTER_CATALOG)
    warehouse = ensure_warehouse(db)
    query = select(Product).where(Product.store_id == warehouse.id)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.where(or_(Product.name.ilike(pattern), Product.product_code.ilike(pattern)))
    elif product_code:
        query = query.where(Product.product_code.ilike(f"%{product_code.strip()}%"))
    return list(db.scalars(query.order_by(Product.name.asc()).limit(limit)).all())


def create_master_product(db: Session, payload: MasterProductCreate, actor: User) -> Product:
    ensure_can(actor, Action.MANAGE_MASTER_CATALOG)
    with atomic(db):
        warehouse = get_or_create_warehouse(db)

        category = db.get(Category, payload.category_id)
        if not category or category.store_id != warehouse.id:
            raise ValidationError("Category not found in warehouse master catalog")
        supplier = db.get(Supplier, payload.supplier_id)
        if not supplier or supplier.store_id != warehouse.id:
            raise ValidationError("Supplier not found in warehouse master catalog")

        product = Product(
            store_id=warehouse.id,
            product_code=payload.product_code.strip().upper(),
            name=payload.name.strip(),
            category_id=category.id,
            supplier_id=supplier.id,
            stock=payload.stock,
            purchase_price=Decimal(payload.purchase_price),
            retail_price=payload.retail_price,
            silver_price=payload.silver_price,
            gold_price=payload.gold_price,
            platinum_price=payload.platinum_price,
            description=payload.description,
        )
        try:
            with db.begin_nested():
                db.add(product)
        except IntegrityError as exc:
            raise ConflictError("Product code already exists in warehouse master catalog") from exc

        audit.record_audit(
            db,
            actor_id=actor.id,
            action=audit.PRODUCT_CREATE,
            entity="Product",
            entity_id=product.id,
            new_value={"product_code": product.product_code, "name": product.name, "stock": product.stock},
            store_id=warehouse.id,
        )
    db.refresh(product)
    logger.info("master_product.created id=%s product_code=%s", product.id, product.product_code)
    return product


def list_master_categories(db: Session, actor: User) -> list[Category]:
    ensure_can(actor, Action.VIEW_MASTER_CATALOG)
    warehouse = ensure_warehouse(db)
    return list(
        db.scalars(select(Category).where(Category.store_id == warehouse.id).order_by(Category.name.asc())).all()
    )


def create_master_category(db: Session, payload: MasterCategoryCreate, actor: User) -> Category:
    ensure_can(actor, Action.MANAGE_MASTER_CATALOG)
    with atomic(db):
        warehouse = get_or_create_warehouse(db)
        category = Category(
            store_id=warehouse.id,
            name=payload.name.strip(),
            description=payload.description,
            icon=payload.icon,
        )
        try:
            with db.begin_nested():
                db.add(category)
        except IntegrityError as exc:
            raise ConflictError("Category name already exists in warehouse master catalog") from exc
        audit.record_audit(
            db,
            actor_id=actor.id,
            action=audit.CATEGORY_CREATE,
            entity="Category",
            entity_id=category.id,
            new_value={"name": category.name},
            store_id=warehouse.id,
        )
    db.refresh(category)
    return category


def list_master_suppliers(db: Session, actor: User) -> list[Supplier]:
    ensure_can(actor, Action.VIEW_MASTER_CATALOG)
    warehouse = ensure_warehouse(db)
    return list(
        db.scalars(select(Supplier).where(Supplier.store_id == warehouse.id).order_by(Supplier.name.asc())).all()
    )


def create_master_supplier(db: Session, payload: MasterSupplierCreate, actor: User) -> Supplier:
    ensure_can(actor, Action.MANAGE_MASTER_CATALOG)
    with atomic(db):
        warehouse = get_or_create_warehouse(db)
        supplier = Supplier(
            store_id=warehouse.id,
            code=payload.code.strip().upper(),
            name=payload.name.strip(),
            contact_person=payload.contact_person,
            address=payload.address,
            phone=payload.phone,
            email=payload.email,
        )
        try:
            with db.begin_nested():
                db.add(supplier)
        except IntegrityError as exc:
            raise ConflictError("Supplier code already exists in warehouse master catalog") from exc
        audit.record_audit(
            db,
            actor_id=actor.id,
            action=audit.SUPPLIER_CREATE,
            entity="Supplier",
            entity_id=supplier.id,
            new_value={"code": supplier.code, "name": supplier.name},
            store_id=warehouse.id,
        )
    db.refresh(supplier)
    return supplier


def get_target_store(db: Session, store_id: int) -> Store:
    store = db.get(Store, store_id)
    if not store:
        raise NotFoundError("Target store not found")
    if store.kind == StoreKind.WAREHOUSE:
        raise ValidationError("Cannot distribute to the warehouse itself")
    if not store.is_active:
        raise ValidationError("Cannot distribute to an inactive store")
    return store
