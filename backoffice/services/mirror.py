import logging
from collections.abc import Callable
from typing import TypeVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backoffice.core.errors import ConflictError
from backoffice.models.inventory import Category, Product, Supplier

logger = logging.getLogger(__name__)

T = TypeVar("T")


def get_or_create(db: Session, lookup: Callable[[], T | None], build: Callable[[], T]) -> tuple[T, bool]:
    existing = lookup()
    if existing is not None:
        return existing, False
    row = build()
    try:
        with db.begin_nested():
            db.add(row)
    except IntegrityError:
        winner = lookup()
        if winner is None:
            raise
        logger.warning("mirror.create_conflict type=%s resolved_id=%s", type(winner).__name__, getattr(winner, "id", None))
        return winner, False
    return row, True


class MirrorResolver:
    def __init__(self, db: Session):
        self.db = db

    def resolve_category(self, target_store_id: int, source: Category | None) -> Category | None:
        if source is None:
            return None
        if source.store_id == target_store_id:
            return source
        category, created = get_or_create(
            self.db,
            lambda: self.db.scalar(
                select(Category).where(Category.store_id == target_store_id, Category.name == source.name)
            ),
            lambda: Category(
                store_id=target_store_id,
                name=source.name,
                description=source.description,
                icon=source.icon,
            ),
        )
        if created:
            logger.info("mirror.created entity=category store_id=%s name=%s", target_store_id, source.name)
        return category

    def resolve_supplier(self, target_store_id: int, source: Supplier | None) -> Supplier | None:
        if source is None:
            return None
        if source.store_id == target_store_id:
            return source
        supplier, created = get_or_create(
            self.db,
            lambda: self.db.scalar(
                select(Supplier).where(Supplier.store_id == target_store_id, Supplier.code == source.code)
            ),
            lambda: Supplier(
                store_id=target_store_id,
                code=source.code,
                name=source.name,
                contact_person=source.contact_person,
                address=source.address,
                phone=source.phone,
                email=source.email,
            ),
        )
        if created:
            logger.info("mirror.created entity=supplier store_id=%s code=%s", target_store_id, source.code)
        return supplier

    def find_product(self, target_store_id: int, product_code: str) -> Product | None:
        return self.db.scalar(
            select(Product).where(Product.store_id == target_store_id, Product.product_code == product_code)
        )

    def resolve_product(
        self,
        target_store_id: int,
        master: Product,
        *,
        category_id: int | None,
        supplier_id: int | None,
    ) -> tuple[Product, bool]:
        # Created with zero stock; callers credit it with an atomic increment.
        if master.store_id == target_store_id:
            raise ConflictError("Cannot mirror a product into its own store")
        product, created = get_or_create(
            self.db,
            lambda: self.find_product(target_store_id, master.product_code),
            lambda: Product(
                store_id=target_store_id,
                product_code=master.product_code,
                name=master.name,
                category_id=category_id,
                supplier_id=supplier_id,
                stock=0,
                purchase_price=master.purchase_price,
                retail_price=master.retail_price,
                silver_price=master.silver_price,
                gold_price=master.gold_price,
                platinum_price=master.platinum_price,
                description=master.description,
            ),
        )
        if created:
            logger.info(
                "mirror.created entity=product store_id=%s product_code=%s",
                target_store_id,
                master.product_code,
            )
        return product, created

    def refresh_product(
        self,
        mirror: Product,
        master: Product,
        *,
        category_id: int | None,
        supplier_id: int | None,
    ) -> None:
        mirror.name = master.name
        mirror.description = master.description
        mirror.retail_price = master.retail_price
        mirror.silver_price = master.silver_price
        mirror.gold_price = master.gold_price
        mirror.platinum_price = master.platinum_price
        if category_id is not None:
            mirror.category_id = category_id
        if supplier_id is not None:
            mirror.supplier_id = supplier_id
