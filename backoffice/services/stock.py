import logging
from decimal import Decimal

from sqlalchemy import update
from sqlalchemy.orm import Session

from backoffice.core.config import settings
from backoffice.core.errors import ConflictError, ValidationError
from backoffice.models.inventory import Product

logger = logging.getLogger(__name__)


def quantize_money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(Decimal("0.01"))


def credits_stock_at(point: str) -> bool:
    return settings.stock_credit_point == point


def increment_stock(db: Session, product_id: int, quantity: int) -> None:
    if quantity <= 0:
        raise ValidationError("Stock increment must be positive")
    result = db.execute(
        update(Product)
        .where(Product.id == product_id)
        .values(stock=Product.stock + quantity)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConflictError(f"Product {product_id} no longer exists")


def decrement_stock(db: Session, product_id: int, quantity: int, *, reason: str) -> None:
    if quantity <= 0:
        raise ValidationError("Stock decrement must be positive")
    result = db.execute(
        update(Product)
        .where(Product.id == product_id, Product.stock >= quantity)
        .values(stock=Product.stock - quantity)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        logger.info("stock.decrement_rejected product_id=%s quantity=%s", product_id, quantity)
        raise ConflictError(reason)
