from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import Boolean, CheckConstraint, DateTime, Enum as SQLEnum, ForeignKey, Index, Integer, Numeric, Text
from sqlalchemy.orm import Mapped, mapped_column

from backoffice.db.database import Base


class DistributionStatus(str, Enum):
    PENDING_ACCEPTANCE = "PENDING_ACCEPTANCE"
    ACCEPTED = "ACCEPTED"


class WarehouseDistribution(Base):
    __tablename__ = "warehouse_distributions"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_warehouse_distributions_quantity_positive"),
        Index(
            "ix_warehouse_distributions_batch",
            "warehouse_id",
            "store_id",
            "distributed_at",
            "distributed_by",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    warehouse_id: Mapped[int] = mapped_column(ForeignKey("stores.id", ondelete="CASCADE"), index=True, nullable=False)
    store_id: Mapped[int] = mapped_column(ForeignKey("stores.id", ondelete="CASCADE"), index=True, nullable=False)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="CASCADE"), index=True, nullable=False)
    master_product_id: Mapped[int | None] = mapped_column(
        ForeignKey("products.id", ondelete="SET NULL"),
        nullable=True,
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    status: Mapped[DistributionStatus] = mapped_column(
        SQLEnum(DistributionStatus),
        default=DistributionStatus.PENDING_ACCEPTANCE,
        nullable=False,
        index=True,
    )
    distributed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    distributed_by: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Set once the store mirror's stock has received this line's quantity.
    stock_credited: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    accepted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    accepted_by: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )
