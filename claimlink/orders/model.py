from datetime import datetime
from typing import List, Optional

from sqlalchemy import Boolean, Column, ForeignKey, Integer, String, Table, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ..common.clock import isoformat, utcnow
from ..common.db import Base, UTCDateTime

STATUS_AVAILABLE = "available"
STATUS_CLAIMED = "claimed"

# Association row id keeps the order in which products were attached
order_products = Table(
    "order_products",
    Base.metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("order_id", ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("product_id", ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("created_at", UTCDateTime, nullable=False, default=utcnow),
    UniqueConstraint("order_id", "product_id", name="uq_order_products"),
)


def derive_status(one_time_use: bool, claim_count: int) -> str:
    if one_time_use and claim_count > 0:
        return STATUS_CLAIMED
    return STATUS_AVAILABLE


class Order(Base):
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    expiration_date: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    one_time_use: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    claim_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    claimed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    @property
    def status(self) -> str:
        return derive_status(self.one_time_use, self.claim_count)

    def to_dict(self, products: Optional[List] = None) -> dict:
        data = {
            "id": self.id,
            "order_id": self.order_id,
            "expiration_date": isoformat(self.expiration_date),
            "one_time_use": self.one_time_use,
            "claim_count": self.claim_count,
            "claim_status": self.status,
            "claimed_at": isoformat(self.claimed_at),
            "created_by": self.created_by,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }
        if products is not None:
            data["products"] = [p.to_dict() for p in products]
            data["product_ids"] = [p.id for p in products]
        return data
