"""
Order models

Tables:
- orders: buy/sell requests and their settlement status
"""

import enum
from typing import Optional
from datetime import datetime
from sqlalchemy import DateTime, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from classfolio.errors import ValidationFailure
from classfolio.models.base import Base, TimestampMixin, value_enum


class OrderAction(str, enum.Enum):
    BUY = "buy"
    SELL = "sell"


class OrderStatus(str, enum.Enum):
    """Order lifecycle: pending -> completed on settlement; canceled/failed are terminal"""
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELED = "canceled"
    FAILED = "failed"


class Order(Base, TimestampMixin):
    """Buy or sell order

    Created pending by order entry and settled at most once. On success it
    links the cash transaction and position record settlement produced.
    """
    __tablename__ = "orders"
    __table_args__ = (
        Index("idx_orders_user_status", "user_id", "status"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"))
    stock_id: Mapped[int] = mapped_column(ForeignKey("stocks.id"))
    action: Mapped[OrderAction] = mapped_column(
        value_enum(OrderAction, length=10)
    )
    shares: Mapped[int] = mapped_column()
    status: Mapped[OrderStatus] = mapped_column(
        value_enum(OrderStatus, length=20),
        default=OrderStatus.PENDING,
    )
    cash_transaction_id: Mapped[int | None] = mapped_column(
        ForeignKey("cash_transactions.id"), default=None
    )
    position_record_id: Mapped[int | None] = mapped_column(
        ForeignKey("position_records.id"), default=None
    )
    settled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="orders")
    stock: Mapped["Stock"] = relationship("Stock")
    cash_transaction: Mapped[Optional["CashTransaction"]] = relationship(
        "CashTransaction", foreign_keys=[cash_transaction_id], post_update=True
    )
    position_record: Mapped[Optional["PositionRecord"]] = relationship(
        "PositionRecord", foreign_keys=[position_record_id], post_update=True
    )

    def __init__(self, **kwargs):
        kwargs.setdefault("status", OrderStatus.PENDING)
        super().__init__(**kwargs)

    @property
    def is_pending(self) -> bool:
        return self.status == OrderStatus.PENDING

    @property
    def is_buy(self) -> bool:
        return self.action == OrderAction.BUY

    @validates("action")
    def _validate_action(self, key, value):
        try:
            return OrderAction(value)
        except ValueError:
            raise ValidationFailure(f"Unknown order action: {value}", field=key)

    @validates("shares")
    def _validate_shares(self, key, value):
        if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
            raise ValidationFailure("Shares must be a positive integer", field=key)
        return value
