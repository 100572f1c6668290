"""
Cash ledger models

Tables:
- cash_transactions: append-only cash movements for a portfolio
"""

import enum
from typing import Optional
from sqlalchemy import ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from classfolio.errors import ValidationFailure
from classfolio.models.base import Base, TimestampMixin, value_enum


class TransactionKind(str, enum.Enum):
    """Direction of a cash movement; amounts are always stored positive"""
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    CREDIT = "credit"
    DEBIT = "debit"


class TransactionStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class CashTransaction(Base, TimestampMixin):
    """Cash transaction

    Immutable once written. A debit whose originating order is canceled and
    a credit that is not completed are excluded from the available balance.
    """
    __tablename__ = "cash_transactions"
    __table_args__ = (
        Index("idx_cash_transactions_portfolio_kind", "portfolio_id", "kind"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    portfolio_id: Mapped[int] = mapped_column(ForeignKey("portfolios.id"))
    order_id: Mapped[int | None] = mapped_column(
        ForeignKey("orders.id", use_alter=True), default=None
    )
    amount_cents: Mapped[int] = mapped_column()
    kind: Mapped[TransactionKind] = mapped_column(
        value_enum(TransactionKind, length=20)
    )
    status: Mapped[TransactionStatus] = mapped_column(
        value_enum(TransactionStatus, length=20),
        default=TransactionStatus.PENDING,
    )

    # Relationships
    portfolio: Mapped["Portfolio"] = relationship("Portfolio", back_populates="transactions")
    order: Mapped[Optional["Order"]] = relationship("Order", foreign_keys=[order_id])

    def __init__(self, **kwargs):
        kwargs.setdefault("status", TransactionStatus.PENDING)
        super().__init__(**kwargs)

    @validates("amount_cents")
    def _validate_amount(self, key, value):
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            raise ValidationFailure("Amount must be a non-negative number of cents", field=key)
        return value

    @validates("kind")
    def _validate_kind(self, key, value):
        try:
            return TransactionKind(value)
        except ValueError:
            raise ValidationFailure(f"Unknown transaction kind: {value}", field=key)

    @property
    def is_completed(self) -> bool:
        return self.status == TransactionStatus.COMPLETED
