"""
Position models

Tables:
- position_records: one signed share-quantity row per trade
"""

from sqlalchemy import ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from classfolio.errors import ValidationFailure
from classfolio.models.base import Base, TimestampMixin


class PositionRecord(Base, TimestampMixin):
    """Per-trade position record

    Positive shares were acquired, negative shares were disposed of. Rows
    for the same (portfolio, stock) pair are never merged in place.
    """

    __tablename__ = "position_records"
    __table_args__ = (
        Index("idx_position_records_portfolio_stock", "portfolio_id", "stock_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    portfolio_id: Mapped[int] = mapped_column(ForeignKey("portfolios.id"))
    stock_id: Mapped[int] = mapped_column(ForeignKey("stocks.id"))
    shares: Mapped[int] = mapped_column()
    purchase_price_cents: Mapped[int] = mapped_column()

    # Relationships
    portfolio: Mapped["Portfolio"] = relationship("Portfolio", back_populates="position_records")
    stock: Mapped["Stock"] = relationship("Stock")

    @validates("shares")
    def _validate_shares(self, key, value):
        if not isinstance(value, int) or isinstance(value, bool) or value == 0:
            raise ValidationFailure("Shares must be a non-zero integer", field=key)
        return value

    @validates("purchase_price_cents")
    def _validate_price(self, key, value):
        if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
            raise ValidationFailure("Purchase price must be a positive number of cents", field=key)
        return value
