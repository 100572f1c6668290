"""
Stock model

Tables:
- stocks: tradable instruments with their current unit price
"""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, validates

from classfolio.errors import ValidationFailure
from classfolio.models.base import Base, TimestampMixin


class Stock(Base, TimestampMixin):
    """Tradable stock

    price_cents is the current unit price in minor units; it is read at
    settlement time by the default price provider.
    """

    __tablename__ = "stocks"

    id: Mapped[int] = mapped_column(primary_key=True)
    symbol: Mapped[str] = mapped_column(String(10), unique=True)
    name: Mapped[str | None] = mapped_column(String(100), default=None)
    price_cents: Mapped[int] = mapped_column()

    @validates("symbol")
    def _validate_symbol(self, key, value):
        if not isinstance(value, str) or not value.strip():
            raise ValidationFailure("Invalid symbol", field=key)
        return value.upper().strip()

    @validates("price_cents")
    def _validate_price(self, key, value):
        if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
            raise ValidationFailure("Price must be a positive number of cents", field=key)
        return value
