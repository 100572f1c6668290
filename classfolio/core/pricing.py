"""
classfolio/core/pricing.py - Unit prices used at settlement time
"""

from typing import Dict, Protocol

from sqlalchemy.orm import Session

from classfolio.errors import ValidationFailure
from classfolio.models import Stock


class StockPriceProvider(Protocol):
    """Supplies the current unit price of a stock, in minor units"""

    def price_cents(self, session: Session, stock: Stock) -> int:
        ...


class StoredPriceProvider:
    """Reads the price stored on the stock row"""

    def price_cents(self, session: Session, stock: Stock) -> int:
        session.refresh(stock, attribute_names=["price_cents"])
        return _checked(stock, stock.price_cents)


class FixedPriceProvider:
    """Serves prices from a symbol -> cents mapping, falling back to the stored price"""

    def __init__(self, prices: Dict[str, int], fallback: StockPriceProvider | None = None):
        self.prices = {symbol.upper(): cents for symbol, cents in prices.items()}
        self.fallback = fallback or StoredPriceProvider()

    def price_cents(self, session: Session, stock: Stock) -> int:
        if stock.symbol in self.prices:
            return _checked(stock, self.prices[stock.symbol])
        return self.fallback.price_cents(session, stock)


def _checked(stock: Stock, cents) -> int:
    if not isinstance(cents, int) or isinstance(cents, bool) or cents <= 0:
        raise ValidationFailure(f"No valid price for {stock.symbol}: {cents!r}", field="price_cents")
    return cents
