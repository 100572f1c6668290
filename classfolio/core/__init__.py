"""
classfolio/core/__init__.py
Core business logic package
"""

from .ledger import Ledger, to_major_units
from .position_store import AggregatedPosition, PositionStore
from .pricing import FixedPriceProvider, StockPriceProvider, StoredPriceProvider
from .orders import cancel_order, pending_orders, place_order
from .settlement import SettlementEngine, SettlementReport, settle_order

__all__ = [
    "Ledger",
    "to_major_units",
    "AggregatedPosition",
    "PositionStore",
    "FixedPriceProvider",
    "StockPriceProvider",
    "StoredPriceProvider",
    "cancel_order",
    "pending_orders",
    "place_order",
    "SettlementEngine",
    "SettlementReport",
    "settle_order",
]
