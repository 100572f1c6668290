"""
SQLAlchemy ORM models package

Provides data models for all database tables:
- Accounts: User, RoleEnum
- Portfolio: Portfolio
- Instruments: Stock
- Cash ledger: CashTransaction, TransactionKind, TransactionStatus
- Positions: PositionRecord
- Orders: Order, OrderAction, OrderStatus
"""

from classfolio.models.base import Base, TimestampMixin
from classfolio.models.user import User, RoleEnum
from classfolio.models.portfolio import Portfolio
from classfolio.models.stock import Stock
from classfolio.models.ledger import CashTransaction, TransactionKind, TransactionStatus
from classfolio.models.position import PositionRecord
from classfolio.models.order import Order, OrderAction, OrderStatus

__all__ = [
    "Base",
    "TimestampMixin",
    "User",
    "RoleEnum",
    "Portfolio",
    "Stock",
    "CashTransaction",
    "TransactionKind",
    "TransactionStatus",
    "PositionRecord",
    "Order",
    "OrderAction",
    "OrderStatus",
]
