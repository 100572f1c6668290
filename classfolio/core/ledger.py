"""
classfolio/core/ledger.py - Cash accounting over a portfolio's transactions
"""

import logging
from decimal import Decimal
from typing import List

from sqlalchemy import and_, case, func, or_, select
from sqlalchemy.orm import Session

from classfolio.models import (
    CashTransaction,
    Order,
    OrderStatus,
    Portfolio,
    TransactionKind,
    TransactionStatus,
)
from config.settings import Config

logger = logging.getLogger(__name__)


def to_major_units(cents: int, factor: int | None = None) -> Decimal:
    """Convert minor units to a Decimal amount in major units"""
    factor = factor or Config.MINOR_UNIT_FACTOR()
    return Decimal(cents) / Decimal(factor)


class Ledger:
    """Derives a portfolio's available cash from its transaction history

    available = deposits - debits + credits - withdrawals, where debits
    whose originating order was canceled are ignored and only completed
    credits count. All sums are taken in minor units.
    """

    def __init__(self, session: Session):
        self.session = session

    def available_cash_cents(self, portfolio: Portfolio | int) -> int:
        portfolio_id = _portfolio_id(portfolio)
        signed = case(
            (CashTransaction.kind == TransactionKind.DEPOSIT, CashTransaction.amount_cents),
            (CashTransaction.kind == TransactionKind.WITHDRAWAL, -CashTransaction.amount_cents),
            (
                and_(
                    CashTransaction.kind == TransactionKind.CREDIT,
                    CashTransaction.status == TransactionStatus.COMPLETED,
                ),
                CashTransaction.amount_cents,
            ),
            (
                and_(
                    CashTransaction.kind == TransactionKind.DEBIT,
                    or_(Order.id.is_(None), Order.status != OrderStatus.CANCELED),
                ),
                -CashTransaction.amount_cents,
            ),
            else_=0,
        )
        stmt = (
            select(func.coalesce(func.sum(signed), 0))
            .select_from(CashTransaction)
            .outerjoin(Order, CashTransaction.order_id == Order.id)
            .where(CashTransaction.portfolio_id == portfolio_id)
        )
        return int(self.session.execute(stmt).scalar_one())

    def available_cash(self, portfolio: Portfolio | int) -> Decimal:
        """Available cash in major units"""
        return to_major_units(self.available_cash_cents(portfolio))

    def record(
        self,
        portfolio: Portfolio,
        kind: TransactionKind,
        amount_cents: int,
        status: TransactionStatus = TransactionStatus.PENDING,
        order: Order | None = None,
    ) -> CashTransaction:
        """Append a transaction to the session; the caller owns the commit"""
        transaction = CashTransaction(
            portfolio_id=portfolio.id,
            kind=kind,
            amount_cents=amount_cents,
            status=status,
            order_id=order.id if order is not None else None,
        )
        self.session.add(transaction)
        self.session.flush()
        logger.debug(
            f"Recorded {transaction.kind.value} of {amount_cents} cents "
            f"for portfolio {portfolio.id}"
        )
        return transaction

    def deposit(self, portfolio: Portfolio, amount_cents: int) -> CashTransaction:
        return self.record(
            portfolio, TransactionKind.DEPOSIT, amount_cents, status=TransactionStatus.COMPLETED
        )

    def history(self, portfolio: Portfolio | int) -> List[CashTransaction]:
        stmt = (
            select(CashTransaction)
            .where(CashTransaction.portfolio_id == _portfolio_id(portfolio))
            .order_by(CashTransaction.created_at, CashTransaction.id)
        )
        return list(self.session.scalars(stmt))


def _portfolio_id(portfolio: Portfolio | int) -> int:
    return portfolio if isinstance(portfolio, int) else portfolio.id
