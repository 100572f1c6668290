"""
classfolio/core/settlement.py - Order settlement

Turns a pending order into a completed one together with its cash and
position side effects, inside a single database transaction:

1. price the trade (shares x unit price at settlement time)
2. buys: check available cash, book a completed withdrawal
3. sells: optionally check the held position
4. append a signed position record
5. link both records on the order and mark it completed

Any failure rolls the whole transaction back and the order stays pending.
Settling an order that is not pending is a no-op.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from classfolio.core.ledger import Ledger
from classfolio.core.position_store import PositionStore
from classfolio.core.pricing import StockPriceProvider, StoredPriceProvider
from classfolio.db import DatabaseManager, get_db_manager
from classfolio.errors import (
    InsufficientFunds,
    InsufficientShares,
    PersistenceFailure,
    SettlementError,
    ValidationFailure,
)
from classfolio.models import (
    CashTransaction,
    Order,
    OrderStatus,
    Portfolio,
    PositionRecord,
    Stock,
    TransactionKind,
    TransactionStatus,
)
from config.settings import Config

logger = logging.getLogger(__name__)

# Per-portfolio locks; row locks are not available on SQLite
_portfolio_locks: Dict[int, threading.Lock] = {}
_portfolio_locks_guard = threading.Lock()


def _portfolio_lock(portfolio_id: int) -> threading.Lock:
    with _portfolio_locks_guard:
        lock = _portfolio_locks.get(portfolio_id)
        if lock is None:
            lock = _portfolio_locks[portfolio_id] = threading.Lock()
        return lock


@dataclass
class SettlementReport:
    """Outcome of a batch settlement run"""

    settled: List[int] = field(default_factory=list)
    skipped: List[int] = field(default_factory=list)
    failed: Dict[int, str] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.settled) + len(self.skipped) + len(self.failed)


class SettlementEngine:
    """Settles orders atomically against the ledger and the position store"""

    def __init__(
        self,
        db_manager: DatabaseManager | None = None,
        price_provider: StockPriceProvider | None = None,
        allow_oversell: bool | None = None,
    ):
        self.db_manager = db_manager or get_db_manager()
        self.price_provider = price_provider or StoredPriceProvider()
        self.allow_oversell = Config.ALLOW_OVERSELL() if allow_oversell is None else allow_oversell

    def settle(self, order: Order | int) -> Order:
        """Settle one order and return it, detached, in its resulting state

        Raises:
            InsufficientFunds: buy notional exceeds available cash
            InsufficientShares: sell exceeds holdings and oversell is disabled
            ValidationFailure: a record failed its integrity rules
            PersistenceFailure: the database failed mid-transaction
        """
        order_id = order if isinstance(order, int) else order.id

        current = self._load(order_id)
        if current.status != OrderStatus.PENDING:
            logger.info(f"Order {order_id} is {current.status.value}; nothing to settle")
            return current

        portfolio_id = self._portfolio_id_for(current)

        with _portfolio_lock(portfolio_id):
            try:
                with self.db_manager.session_context() as session:
                    return self._settle_in_session(session, order_id, portfolio_id)
            except SettlementError as e:
                logger.warning(f"Settlement of order {order_id} failed: {e}")
                raise
            except SQLAlchemyError as e:
                logger.error(f"Settlement of order {order_id} failed in the database: {e}")
                raise PersistenceFailure(f"Could not settle order {order_id}: {e}") from e

    def settle_pending(self, portfolio: Portfolio | None = None) -> SettlementReport:
        """Settle every pending order, each in its own transaction"""
        report = SettlementReport()

        with self.db_manager.session_context() as session:
            stmt = select(Order.id).where(Order.status == OrderStatus.PENDING)
            if portfolio is not None:
                stmt = stmt.where(Order.user_id == portfolio.user_id)
            order_ids = list(session.scalars(stmt.order_by(Order.created_at, Order.id)))

        for order_id in order_ids:
            try:
                settled = self.settle(order_id)
            except SettlementError as e:
                report.failed[order_id] = str(e)
                continue
            if settled.status == OrderStatus.COMPLETED:
                report.settled.append(order_id)
            else:
                report.skipped.append(order_id)

        logger.info(
            f"Settlement run: {len(report.settled)} settled, "
            f"{len(report.skipped)} skipped, {len(report.failed)} failed"
        )
        return report

    def _load(self, order_id: int) -> Order:
        try:
            with self.db_manager.session_context() as session:
                order = session.get(Order, order_id)
                if order is None:
                    raise ValidationFailure(f"Order {order_id} not found", field="order")
                return order
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Could not load order {order_id}: {e}") from e

    def _portfolio_id_for(self, order: Order) -> int:
        try:
            with self.db_manager.session_context() as session:
                portfolio_id = session.scalar(
                    select(Portfolio.id).where(Portfolio.user_id == order.user_id)
                )
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Could not load portfolio for order {order.id}: {e}") from e
        if portfolio_id is None:
            raise ValidationFailure(f"Order {order.id} has no portfolio", field="portfolio")
        return portfolio_id

    def _settle_in_session(self, session: Session, order_id: int, portfolio_id: int) -> Order:
        order = session.scalars(
            select(Order).where(Order.id == order_id).with_for_update().execution_options(
                populate_existing=True
            )
        ).one()
        if order.status != OrderStatus.PENDING:
            logger.info(f"Order {order_id} was settled concurrently; nothing to do")
            return order

        portfolio = session.get(Portfolio, portfolio_id, with_for_update=True)
        stock = session.get(Stock, order.stock_id)

        price_cents = self.price_provider.price_cents(session, stock)
        notional_cents = order.shares * price_cents

        cash_transaction = None
        if order.is_buy:
            cash_transaction = self._book_purchase(session, portfolio, order, notional_cents)
            signed_shares = order.shares
        else:
            self._check_holdings(session, portfolio, stock, order)
            signed_shares = -order.shares

        position = self._book_position(session, portfolio, stock, signed_shares, price_cents)

        result = session.execute(
            update(Order)
            .where(Order.id == order.id, Order.status == OrderStatus.PENDING)
            .values(
                status=OrderStatus.COMPLETED,
                cash_transaction_id=cash_transaction.id if cash_transaction else None,
                position_record_id=position.id,
                settled_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            session.rollback()
            logger.info(f"Order {order_id} was settled concurrently; discarding this attempt")
            return session.get(Order, order_id, populate_existing=True)

        session.refresh(order)
        # Load links now; the order is returned detached
        _ = order.cash_transaction, order.position_record

        logger.info(
            f"Settled order {order.id}: {order.action.value} {order.shares} "
            f"{stock.symbol} @ {price_cents} cents (portfolio {portfolio_id})"
        )
        return order

    def _book_purchase(
        self, session: Session, portfolio: Portfolio, order: Order, notional_cents: int
    ) -> CashTransaction:
        ledger = Ledger(session)
        available_cents = ledger.available_cash_cents(portfolio)
        if available_cents < notional_cents:
            raise InsufficientFunds(notional_cents, available_cents)
        return ledger.record(
            portfolio,
            TransactionKind.WITHDRAWAL,
            notional_cents,
            status=TransactionStatus.COMPLETED,
            order=order,
        )

    def _check_holdings(self, session: Session, portfolio: Portfolio, stock: Stock, order: Order) -> None:
        if self.allow_oversell:
            return
        held = PositionStore(session).position_for(portfolio, stock).total_shares
        if held < order.shares:
            raise InsufficientShares(order.shares, held)

    def _book_position(
        self, session: Session, portfolio: Portfolio, stock: Stock, shares: int, price_cents: int
    ) -> PositionRecord:
        return PositionStore(session).record(portfolio, stock, shares, price_cents)


def settle_order(order: Order | int, db_manager: DatabaseManager | None = None) -> Order:
    """Settle a single order with a default engine"""
    return SettlementEngine(db_manager).settle(order)
