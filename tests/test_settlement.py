"""
tests/test_settlement.py
Test cases for order settlement
"""

import unittest
from unittest.mock import patch

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from tests import BaseTestCase
from classfolio.core.ledger import Ledger
from classfolio.core.position_store import PositionStore
from classfolio.core.pricing import FixedPriceProvider
from classfolio.core.settlement import SettlementEngine, settle_order
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
    PositionRecord,
    Stock,
    TransactionKind,
    TransactionStatus,
)


class TestBuySettlement(BaseTestCase):
    """Settling pending buy orders"""

    def setUp(self):
        super().setUp()
        self.user, self.portfolio = self.funded_portfolio(1000)
        self.stock = self.create_stock("ACME", price_cents=100)
        self.order = self.create_order(self.user, self.stock, action="buy", shares=5)
        self.engine = SettlementEngine(self.db)

    def test_creates_withdrawal_transaction(self):
        """Test that a buy books exactly one positive withdrawal linked to the order"""
        before = self.count(CashTransaction)

        settled = self.engine.settle(self.order)

        self.assertEqual(self.count(CashTransaction), before + 1)
        with self.db.session_context() as session:
            transaction = session.scalars(
                select(CashTransaction).order_by(CashTransaction.id.desc())
            ).first()
            self.assertEqual(transaction.kind, TransactionKind.WITHDRAWAL)
            self.assertEqual(transaction.status, TransactionStatus.COMPLETED)
            self.assertEqual(transaction.amount_cents, 500)
            self.assertEqual(transaction.order_id, self.order.id)
            self.assertEqual(settled.cash_transaction_id, transaction.id)

    def test_creates_linked_position_record(self):
        """Test that a buy creates one position record linked to the order"""
        before = self.count(PositionRecord)

        settled = self.engine.settle(self.order)

        self.assertEqual(self.count(PositionRecord), before + 1)
        position = self.reload(PositionRecord, settled.position_record_id)
        self.assertEqual(position.shares, 5)
        self.assertEqual(position.stock_id, self.stock.id)
        self.assertEqual(position.portfolio_id, self.portfolio.id)
        self.assertEqual(position.purchase_price_cents, 100)

    def test_updates_order_status_to_completed(self):
        """Test that the order is completed after settlement"""
        self.engine.settle(self.order)

        order = self.reload(Order, self.order.id)
        self.assertEqual(order.status, OrderStatus.COMPLETED)
        self.assertIsNotNone(order.settled_at)

    def test_returned_order_has_links_loaded(self):
        """Test that the detached order returned carries its linked records"""
        settled = self.engine.settle(self.order.id)

        self.assertEqual(settled.status, OrderStatus.COMPLETED)
        self.assertEqual(settled.cash_transaction.amount_cents, 500)
        self.assertEqual(settled.position_record.shares, 5)

    def test_leaves_expected_cash_balance(self):
        """Test the worked example: 1000 funded, 5 x 100 bought, 500 left"""
        self.engine.settle(self.order)

        with self.db.session_context() as session:
            self.assertEqual(Ledger(session).available_cash_cents(self.portfolio), 500)

    def test_exact_balance_is_sufficient(self):
        """Test that a notional equal to the balance settles"""
        order = self.create_order(self.user, self.stock, action="buy", shares=10)

        settled = self.engine.settle(order)

        self.assertEqual(settled.status, OrderStatus.COMPLETED)

    def test_uses_price_at_settlement_time(self):
        """Test that the price is read when settling, not when ordering"""
        with self.db.session_context() as session:
            session.get(Stock, self.stock.id).price_cents = 150

        settled = self.engine.settle(self.order)

        self.assertEqual(settled.cash_transaction.amount_cents, 750)
        self.assertEqual(settled.position_record.purchase_price_cents, 150)

    def test_price_provider_override(self):
        """Test that a custom price provider is used for the notional"""
        engine = SettlementEngine(self.db, price_provider=FixedPriceProvider({"acme": 120}))

        settled = engine.settle(self.order)

        self.assertEqual(settled.cash_transaction.amount_cents, 600)

    def test_settle_order_uses_global_manager(self):
        """Test the module-level entry point"""
        settled = settle_order(self.order)

        self.assertEqual(settled.status, OrderStatus.COMPLETED)


class TestInsufficientFunds(BaseTestCase):
    """Buy orders that cost more than the available cash"""

    def setUp(self):
        super().setUp()
        self.user, self.portfolio = self.funded_portfolio(400)
        self.stock = self.create_stock("ACME", price_cents=100)
        self.order = self.create_order(self.user, self.stock, action="buy", shares=5)
        self.engine = SettlementEngine(self.db)

    def test_raises_insufficient_funds(self):
        with self.assertRaises(InsufficientFunds) as ctx:
            self.engine.settle(self.order)

        self.assertEqual(ctx.exception.required_cents, 500)
        self.assertEqual(ctx.exception.available_cents, 400)
        self.assertIsInstance(ctx.exception, SettlementError)

    def test_order_stays_pending_and_nothing_is_written(self):
        transactions = self.count(CashTransaction)
        positions = self.count(PositionRecord)

        with self.assertRaises(InsufficientFunds):
            self.engine.settle(self.order)

        order = self.reload(Order, self.order.id)
        self.assertEqual(order.status, OrderStatus.PENDING)
        self.assertIsNone(order.cash_transaction_id)
        self.assertIsNone(order.position_record_id)
        self.assertEqual(self.count(CashTransaction), transactions)
        self.assertEqual(self.count(PositionRecord), positions)

    def test_can_retry_after_funding(self):
        with self.assertRaises(InsufficientFunds):
            self.engine.settle(self.order)

        self.deposit(self.portfolio, 100)
        settled = self.engine.settle(self.order)

        self.assertEqual(settled.status, OrderStatus.COMPLETED)

    def test_unfunded_portfolio(self):
        user = self.create_user("student2")
        self.create_portfolio(user)
        order = self.create_order(user, self.stock, action="buy", shares=1)

        with self.assertRaises(InsufficientFunds):
            self.engine.settle(order)


class TestSellSettlement(BaseTestCase):
    """Settling pending sell orders"""

    def setUp(self):
        super().setUp()
        self.user = self.create_user()
        self.portfolio = self.create_portfolio(self.user)
        self.stock = self.create_stock("ACME", price_cents=100)
        self.create_position(self.portfolio, self.stock, 10, 100)
        self.engine = SettlementEngine(self.db)

    def test_creates_negative_position_record(self):
        """Test that a sell appends a record with negative shares"""
        order = self.create_order(self.user, self.stock, action="sell", shares=3)

        self.engine.settle(order)

        with self.db.session_context() as session:
            records = PositionStore(session).records_for(self.portfolio, self.stock)
            self.assertEqual(len(records), 2)
            self.assertEqual(records[-1].shares, -3)
            self.assertEqual(records[-1].stock_id, self.stock.id)

    def test_does_not_create_cash_transaction(self):
        order = self.create_order(self.user, self.stock, action="sell", shares=3)
        before = self.count(CashTransaction)

        settled = self.engine.settle(order)

        self.assertEqual(self.count(CashTransaction), before)
        self.assertIsNone(settled.cash_transaction_id)
        self.assertEqual(settled.status, OrderStatus.COMPLETED)

    def test_sell_needs_no_cash(self):
        """Test that sells skip the funds check"""
        order = self.create_order(self.user, self.stock, action="sell", shares=3)

        settled = self.engine.settle(order)

        self.assertEqual(settled.status, OrderStatus.COMPLETED)

    def test_oversell_is_permitted_by_default(self):
        order = self.create_order(self.user, self.stock, action="sell", shares=15)

        self.engine.settle(order)

        with self.db.session_context() as session:
            position = PositionStore(session).position_for(self.portfolio, self.stock)
            self.assertEqual(position.total_shares, -5)

    def test_oversell_rejected_when_disabled(self):
        engine = SettlementEngine(self.db, allow_oversell=False)
        order = self.create_order(self.user, self.stock, action="sell", shares=15)

        with self.assertRaises(InsufficientShares) as ctx:
            engine.settle(order)

        self.assertEqual(ctx.exception.held, 10)
        self.assertEqual(self.reload(Order, order.id).status, OrderStatus.PENDING)
        self.assertEqual(self.count(PositionRecord), 1)

    def test_covered_sell_allowed_when_oversell_disabled(self):
        engine = SettlementEngine(self.db, allow_oversell=False)
        order = self.create_order(self.user, self.stock, action="sell", shares=10)

        settled = engine.settle(order)

        self.assertEqual(settled.status, OrderStatus.COMPLETED)


class TestBuyThenSell(BaseTestCase):
    """Sequential orders for the same stock"""

    def test_buy_then_sell_orders_work_together(self):
        user, portfolio = self.funded_portfolio(2000)
        stock = self.create_stock("ACME", price_cents=100)
        engine = SettlementEngine(self.db)

        engine.settle(self.create_order(user, stock, action="buy", shares=10))
        engine.settle(self.create_order(user, stock, action="sell", shares=4))

        with self.db.session_context() as session:
            store = PositionStore(session)
            shares = sorted(r.shares for r in store.records_for(portfolio, stock))
            self.assertEqual(shares, [-4, 10])
            self.assertEqual(store.position_for(portfolio, stock).total_shares, 6)
            self.assertEqual(Ledger(session).available_cash_cents(portfolio), 1000)

    def test_multiple_buys_create_separate_records(self):
        user, portfolio = self.funded_portfolio(1000)
        stock = self.create_stock("ACME", price_cents=100)
        engine = SettlementEngine(self.db)

        engine.settle(self.create_order(user, stock, action="buy", shares=5))
        engine.settle(self.create_order(user, stock, action="buy", shares=3))

        with self.db.session_context() as session:
            records = PositionStore(session).records_for(portfolio, stock)
            self.assertEqual(sorted(r.shares for r in records), [3, 5])


class TestNonPendingOrders(BaseTestCase):
    """Settlement is a no-op for orders that are not pending"""

    def setUp(self):
        super().setUp()
        self.user, self.portfolio = self.funded_portfolio(1000)
        self.stock = self.create_stock("ACME", price_cents=100)
        self.engine = SettlementEngine(self.db)

    def _assert_untouched(self, status):
        order = self.create_order(self.user, self.stock, action="buy", shares=5, status=status)
        transactions = self.count(CashTransaction)
        positions = self.count(PositionRecord)

        result = self.engine.settle(order)

        self.assertEqual(result.status, status)
        self.assertEqual(self.reload(Order, order.id).status, status)
        self.assertEqual(self.count(CashTransaction), transactions)
        self.assertEqual(self.count(PositionRecord), positions)

    def test_completed_order_is_untouched(self):
        self._assert_untouched(OrderStatus.COMPLETED)

    def test_canceled_order_is_untouched(self):
        self._assert_untouched(OrderStatus.CANCELED)

    def test_failed_order_is_untouched(self):
        self._assert_untouched(OrderStatus.FAILED)

    def test_settling_twice_is_idempotent(self):
        order = self.create_order(self.user, self.stock, action="buy", shares=5)

        first = self.engine.settle(order)
        second = self.engine.settle(order)

        self.assertEqual(first.status, OrderStatus.COMPLETED)
        self.assertEqual(second.status, OrderStatus.COMPLETED)
        self.assertEqual(second.cash_transaction_id, first.cash_transaction_id)
        self.assertEqual(self.count(PositionRecord), 1)


class TestRollback(BaseTestCase):
    """Failures part-way through settlement roll everything back"""

    def setUp(self):
        super().setUp()
        self.user, self.portfolio = self.funded_portfolio(1000)
        self.stock = self.create_stock("ACME", price_cents=100)
        self.order = self.create_order(self.user, self.stock, action="buy", shares=5)
        self.engine = SettlementEngine(self.db)

    def _assert_rolled_back(self, transactions_before):
        order = self.reload(Order, self.order.id)
        self.assertEqual(order.status, OrderStatus.PENDING)
        self.assertIsNone(order.cash_transaction_id)
        self.assertIsNone(order.position_record_id)
        self.assertIsNone(order.settled_at)
        self.assertEqual(self.count(CashTransaction), transactions_before)
        self.assertEqual(self.count(PositionRecord), 0)

    def test_position_write_validation_failure(self):
        """Test rollback when the position record fails validation"""
        before = self.count(CashTransaction)
        failure = ValidationFailure("Shares must be a non-zero integer", field="shares")

        with patch.object(SettlementEngine, "_book_position", side_effect=failure):
            with self.assertRaises(ValidationFailure) as ctx:
                self.engine.settle(self.order)

        self.assertIs(ctx.exception, failure)
        self._assert_rolled_back(before)

    def test_position_write_database_failure(self):
        """Test that storage errors surface as PersistenceFailure after rollback"""
        before = self.count(CashTransaction)
        error = IntegrityError("INSERT INTO position_records", {}, Exception("constraint failed"))

        with patch("classfolio.core.position_store.PositionStore.record", side_effect=error):
            with self.assertRaises(PersistenceFailure) as ctx:
                self.engine.settle(self.order)

        self.assertIs(ctx.exception.__cause__, error)
        self._assert_rolled_back(before)

    def test_invalid_price_rolls_back(self):
        """Test that a non-positive settlement price is rejected"""
        before = self.count(CashTransaction)
        engine = SettlementEngine(self.db, price_provider=FixedPriceProvider({"ACME": 0}))

        with self.assertRaises(ValidationFailure):
            engine.settle(self.order)

        self._assert_rolled_back(before)

    def test_retry_after_failure_succeeds(self):
        failure = ValidationFailure("boom")
        with patch.object(SettlementEngine, "_book_position", side_effect=failure):
            with self.assertRaises(ValidationFailure):
                self.engine.settle(self.order)

        settled = self.engine.settle(self.order)

        self.assertEqual(settled.status, OrderStatus.COMPLETED)
        self.assertEqual(self.count(PositionRecord), 1)


class TestSettlementLookups(BaseTestCase):
    """Orders that cannot be resolved to a portfolio"""

    def test_unknown_order(self):
        engine = SettlementEngine(self.db)

        with self.assertRaises(ValidationFailure):
            engine.settle(9999)

    def test_user_without_portfolio(self):
        user = self.create_user()
        stock = self.create_stock()
        order = self.create_order(user, stock, action="buy", shares=1)

        with self.assertRaises(ValidationFailure):
            SettlementEngine(self.db).settle(order)

        self.assertEqual(self.reload(Order, order.id).status, OrderStatus.PENDING)


class TestSettlePending(BaseTestCase):
    """Batch settlement of pending orders"""

    def test_reports_settled_and_failed_orders(self):
        user, portfolio = self.funded_portfolio(600)
        stock = self.create_stock("ACME", price_cents=100)
        first = self.create_order(user, stock, action="buy", shares=5)
        second = self.create_order(user, stock, action="buy", shares=5)
        done = self.create_order(user, stock, action="buy", shares=1, status=OrderStatus.COMPLETED)

        report = SettlementEngine(self.db).settle_pending()

        self.assertEqual(report.settled, [first.id])
        self.assertIn(second.id, report.failed)
        self.assertNotIn(done.id, report.settled + report.skipped)
        self.assertEqual(report.total, 2)
        self.assertEqual(self.reload(Order, second.id).status, OrderStatus.PENDING)

    def test_limited_to_one_portfolio(self):
        user, portfolio = self.funded_portfolio(1000)
        other, _ = self.funded_portfolio(1000, username="student2")
        stock = self.create_stock("ACME", price_cents=100)
        mine = self.create_order(user, stock, action="buy", shares=1)
        theirs = self.create_order(other, stock, action="buy", shares=1)

        report = SettlementEngine(self.db).settle_pending(portfolio)

        self.assertEqual(report.settled, [mine.id])
        self.assertEqual(self.reload(Order, theirs.id).status, OrderStatus.PENDING)


if __name__ == "__main__":
    unittest.main()
