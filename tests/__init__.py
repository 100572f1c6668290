"""
tests/__init__.py
Test package initialization with a temporary database and record factories
"""

import os
import sys
import tempfile
import unittest

from sqlalchemy import func, select

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, project_root)


class BaseTestCase(unittest.TestCase):
    """Base test case backed by a temporary SQLite file

    A file (not :memory:) database so that separate sessions and threads
    see each other's committed writes.
    """

    def setUp(self):
        """Set up test fixtures"""
        self.test_db = tempfile.NamedTemporaryFile(delete=False, suffix=".db")
        self.test_db.close()
        self.test_db_path = self.test_db.name

        os.environ["CLASSFOLIO_ENV"] = "testing"
        os.environ["DATABASE_URL"] = f"sqlite:///{self.test_db_path}"

        from classfolio.db import init_db_manager

        self.db = init_db_manager(os.environ["DATABASE_URL"])

    def tearDown(self):
        """Clean up test fixtures"""
        import classfolio.db as db_module

        if db_module._db_manager is not None:
            db_module._db_manager.close()
            db_module._db_manager = None

        os.environ.pop("DATABASE_URL", None)

        if os.path.exists(self.test_db_path):
            try:
                os.unlink(self.test_db_path)
            except OSError:
                pass

    # Factories

    def create_user(self, username="student1", role=None, email=None):
        from classfolio.models import RoleEnum, User

        with self.db.session_context() as session:
            user = User(
                username=username,
                email=email or f"{username}@school.test",
                role=role or RoleEnum.STUDENT,
            )
            session.add(user)
        return user

    def create_portfolio(self, user=None, name="My Portfolio"):
        from classfolio.models import Portfolio

        user = user or self.create_user()
        with self.db.session_context() as session:
            portfolio = Portfolio(user_id=user.id, name=name)
            session.add(portfolio)
        return portfolio

    def create_stock(self, symbol="ACME", price_cents=100):
        from classfolio.models import Stock

        with self.db.session_context() as session:
            stock = Stock(symbol=symbol, price_cents=price_cents)
            session.add(stock)
        return stock

    def create_transaction(self, portfolio, amount_cents, kind, status=None, order=None):
        from classfolio.models import CashTransaction, TransactionStatus

        with self.db.session_context() as session:
            transaction = CashTransaction(
                portfolio_id=portfolio.id,
                amount_cents=amount_cents,
                kind=kind,
                status=status or TransactionStatus.COMPLETED,
                order_id=order.id if order is not None else None,
            )
            session.add(transaction)
        return transaction

    def deposit(self, portfolio, amount_cents):
        from classfolio.models import TransactionKind

        return self.create_transaction(portfolio, amount_cents, TransactionKind.DEPOSIT)

    def create_position(self, portfolio, stock, shares, purchase_price_cents):
        from classfolio.models import PositionRecord

        with self.db.session_context() as session:
            position = PositionRecord(
                portfolio_id=portfolio.id,
                stock_id=stock.id,
                shares=shares,
                purchase_price_cents=purchase_price_cents,
            )
            session.add(position)
        return position

    def create_order(self, user, stock, action="buy", shares=5, status=None):
        from classfolio.models import Order, OrderStatus

        with self.db.session_context() as session:
            order = Order(
                user_id=user.id,
                stock_id=stock.id,
                action=action,
                shares=shares,
                status=status or OrderStatus.PENDING,
            )
            session.add(order)
        return order

    def funded_portfolio(self, amount_cents=1000, username="student1"):
        """Student with a portfolio holding a single deposit"""
        user = self.create_user(username)
        portfolio = self.create_portfolio(user)
        self.deposit(portfolio, amount_cents)
        return user, portfolio

    # Queries

    def count(self, model) -> int:
        with self.db.session_context() as session:
            return session.scalar(select(func.count()).select_from(model))

    def reload(self, model, record_id):
        with self.db.session_context() as session:
            return session.get(model, record_id)
