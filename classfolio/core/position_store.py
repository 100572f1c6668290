"""
classfolio/core/position_store.py - Net holdings derived from per-trade position records
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import List

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from classfolio.models import Portfolio, PositionRecord, Stock
from config.settings import Config

PRICE_QUANTUM = Decimal("0.0001")


@dataclass(frozen=True)
class AggregatedPosition:
    """Net position of one stock within one portfolio

    avg_purchase_price is weighted over acquisitions only, so selling
    shares never moves the cost basis of what remains.
    """

    stock_id: int
    total_shares: int
    acquired_shares: int = 0
    acquisition_cost_cents: int = 0

    @property
    def avg_purchase_price_cents(self) -> Decimal:
        if self.acquired_shares <= 0:
            return Decimal(0)
        return (
            Decimal(self.acquisition_cost_cents) / Decimal(self.acquired_shares)
        ).quantize(PRICE_QUANTUM, rounding=ROUND_HALF_UP)

    @property
    def avg_purchase_price(self) -> Decimal:
        """Average purchase price in major units"""
        return (
            self.avg_purchase_price_cents / Decimal(Config.MINOR_UNIT_FACTOR())
        ).quantize(PRICE_QUANTUM, rounding=ROUND_HALF_UP)

    @property
    def cost_basis(self) -> Decimal:
        """Cost of the shares still held, at the average purchase price"""
        return self.avg_purchase_price * self.total_shares


class PositionStore:
    """Reads and appends position records for portfolios"""

    def __init__(self, session: Session):
        self.session = session

    def _aggregate_stmt(self, portfolio_id: int):
        acquired = case((PositionRecord.shares > 0, PositionRecord.shares), else_=0)
        cost = case(
            (PositionRecord.shares > 0, PositionRecord.shares * PositionRecord.purchase_price_cents),
            else_=0,
        )
        return (
            select(
                PositionRecord.stock_id,
                func.sum(PositionRecord.shares),
                func.sum(acquired),
                func.sum(cost),
            )
            .where(PositionRecord.portfolio_id == portfolio_id)
            .group_by(PositionRecord.stock_id)
            .order_by(PositionRecord.stock_id)
        )

    def aggregate(self, portfolio: Portfolio | int) -> List[AggregatedPosition]:
        """One AggregatedPosition per stock the portfolio has records for"""
        rows = self.session.execute(self._aggregate_stmt(_id(portfolio))).all()
        return [
            AggregatedPosition(
                stock_id=stock_id,
                total_shares=int(total),
                acquired_shares=int(acquired),
                acquisition_cost_cents=int(cost),
            )
            for stock_id, total, acquired, cost in rows
        ]

    def position_for(self, portfolio: Portfolio | int, stock: Stock | int) -> AggregatedPosition:
        """Net position for one stock; zero-valued when there are no records"""
        stock_id = _id(stock)
        stmt = self._aggregate_stmt(_id(portfolio)).where(PositionRecord.stock_id == stock_id)
        row = self.session.execute(stmt).first()
        if row is None:
            return AggregatedPosition(stock_id=stock_id, total_shares=0)
        _, total, acquired, cost = row
        return AggregatedPosition(
            stock_id=stock_id,
            total_shares=int(total),
            acquired_shares=int(acquired),
            acquisition_cost_cents=int(cost),
        )

    def records_for(self, portfolio: Portfolio | int, stock: Stock | int) -> List[PositionRecord]:
        stmt = (
            select(PositionRecord)
            .where(
                PositionRecord.portfolio_id == _id(portfolio),
                PositionRecord.stock_id == _id(stock),
            )
            .order_by(PositionRecord.created_at, PositionRecord.id)
        )
        return list(self.session.scalars(stmt))

    def record(
        self,
        portfolio: Portfolio,
        stock: Stock,
        shares: int,
        purchase_price_cents: int,
    ) -> PositionRecord:
        """Append a position record to the session; the caller owns the commit"""
        position = PositionRecord(
            portfolio_id=portfolio.id,
            stock_id=stock.id,
            shares=shares,
            purchase_price_cents=purchase_price_cents,
        )
        self.session.add(position)
        self.session.flush()
        return position


def _id(obj) -> int:
    return obj if isinstance(obj, int) else obj.id
