"""
classfolio/core/orders.py - Order entry

Orders are created pending and have no side effects on the ledger or on
positions until SettlementEngine.settle() is called for them.
"""

import logging
from typing import List

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from classfolio.errors import ValidationFailure
from classfolio.models import Order, OrderAction, OrderStatus, Portfolio, Stock, User

logger = logging.getLogger(__name__)


def place_order(
    session: Session,
    user: User,
    stock: Stock,
    action: OrderAction | str,
    shares: int,
) -> Order:
    """Create a pending buy/sell order for a student with a portfolio"""
    if user.portfolio is None:
        raise ValidationFailure(f"User {user.username} has no portfolio", field="user")

    order = Order(user=user, stock=stock, action=action, shares=shares)
    session.add(order)
    session.flush()
    logger.info(
        f"Placed order {order.id}: {order.action.value} {shares} {stock.symbol} "
        f"for {user.username}"
    )
    return order


def cancel_order(session: Session, order: Order) -> Order:
    """Move a pending order to canceled; other statuses are left untouched"""
    result = session.execute(
        update(Order)
        .where(Order.id == order.id, Order.status == OrderStatus.PENDING)
        .values(status=OrderStatus.CANCELED)
        .execution_options(synchronize_session=False)
    )
    session.refresh(order)
    if result.rowcount:
        logger.info(f"Canceled order {order.id}")
    else:
        logger.info(f"Order {order.id} is {order.status.value}; not canceled")
    return order


def pending_orders(session: Session, portfolio: Portfolio | None = None) -> List[Order]:
    """Pending orders oldest first, optionally limited to one portfolio's owner"""
    stmt = select(Order).where(Order.status == OrderStatus.PENDING)
    if portfolio is not None:
        stmt = stmt.where(Order.user_id == portfolio.user_id)
    return list(session.scalars(stmt.order_by(Order.created_at, Order.id)))
