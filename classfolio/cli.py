"""
CLI commands for the classroom portfolio system

Provides administrative commands for:
- Database setup
- Users, portfolios, deposits and stock prices
- Placing, canceling and settling orders
- Showing a portfolio's cash and positions
"""

import sys
import logging
import click
from dotenv import load_dotenv
from sqlalchemy.exc import SQLAlchemyError

from classfolio.errors import ClassfolioError

logger = logging.getLogger(__name__)


def _db_manager():
    from classfolio.db import DatabaseManager
    from config.settings import get_config

    db_manager = DatabaseManager(get_config().database_url())
    db_manager.init_db()
    return db_manager


def _find_user(session, username: str):
    from classfolio.models import User

    user = session.query(User).filter_by(username=username).first()
    if user is None:
        raise click.ClickException(f"User '{username}' not found.")
    return user


def _find_stock(session, symbol: str):
    from classfolio.models import Stock

    stock = session.query(Stock).filter_by(symbol=symbol.upper()).first()
    if stock is None:
        raise click.ClickException(f"Stock '{symbol.upper()}' not found.")
    return stock


def _fail(message: str) -> None:
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)


@click.group()
def cli() -> None:
    """Classfolio CLI - portfolio and settlement commands"""
    load_dotenv()
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@cli.command()
def init_db() -> None:
    """
    Initialize the database schema
    """
    try:
        db_manager = _db_manager()
        click.echo("✓ Tables created")
        click.echo(f"Database: {db_manager.safe_url()}")
    except Exception as e:
        logger.exception("Database initialization failed")
        _fail(str(e))


@cli.command()
@click.argument("username")
@click.argument("email")
@click.option(
    "--role",
    type=click.Choice(["student", "teacher", "admin"]),
    default="student",
    show_default=True,
)
def create_user(username: str, email: str, role: str) -> None:
    """
    Create a user account
    """
    from classfolio.models import RoleEnum, User

    try:
        with _db_manager().session_context() as session:
            user = User(username=username, email=email, role=RoleEnum(role))
            session.add(user)
            session.flush()
            click.echo(f"✓ User '{username}' created (id={user.id}, role={role})")
    except (ClassfolioError, SQLAlchemyError) as e:
        _fail(str(e))


@cli.command()
@click.argument("username")
@click.option("--name", default="My Portfolio", show_default=True)
def open_portfolio(username: str, name: str) -> None:
    """
    Open a portfolio for a student
    """
    from classfolio.models import Portfolio

    try:
        with _db_manager().session_context() as session:
            user = _find_user(session, username)
            if user.portfolio is not None:
                raise click.ClickException(f"User '{username}' already has a portfolio.")
            portfolio = Portfolio(user=user, name=name)
            session.add(portfolio)
            session.flush()
            click.echo(f"✓ Portfolio {portfolio.id} opened for '{username}'")
    except (ClassfolioError, SQLAlchemyError) as e:
        _fail(str(e))


@cli.command()
@click.argument("username")
@click.argument("amount_cents", type=int)
def deposit(username: str, amount_cents: int) -> None:
    """
    Deposit cash (in cents) into a student's portfolio
    """
    from classfolio.core.ledger import Ledger

    try:
        with _db_manager().session_context() as session:
            user = _find_user(session, username)
            if user.portfolio is None:
                raise click.ClickException(f"User '{username}' has no portfolio.")
            ledger = Ledger(session)
            ledger.deposit(user.portfolio, amount_cents)
            click.echo(f"✓ Deposited {amount_cents} cents")
            click.echo(f"Cash balance: {ledger.available_cash(user.portfolio):.2f}")
    except (ClassfolioError, SQLAlchemyError) as e:
        _fail(str(e))


@cli.command()
@click.argument("symbol")
@click.argument("price_cents", type=int)
@click.option("--name", default=None, help="Company name")
def add_stock(symbol: str, price_cents: int, name: str | None) -> None:
    """
    Add a stock or update its price (in cents)
    """
    from classfolio.models import Stock

    try:
        with _db_manager().session_context() as session:
            stock = session.query(Stock).filter_by(symbol=symbol.upper()).first()
            if stock is None:
                stock = Stock(symbol=symbol, name=name, price_cents=price_cents)
                session.add(stock)
                click.echo(f"✓ Stock {stock.symbol} added at {price_cents} cents")
            else:
                stock.price_cents = price_cents
                if name:
                    stock.name = name
                click.echo(f"✓ Stock {stock.symbol} repriced to {price_cents} cents")
    except (ClassfolioError, SQLAlchemyError) as e:
        _fail(str(e))


@cli.command()
@click.argument("username")
@click.argument("action", type=click.Choice(["buy", "sell"]))
@click.argument("symbol")
@click.argument("shares", type=int)
def place_order(username: str, action: str, symbol: str, shares: int) -> None:
    """
    Place a pending buy or sell order
    """
    from classfolio.core.orders import place_order as _place_order

    try:
        with _db_manager().session_context() as session:
            order = _place_order(
                session, _find_user(session, username), _find_stock(session, symbol), action, shares
            )
            click.echo(f"✓ Order {order.id} placed ({action} {shares} {symbol.upper()})")
    except (ClassfolioError, SQLAlchemyError) as e:
        _fail(str(e))


@cli.command()
@click.argument("order_id", type=int)
def cancel_order(order_id: int) -> None:
    """
    Cancel a pending order
    """
    from classfolio.core.orders import cancel_order as _cancel_order
    from classfolio.models import Order

    with _db_manager().session_context() as session:
        order = session.get(Order, order_id)
        if order is None:
            raise click.ClickException(f"Order {order_id} not found.")
        order = _cancel_order(session, order)
        click.echo(f"Order {order_id} is {order.status.value}")


@cli.command()
@click.argument("order_id", type=int)
def settle_order(order_id: int) -> None:
    """
    Settle one pending order
    """
    from classfolio.core.settlement import SettlementEngine

    try:
        order = SettlementEngine(_db_manager()).settle(order_id)
    except (ClassfolioError, SQLAlchemyError) as e:
        _fail(str(e))
    click.echo(f"Order {order_id} is {order.status.value}")


@cli.command()
def settle_pending() -> None:
    """
    Settle all pending orders, each in its own transaction
    """
    from classfolio.core.settlement import SettlementEngine

    report = SettlementEngine(_db_manager()).settle_pending()
    click.echo(
        f"Settled: {len(report.settled)} | Skipped: {len(report.skipped)} | "
        f"Failed: {len(report.failed)}"
    )
    for order_id, reason in report.failed.items():
        click.echo(f"  Order {order_id}: {reason}")


@cli.command()
@click.argument("username")
def show_portfolio(username: str) -> None:
    """
    Show a student's cash balance and aggregated positions
    """
    from classfolio.models import Stock

    with _db_manager().session_context() as session:
        user = _find_user(session, username)
        portfolio = user.portfolio
        if portfolio is None:
            raise click.ClickException(f"User '{username}' has no portfolio.")

        click.echo("\n" + "=" * 60)
        click.echo(f"{portfolio.name} ({username})")
        click.echo("=" * 60)
        click.echo(f"Cash balance: {portfolio.cash_balance:.2f}")

        positions = portfolio.positions
        if not positions:
            click.echo("No positions.")
        for position in positions:
            stock = session.get(Stock, position.stock_id)
            click.echo(
                f"{stock.symbol:<8} shares: {position.total_shares:>6} | "
                f"avg price: {position.avg_purchase_price:.2f}"
            )
        click.echo("=" * 60 + "\n")


@cli.command()
@click.option(
    "--status",
    type=click.Choice(["pending", "completed", "canceled", "failed"]),
    default=None,
    help="Only list orders in this status",
)
def list_orders(status: str | None) -> None:
    """
    List orders
    """
    from classfolio.models import Order, OrderStatus

    with _db_manager().session_context() as session:
        query = session.query(Order).order_by(Order.id)
        if status:
            query = query.filter(Order.status == OrderStatus(status))
        orders = query.all()

        if not orders:
            click.echo("No orders found.")
            return

        for order in orders:
            click.echo(
                f"ID: {order.id} | User: {order.user.username} | {order.action.value} "
                f"{order.shares} {order.stock.symbol} | Status: {order.status.value}"
            )


if __name__ == "__main__":
    cli()
