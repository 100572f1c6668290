"""
Portfolio model

Tables:
- portfolios: one cash-funded portfolio per student
"""

from decimal import Decimal
from sqlalchemy import ForeignKey, String, event
from sqlalchemy.orm import Mapped, Session, mapped_column, object_session, relationship, validates

from classfolio.errors import ValidationFailure
from classfolio.models.base import Base, TimestampMixin
from classfolio.models.user import User


class Portfolio(Base, TimestampMixin):
    """Student portfolio

    Owns the cash ledger and the per-trade position records. Balances and
    holdings are derived on read by the Ledger and PositionStore.
    """

    __tablename__ = "portfolios"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), unique=True)
    name: Mapped[str] = mapped_column(String(100), default="My Portfolio")

    # Relationships
    user: Mapped[User] = relationship("User", back_populates="portfolio")
    transactions: Mapped[list["CashTransaction"]] = relationship(
        "CashTransaction",
        back_populates="portfolio",
        cascade="all, delete-orphan",
        order_by="CashTransaction.id",
    )
    position_records: Mapped[list["PositionRecord"]] = relationship(
        "PositionRecord",
        back_populates="portfolio",
        cascade="all, delete-orphan",
        order_by="PositionRecord.id",
    )

    @validates("user")
    def _validate_user(self, key, user):
        ensure_student(user)
        return user

    def _require_session(self) -> Session:
        session = object_session(self)
        if session is None:
            raise RuntimeError("Portfolio is not attached to a session")
        return session

    @property
    def cash_balance(self) -> Decimal:
        from classfolio.core.ledger import Ledger

        return Ledger(self._require_session()).available_cash(self)

    @property
    def positions(self):
        from classfolio.core.position_store import PositionStore

        return PositionStore(self._require_session()).aggregate(self)

    def position_for(self, stock):
        from classfolio.core.position_store import PositionStore

        return PositionStore(self._require_session()).position_for(self, stock)


def ensure_student(user: User | None) -> None:
    """Raise ValidationFailure unless the user may own a portfolio"""
    if user is None or not user.is_student:
        raise ValidationFailure("User must be a student", field="user")


@event.listens_for(Session, "before_flush")
def _check_portfolio_owners(session, flush_context, instances):
    """Re-check owner eligibility for portfolios being inserted or updated"""
    with session.no_autoflush:
        for obj in list(session.new) + list(session.dirty):
            if not isinstance(obj, Portfolio):
                continue
            if obj not in session.new and not session.is_modified(
                obj, include_collections=False
            ):
                continue
            if obj.user_id is not None:
                user = session.get(User, obj.user_id)
            else:
                user = obj.user
            ensure_student(user)
