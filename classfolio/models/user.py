"""
User accounts

Tables:
- users: students and teachers taking part in the simulation
"""

import enum
from typing import Optional
from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from classfolio.errors import ValidationFailure
from classfolio.models.base import Base, TimestampMixin, value_enum


class RoleEnum(str, enum.Enum):
    """Role enumeration"""
    STUDENT = "student"
    TEACHER = "teacher"
    ADMIN = "admin"


class User(Base, TimestampMixin):
    """User account

    Only students may own a portfolio; teachers and admins observe.
    """
    __tablename__ = "users"
    __table_args__ = (
        Index("idx_users_username", "username"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    username: Mapped[str] = mapped_column(String(50), unique=True)
    email: Mapped[str] = mapped_column(String(120), unique=True)
    role: Mapped[RoleEnum] = mapped_column(
        value_enum(RoleEnum, length=20),
        default=RoleEnum.STUDENT,
    )

    # Relationships
    portfolio: Mapped[Optional["Portfolio"]] = relationship(
        "Portfolio",
        back_populates="user",
        uselist=False,
        cascade="all, delete-orphan",
    )
    orders: Mapped[list["Order"]] = relationship(
        "Order",
        back_populates="user",
        cascade="all, delete-orphan",
    )

    def __init__(self, **kwargs):
        kwargs.setdefault("role", RoleEnum.STUDENT)
        super().__init__(**kwargs)

    @property
    def is_student(self) -> bool:
        return self.role == RoleEnum.STUDENT

    @validates("username")
    def _validate_username(self, key, value):
        if not value or len(value) < 3 or len(value) > 50:
            raise ValidationFailure("Username must be 3-50 characters", field=key)
        return value

    @validates("email")
    def _validate_email(self, key, value):
        if not value or "@" not in value:
            raise ValidationFailure("Invalid email format", field=key)
        return value
