import datetime as dt

from sqlalchemy import CheckConstraint, Date, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from budgets import CATEGORY_MAX_LENGTH
from database import Base
from money import Money

DESCRIPTION_MAX_LENGTH = 255


def utc_now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class TimestampMixin:
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )


class Expense(Base, TimestampMixin):
    __tablename__ = "expenses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    category: Mapped[str] = mapped_column(String(CATEGORY_MAX_LENGTH), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(String(DESCRIPTION_MAX_LENGTH), nullable=False)

    __table_args__ = (
        Index("ix_expenses_user_date", "user_id", "date"),
        Index("ix_expenses_user_category_date", "user_id", "category", "date"),
        CheckConstraint("amount_cents > 0", name="ck_expenses_amount_positive"),
    )

    @property
    def money(self) -> Money:
        return Money(self.amount_cents)

    def __repr__(self) -> str:
        return (
            f"Expense(id={self.id}, user_id={self.user_id}, date={self.date}, "
            f"category={self.category!r}, amount_cents={self.amount_cents})"
        )
