from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import Select, distinct, extract, func, select
from sqlalchemy.orm import Session, SessionTransaction

from models import Expense
from money import Money
from periods import month_period


@dataclass(frozen=True)
class ExpenseCriteria:
    user_id: Optional[int] = None
    year: Optional[int] = None
    month: Optional[int] = None


class ExpenseRepository:
    """Persistence boundary for expenses.

    Everything above this class talks to storage through it, including the
    aggregate reads used by the summary and alert services.
    """

    def __init__(self, session: Session) -> None:
        self.session = session
        self._savepoint: Optional[SessionTransaction] = None

    def find(self, expense_id: int) -> Optional[Expense]:
        return self.session.get(Expense, expense_id)

    def save(self, expense: Expense) -> Expense:
        if expense.id is None:
            self.session.add(expense)
        self.session.flush()
        return expense

    def delete(self, expense_id: int) -> None:
        expense = self.session.get(Expense, expense_id)
        if expense is not None:
            self.session.delete(expense)
            self.session.flush()

    def begin_transaction(self) -> None:
        """Start a unit of work owned by this repository.

        On a session that already has work in flight this is a savepoint, so
        the following commit or rollback only covers what happened after it.
        """
        if self.session.in_transaction():
            self._savepoint = self.session.begin_nested()
        else:
            self.session.begin()

    def commit(self) -> None:
        if self._savepoint is None:
            self.session.commit()
            return
        self._savepoint.commit()
        self._savepoint = None

    def rollback(self) -> None:
        savepoint, self._savepoint = self._savepoint, None
        if savepoint is None:
            self.session.rollback()
        elif savepoint is self.session.get_nested_transaction():
            savepoint.rollback()

    @staticmethod
    def _apply(stmt: Select, criteria: ExpenseCriteria) -> Select:
        if criteria.user_id is not None:
            stmt = stmt.where(Expense.user_id == criteria.user_id)
        if criteria.year is not None and criteria.month is not None:
            period = month_period(criteria.year, criteria.month)
            stmt = stmt.where(Expense.date.between(period.start, period.end))
        elif criteria.year is not None:
            stmt = stmt.where(
                Expense.date.between(
                    date(criteria.year, 1, 1), date(criteria.year, 12, 31)
                )
            )
        elif criteria.month is not None:
            stmt = stmt.where(extract("month", Expense.date) == criteria.month)
        return stmt

    def find_by(
        self, criteria: ExpenseCriteria, offset: int = 0, limit: int = 50
    ) -> list[Expense]:
        stmt = (
            self._apply(select(Expense), criteria)
            .order_by(Expense.date.desc(), Expense.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(self.session.scalars(stmt).all())

    def count_by(self, criteria: ExpenseCriteria) -> int:
        stmt = self._apply(select(func.count(Expense.id)), criteria)
        return int(self.session.execute(stmt).scalar_one())

    def sum_amounts(self, criteria: ExpenseCriteria) -> Money:
        stmt = self._apply(
            select(func.coalesce(func.sum(Expense.amount_cents), 0)), criteria
        )
        return Money(int(self.session.execute(stmt).scalar_one() or 0))

    def sum_amounts_by_category(self, criteria: ExpenseCriteria) -> dict[str, Money]:
        stmt = self._apply(
            select(
                Expense.category,
                func.coalesce(func.sum(Expense.amount_cents), 0).label("total"),
            ),
            criteria,
        ).group_by(Expense.category)
        return {
            row.category: Money(int(row.total or 0))
            for row in self.session.execute(stmt)
        }

    def average_amounts_by_category(
        self, criteria: ExpenseCriteria
    ) -> dict[str, Decimal]:
        """Mean amount per category in cents, from integer SUM and COUNT."""
        stmt = self._apply(
            select(
                Expense.category,
                func.sum(Expense.amount_cents).label("total"),
                func.count(Expense.id).label("n"),
            ),
            criteria,
        ).group_by(Expense.category)
        averages: dict[str, Decimal] = {}
        for row in self.session.execute(stmt):
            count = int(row.n or 0)
            if count == 0:
                continue
            averages[row.category] = Decimal(int(row.total)) / Decimal(count)
        return averages

    def list_expenditure_years(
        self, user_id: int, today: Optional[date] = None
    ) -> list[int]:
        year = extract("year", Expense.date)
        rows = self.session.execute(
            select(distinct(year)).where(Expense.user_id == user_id)
        ).scalars()
        years = {int(value) for value in rows if value is not None}
        years.add((today or date.today()).year)
        return sorted(years, reverse=True)
