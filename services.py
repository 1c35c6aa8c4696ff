from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import BinaryIO, Iterable, Optional, Union
from zoneinfo import ZoneInfo

from budgets import CategoryBudgetTable, get_budget_table, normalize_category
from config import get_settings
from csv_utils import RowError, parse_line, split_lines
from models import DESCRIPTION_MAX_LENGTH, Expense
from money import Money
from repository import ExpenseCriteria, ExpenseRepository
from schemas import ExpenseIn

logger = logging.getLogger(__name__)

# upper bound of the INTEGER amount column on every supported backend
MAX_AMOUNT = Money(2**31 - 1).to_decimal()
DUPLICATE_ROW = "duplicate row"
ONE_PLACE = Decimal("0.1")


class ExpenseValidationError(ValueError):
    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        super().__init__(", ".join(self.errors))


class ExpenseNotFound(ValueError):
    pass


class CSVImportFailed(RuntimeError):
    pass


def local_today() -> date:
    return datetime.now(ZoneInfo(get_settings().timezone)).date()


def expense_data_errors(
    amount: Decimal,
    description: str,
    expense_date: date,
    category: str,
    categories: Iterable[str],
    *,
    today: Optional[date] = None,
) -> list[str]:
    """Every rule the expense data breaks, in a fixed order."""
    today = today or local_today()
    errors: list[str] = []

    if amount > MAX_AMOUNT:
        errors.append("Amount is too large")
    elif amount <= 0 or Money.from_decimal(amount).cents <= 0:
        errors.append("Amount must be greater than 0")

    description = description.strip()
    if not description:
        errors.append("Description cannot be empty")
    elif len(description) > DESCRIPTION_MAX_LENGTH:
        errors.append(
            f"Description cannot be longer than {DESCRIPTION_MAX_LENGTH} characters"
        )

    if expense_date > today:
        errors.append("Date cannot be in the future")

    if category not in categories:
        errors.append("Invalid category selected")

    return errors


def validate_expense_data(
    amount: Decimal,
    description: str,
    expense_date: date,
    category: str,
    categories: Iterable[str],
    *,
    today: Optional[date] = None,
) -> None:
    errors = expense_data_errors(
        amount, description, expense_date, category, categories, today=today
    )
    if errors:
        raise ExpenseValidationError(errors)


@dataclass
class ExpensePage:
    expenses: list[Expense]
    total: int
    page: int
    page_size: int

    @property
    def has_next(self) -> bool:
        return self.page * self.page_size < self.total

    @property
    def has_previous(self) -> bool:
        return self.page > 1


class ExpenseService:
    def __init__(
        self,
        repository: ExpenseRepository,
        budgets: Optional[CategoryBudgetTable] = None,
        *,
        today: Optional[date] = None,
    ) -> None:
        self.repository = repository
        self.budgets = budgets or get_budget_table()
        self.today = today

    def list(
        self, user_id: int, year: int, month: int, page: int = 1, page_size: int = 20
    ) -> ExpensePage:
        page = max(page, 1)
        page_size = min(max(page_size, 1), 100)
        criteria = ExpenseCriteria(user_id=user_id, year=year, month=month)
        offset = (page - 1) * page_size
        return ExpensePage(
            expenses=self.repository.find_by(criteria, offset, page_size),
            total=self.repository.count_by(criteria),
            page=page,
            page_size=page_size,
        )

    def get(self, user_id: int, expense_id: int) -> Expense:
        expense = self.repository.find(expense_id)
        if expense is None or expense.user_id != user_id:
            raise ExpenseNotFound("Expense not found")
        return expense

    def _validated(self, data: ExpenseIn) -> tuple[str, str, Money]:
        category = normalize_category(data.category)
        validate_expense_data(
            data.amount,
            data.description,
            data.date,
            category,
            self.budgets,
            today=self.today,
        )
        return category, data.description.strip(), Money.from_decimal(data.amount)

    def create(self, user_id: int, data: ExpenseIn) -> Expense:
        category, description, amount = self._validated(data)
        expense = Expense(
            user_id=user_id,
            date=data.date,
            category=category,
            amount_cents=amount.cents,
            description=description,
        )
        self.repository.save(expense)
        self.repository.commit()
        logger.info(
            f"expense_created: user_id={user_id} id={expense.id} category={category}"
        )
        return expense

    def update(self, user_id: int, expense_id: int, data: ExpenseIn) -> Expense:
        expense = self.get(user_id, expense_id)
        category, description, amount = self._validated(data)
        expense.date = data.date
        expense.category = category
        expense.amount_cents = amount.cents
        expense.description = description
        self.repository.save(expense)
        self.repository.commit()
        return expense

    def delete(self, user_id: int, expense_id: int) -> None:
        self.get(user_id, expense_id)
        self.repository.delete(expense_id)
        self.repository.commit()
        logger.info(f"expense_deleted: user_id={user_id} id={expense_id}")

    def years(self, user_id: int) -> list[int]:
        return self.repository.list_expenditure_years(
            user_id, today=self.today or local_today()
        )


@dataclass(frozen=True)
class SkippedRow:
    line_number: int
    reason: str


@dataclass
class ImportOutcome:
    imported_count: int = 0
    skipped: list[SkippedRow] = field(default_factory=list)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)

    @property
    def skip_reasons(self) -> list[tuple[int, str]]:
        return [(row.line_number, row.reason) for row in self.skipped]


class CSVImportService:
    """Imports `date,amount,description,category` lines in one transaction.

    Bad rows are skipped and reported. Anything else that goes wrong rolls
    the whole call back and raises CSVImportFailed.
    """

    def __init__(
        self,
        repository: ExpenseRepository,
        budgets: Optional[CategoryBudgetTable] = None,
        *,
        today: Optional[date] = None,
    ) -> None:
        self.repository = repository
        self.budgets = budgets or get_budget_table()
        self.today = today

    @staticmethod
    def _read(stream: Union[bytes, BinaryIO]) -> str:
        try:
            raw = stream if isinstance(stream, bytes) else stream.read()
            return raw.decode("utf-8-sig")
        except (OSError, UnicodeDecodeError) as exc:
            raise CSVImportFailed(f"Could not read CSV upload: {exc}") from exc

    def import_csv(self, user_id: int, stream: Union[bytes, BinaryIO]) -> ImportOutcome:
        content = self._read(stream)
        today = self.today or local_today()
        outcome = ImportOutcome()
        accepted: set[tuple[str, str, str, str]] = set()

        self.repository.begin_transaction()
        try:
            for line_number, line in split_lines(content):
                reason = self._import_line(user_id, line_number, line, accepted, today)
                if reason is None:
                    outcome.imported_count += 1
                    continue
                outcome.skipped.append(SkippedRow(line_number, reason))
                logger.debug(
                    f"csv_import_skip: user_id={user_id} line={line_number} reason={reason}"
                )
            self.repository.commit()
        except Exception as exc:
            self.repository.rollback()
            logger.exception(f"csv_import_failed: user_id={user_id}")
            raise CSVImportFailed(f"CSV import failed: {exc}") from exc

        logger.info(
            f"csv_import: user_id={user_id} imported={outcome.imported_count} "
            f"skipped={outcome.skipped_count}"
        )
        return outcome

    def _import_line(
        self,
        user_id: int,
        line_number: int,
        line: str,
        accepted: set[tuple[str, str, str, str]],
        today: date,
    ) -> Optional[str]:
        """Persist one line; returns the skip reason, or None when imported."""
        parsed = parse_line(line_number, line)
        if isinstance(parsed, RowError):
            return parsed.reason

        if parsed.category not in self.budgets:
            reason = f"unknown category '{parsed.category}'"
            suggestion = self.budgets.suggest(parsed.category)
            if suggestion:
                reason += f" (did you mean '{suggestion}'?)"
            return reason

        if parsed.dedup_key in accepted:
            return DUPLICATE_ROW

        errors = expense_data_errors(
            parsed.amount,
            parsed.description,
            parsed.date,
            parsed.category,
            self.budgets,
            today=today,
        )
        if errors:
            return ", ".join(errors)

        expense = Expense(
            user_id=user_id,
            date=parsed.date,
            category=parsed.category,
            amount_cents=Money.from_decimal(parsed.amount).cents,
            description=parsed.description,
        )
        self.repository.save(expense)
        accepted.add(parsed.dedup_key)
        return None


@dataclass(frozen=True)
class CategoryAggregate:
    category: str
    value: Union[Money, Decimal]
    percentage: Decimal

    @property
    def cents(self) -> Decimal:
        if isinstance(self.value, Money):
            return Decimal(self.value.cents)
        return self.value

    @property
    def major_units(self) -> Decimal:
        return self.cents / 100


def _percentage(part: Decimal, whole: Decimal) -> Decimal:
    if whole <= 0:
        return Decimal("0.0")
    return (part * 100 / whole).quantize(ONE_PLACE, rounding=ROUND_HALF_UP)


def _ranked(aggregates: list[CategoryAggregate]) -> list[CategoryAggregate]:
    return sorted(aggregates, key=lambda agg: (-agg.cents, agg.category))


class MonthlySummaryService:
    def __init__(self, repository: ExpenseRepository) -> None:
        self.repository = repository

    def compute_total(self, user_id: int, year: int, month: int) -> Money:
        criteria = ExpenseCriteria(user_id=user_id, year=year, month=month)
        return self.repository.sum_amounts(criteria)

    def compute_per_category_totals(
        self, user_id: int, year: int, month: int
    ) -> list[CategoryAggregate]:
        criteria = ExpenseCriteria(user_id=user_id, year=year, month=month)
        totals = self.repository.sum_amounts_by_category(criteria)
        grand_total = Decimal(sum(amount.cents for amount in totals.values()))
        return _ranked(
            [
                CategoryAggregate(
                    category=category,
                    value=amount,
                    percentage=_percentage(Decimal(amount.cents), grand_total),
                )
                for category, amount in totals.items()
            ]
        )

    def compute_per_category_averages(
        self, user_id: int, year: int, month: int
    ) -> list[CategoryAggregate]:
        """Mean expense per category; percentages are relative to the largest mean."""
        criteria = ExpenseCriteria(user_id=user_id, year=year, month=month)
        averages = self.repository.average_amounts_by_category(criteria)
        max_average = max(averages.values(), default=Decimal(0))
        return _ranked(
            [
                CategoryAggregate(
                    category=category,
                    value=average,
                    percentage=_percentage(average, max_average),
                )
                for category, average in averages.items()
            ]
        )


class AlertKind(str, Enum):
    warning = "warning"
    success = "success"


@dataclass(frozen=True)
class Alert:
    kind: AlertKind
    message: str
    category: Optional[str] = None
    budget: Optional[Money] = None
    spent: Optional[Money] = None
    overspent: Optional[Money] = None


WITHIN_BUDGET_MESSAGE = "Looking good! You're within budget for this month."


class AlertService:
    def __init__(
        self,
        repository: ExpenseRepository,
        budgets: Optional[CategoryBudgetTable] = None,
    ) -> None:
        self.repository = repository
        self.budgets = budgets or get_budget_table()

    def generate(self, user_id: int, year: int, month: int) -> list[Alert]:
        criteria = ExpenseCriteria(user_id=user_id, year=year, month=month)
        totals = self.repository.sum_amounts_by_category(criteria)

        alerts: list[Alert] = []
        for category, budget in self.budgets.items():
            spent = totals.get(category, Money.zero())
            if spent > budget:
                overspent = spent - budget
                alerts.append(
                    Alert(
                        kind=AlertKind.warning,
                        message=f"{category} budget exceeded by {overspent}",
                        category=category,
                        budget=budget,
                        spent=spent,
                        overspent=overspent,
                    )
                )

        if not alerts:
            alerts.append(Alert(kind=AlertKind.success, message=WITHIN_BUDGET_MESSAGE))
        return alerts
