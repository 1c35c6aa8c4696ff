from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from budgets import CategoryBudgetTable
from database import Base
from models import Expense
from repository import ExpenseCriteria, ExpenseRepository
from schemas import ExpenseIn
from services import (
    ExpenseNotFound,
    ExpenseService,
    ExpenseValidationError,
    validate_expense_data,
)

BUDGETS = CategoryBudgetTable.from_json(
    '{"groceries": 300, "transport": 500, "dining": 200}'
)
TODAY = date(2024, 6, 30)


def make_session() -> Session:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return Session(engine)


def add_expense(
    session: Session,
    user_id: int,
    day: date,
    category: str,
    amount_cents: int,
    description: str = "Item",
) -> Expense:
    expense = Expense(
        user_id=user_id,
        date=day,
        category=category,
        amount_cents=amount_cents,
        description=description,
    )
    ExpenseRepository(session).save(expense)
    session.commit()
    return expense


def test_validation_collects_every_violation_in_order() -> None:
    with pytest.raises(ExpenseValidationError) as excinfo:
        validate_expense_data(
            Decimal("0"), "   ", date(2024, 7, 1), "casino", BUDGETS, today=TODAY
        )
    assert excinfo.value.errors == [
        "Amount must be greater than 0",
        "Description cannot be empty",
        "Date cannot be in the future",
        "Invalid category selected",
    ]
    assert str(excinfo.value) == (
        "Amount must be greater than 0, Description cannot be empty, "
        "Date cannot be in the future, Invalid category selected"
    )


def test_validation_accepts_today_and_rejects_amounts_rounding_to_zero() -> None:
    validate_expense_data(Decimal("0.01"), "Gum", TODAY, "groceries", BUDGETS, today=TODAY)
    with pytest.raises(ExpenseValidationError) as excinfo:
        validate_expense_data(
            Decimal("0.004"), "Gum", TODAY, "groceries", BUDGETS, today=TODAY
        )
    assert excinfo.value.errors == ["Amount must be greater than 0"]


def test_validation_rejects_amounts_beyond_column_range() -> None:
    with pytest.raises(ExpenseValidationError) as excinfo:
        validate_expense_data(
            Decimal("1e12"), "Yacht", TODAY, "transport", BUDGETS, today=TODAY
        )
    assert excinfo.value.errors == ["Amount is too large"]


def test_validation_limits_description_to_column_width() -> None:
    validate_expense_data(
        Decimal("1"), " " + "x" * 255 + " ", TODAY, "dining", BUDGETS, today=TODAY
    )
    with pytest.raises(ExpenseValidationError) as excinfo:
        validate_expense_data(
            Decimal("1"), "x" * 256, date(2024, 7, 1), "dining", BUDGETS, today=TODAY
        )
    assert excinfo.value.errors == [
        "Description cannot be longer than 255 characters",
        "Date cannot be in the future",
    ]


def test_create_rejects_overlong_description() -> None:
    with make_session() as session:
        service = ExpenseService(ExpenseRepository(session), BUDGETS, today=TODAY)
        with pytest.raises(ExpenseValidationError):
            service.create(
                1,
                ExpenseIn(
                    amount=Decimal("5"),
                    description="x" * 300,
                    date=TODAY,
                    category="dining",
                ),
            )
        assert service.list(1, 2024, 6).total == 0


def test_create_normalizes_and_persists() -> None:
    with make_session() as session:
        service = ExpenseService(ExpenseRepository(session), BUDGETS, today=TODAY)
        expense = service.create(
            3,
            ExpenseIn(
                amount=Decimal("12.345"),
                description="  Weekly shop ",
                date=date(2024, 6, 1),
                category=" Groceries",
            ),
        )
        assert expense.id is not None
        assert expense.user_id == 3
        assert expense.category == "groceries"
        assert expense.description == "Weekly shop"
        assert expense.amount_cents == 1_235


def test_create_rejects_invalid_data_without_writing() -> None:
    with make_session() as session:
        repository = ExpenseRepository(session)
        service = ExpenseService(repository, BUDGETS, today=TODAY)
        with pytest.raises(ExpenseValidationError):
            service.create(
                1,
                ExpenseIn(
                    amount=Decimal("-3"),
                    description="Refund",
                    date=date(2024, 6, 1),
                    category="groceries",
                ),
            )
        assert repository.count_by(ExpenseCriteria(user_id=1)) == 0


def test_update_and_delete_respect_ownership() -> None:
    with make_session() as session:
        repository = ExpenseRepository(session)
        service = ExpenseService(repository, BUDGETS, today=TODAY)
        expense = add_expense(session, 1, date(2024, 6, 2), "dining", 2_000, "Pizza")

        with pytest.raises(ExpenseNotFound):
            service.get(2, expense.id)
        with pytest.raises(ExpenseNotFound):
            service.delete(2, expense.id)

        updated = service.update(
            1,
            expense.id,
            ExpenseIn(
                amount=Decimal("25"),
                description="Pizza and drinks",
                date=date(2024, 6, 3),
                category="dining",
            ),
        )
        assert updated.amount_cents == 2_500
        assert repository.find(expense.id).description == "Pizza and drinks"

        service.delete(1, expense.id)
        assert repository.find(expense.id) is None
        with pytest.raises(ExpenseNotFound):
            service.get(1, expense.id)


def test_list_paginates_newest_first() -> None:
    with make_session() as session:
        for day in range(1, 6):
            add_expense(session, 1, date(2024, 5, day), "groceries", 100 * day)
        add_expense(session, 1, date(2024, 4, 30), "groceries", 999)
        add_expense(session, 2, date(2024, 5, 10), "groceries", 999)

        service = ExpenseService(ExpenseRepository(session), BUDGETS, today=TODAY)
        first = service.list(1, 2024, 5, page=1, page_size=2)
        assert [e.date.day for e in first.expenses] == [5, 4]
        assert first.total == 5
        assert first.has_next
        assert not first.has_previous

        last = service.list(1, 2024, 5, page=3, page_size=2)
        assert [e.date.day for e in last.expenses] == [1]
        assert not last.has_next
        assert last.has_previous


def test_repository_aggregates_by_criteria() -> None:
    with make_session() as session:
        add_expense(session, 1, date(2024, 1, 5), "groceries", 10_000)
        add_expense(session, 1, date(2024, 1, 20), "groceries", 20_001)
        add_expense(session, 1, date(2024, 1, 31), "dining", 5_000)
        add_expense(session, 1, date(2024, 2, 1), "dining", 7_000)
        add_expense(session, 1, date(2023, 1, 15), "dining", 1_000)
        add_expense(session, 2, date(2024, 1, 15), "groceries", 50_000)

        repository = ExpenseRepository(session)
        january = ExpenseCriteria(user_id=1, year=2024, month=1)

        assert repository.count_by(january) == 3
        assert repository.sum_amounts(january).cents == 35_001
        assert {k: v.cents for k, v in repository.sum_amounts_by_category(january).items()} == {
            "groceries": 30_001,
            "dining": 5_000,
        }
        averages = repository.average_amounts_by_category(january)
        assert averages["groceries"] == Decimal(30_001) / Decimal(2)
        assert averages["dining"] == Decimal(5_000)

        assert repository.count_by(ExpenseCriteria(user_id=1, year=2024)) == 4
        assert repository.count_by(ExpenseCriteria(user_id=1, month=1)) == 4
        assert repository.sum_amounts(ExpenseCriteria(user_id=3)).cents == 0


def test_expenditure_years_always_include_current_year() -> None:
    with make_session() as session:
        add_expense(session, 1, date(2021, 3, 1), "transport", 100)
        add_expense(session, 1, date(2023, 3, 1), "transport", 100)
        add_expense(session, 2, date(2019, 3, 1), "transport", 100)

        repository = ExpenseRepository(session)
        assert repository.list_expenditure_years(1, today=TODAY) == [2024, 2023, 2021]
        assert repository.list_expenditure_years(5, today=TODAY) == [2024]
