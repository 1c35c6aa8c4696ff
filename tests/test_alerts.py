from datetime import date

from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from budgets import CategoryBudgetTable
from database import Base
from models import Expense
from money import Money
from repository import ExpenseRepository
from services import WITHIN_BUDGET_MESSAGE, AlertKind, AlertService


def make_session() -> Session:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return Session(engine)


def seed(session: Session, rows: list[tuple[int, date, str, int]]) -> None:
    repository = ExpenseRepository(session)
    for user_id, day, category, cents in rows:
        repository.save(
            Expense(
                user_id=user_id,
                date=day,
                category=category,
                amount_cents=cents,
                description="Item",
            )
        )
    repository.commit()


def test_overspent_category_gets_a_warning() -> None:
    budgets = CategoryBudgetTable.from_json('{"groceries": 300, "transport": 500}')
    with make_session() as session:
        seed(
            session,
            [
                (1, date(2024, 3, 2), "groceries", 20_000),
                (1, date(2024, 3, 20), "groceries", 15_000),
                (1, date(2024, 3, 5), "transport", 20_000),
            ],
        )
        alerts = AlertService(ExpenseRepository(session), budgets).generate(1, 2024, 3)

        assert len(alerts) == 1
        [alert] = alerts
        assert alert.kind == AlertKind.warning
        assert alert.category == "groceries"
        assert alert.budget == Money(30_000)
        assert alert.spent == Money(35_000)
        assert alert.overspent == Money(5_000)
        assert alert.message == "groceries budget exceeded by 50.00"


def test_warnings_follow_table_order() -> None:
    budgets = CategoryBudgetTable.from_json('{"transport": 10, "groceries": 10}')
    with make_session() as session:
        seed(
            session,
            [
                (1, date(2024, 3, 2), "groceries", 5_000),
                (1, date(2024, 3, 2), "transport", 1_001),
            ],
        )
        alerts = AlertService(ExpenseRepository(session), budgets).generate(1, 2024, 3)

        assert [a.category for a in alerts] == ["transport", "groceries"]
        assert [a.overspent for a in alerts] == [Money(1), Money(4_000)]


def test_spending_exactly_the_budget_is_not_overspending() -> None:
    budgets = CategoryBudgetTable.from_json('{"groceries": 300}')
    with make_session() as session:
        seed(session, [(1, date(2024, 3, 2), "groceries", 30_000)])
        alerts = AlertService(ExpenseRepository(session), budgets).generate(1, 2024, 3)

        assert [(a.kind, a.message) for a in alerts] == [
            (AlertKind.success, WITHIN_BUDGET_MESSAGE)
        ]


def test_there_is_always_at_least_one_alert() -> None:
    budgets = CategoryBudgetTable.from_json('{"groceries": 0}')
    with make_session() as session:
        seed(
            session,
            [
                (2, date(2024, 3, 2), "groceries", 90_000),
                (1, date(2024, 2, 29), "groceries", 90_000),
            ],
        )
        alerts = AlertService(ExpenseRepository(session), budgets).generate(1, 2024, 3)

        assert len(alerts) == 1
        assert alerts[0].kind == AlertKind.success
        assert alerts[0].category is None
