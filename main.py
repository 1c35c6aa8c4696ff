import logging
from typing import Iterator, Optional

from fastapi import Depends, FastAPI, File, Header, HTTPException, Query, UploadFile
from fastapi.responses import Response
from sqlalchemy.orm import Session

from budgets import CategoryBudgetTable, get_budget_table
from config import get_settings
from database import init_db, session_scope
from periods import current_month
from repository import ExpenseRepository
from schemas import (
    AlertOut,
    CategoryAggregateOut,
    CategoryBudgetOut,
    DashboardOut,
    ExpenseIn,
    ExpenseOut,
    ExpensePageOut,
    ImportOutcomeOut,
    SkippedRowOut,
)
from services import (
    Alert,
    AlertService,
    CategoryAggregate,
    CSVImportFailed,
    CSVImportService,
    ExpenseNotFound,
    ExpenseService,
    ExpenseValidationError,
    MonthlySummaryService,
    local_today,
)

logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Expense Tracker")


@app.on_event("startup")
def startup_event():
    # fail fast on a malformed budget table
    table = get_budget_table()
    logger.info(f"startup: categories={len(table)}")
    init_db()


def get_db() -> Iterator[Session]:
    with session_scope() as db:
        yield db


def get_repository(db: Session = Depends(get_db)) -> ExpenseRepository:
    return ExpenseRepository(db)


def get_budgets() -> CategoryBudgetTable:
    return get_budget_table()


def get_owner_id(x_user_id: int = Header(..., gt=0)) -> int:
    return x_user_id


def _aggregate_out(aggregate: CategoryAggregate) -> CategoryAggregateOut:
    return CategoryAggregateOut(
        category=aggregate.category,
        value_cents=aggregate.cents,
        percentage=aggregate.percentage,
    )


def _alert_out(alert: Alert) -> AlertOut:
    return AlertOut(
        kind=alert.kind.value,
        message=alert.message,
        category=alert.category,
        budget_cents=alert.budget.cents if alert.budget is not None else None,
        spent_cents=alert.spent.cents if alert.spent is not None else None,
        overspent_cents=alert.overspent.cents if alert.overspent is not None else None,
    )


@app.get("/categories", response_model=list[CategoryBudgetOut])
def list_categories(budgets: CategoryBudgetTable = Depends(get_budgets)):
    return [
        CategoryBudgetOut(name=name, budget_cents=budget.cents)
        for name, budget in budgets.items()
    ]


@app.get("/expenses", response_model=ExpensePageOut)
def list_expenses(
    year: Optional[int] = Query(None, ge=1970, le=3000),
    month: Optional[int] = Query(None, ge=1, le=12),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    user_id: int = Depends(get_owner_id),
    repository: ExpenseRepository = Depends(get_repository),
    budgets: CategoryBudgetTable = Depends(get_budgets),
):
    today = local_today()
    result = ExpenseService(repository, budgets).list(
        user_id, year or today.year, month or today.month, page, page_size
    )
    return ExpensePageOut(
        expenses=[ExpenseOut.model_validate(e) for e in result.expenses],
        total=result.total,
        page=result.page,
        page_size=result.page_size,
        has_next=result.has_next,
        has_previous=result.has_previous,
    )


@app.post("/expenses", response_model=ExpenseOut, status_code=201)
def create_expense(
    data: ExpenseIn,
    user_id: int = Depends(get_owner_id),
    repository: ExpenseRepository = Depends(get_repository),
    budgets: CategoryBudgetTable = Depends(get_budgets),
):
    try:
        expense = ExpenseService(repository, budgets).create(user_id, data)
    except ExpenseValidationError as exc:
        raise HTTPException(status_code=422, detail={"errors": exc.errors}) from exc
    return ExpenseOut.model_validate(expense)


@app.put("/expenses/{expense_id}", response_model=ExpenseOut)
def update_expense(
    expense_id: int,
    data: ExpenseIn,
    user_id: int = Depends(get_owner_id),
    repository: ExpenseRepository = Depends(get_repository),
    budgets: CategoryBudgetTable = Depends(get_budgets),
):
    try:
        expense = ExpenseService(repository, budgets).update(user_id, expense_id, data)
    except ExpenseNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ExpenseValidationError as exc:
        raise HTTPException(status_code=422, detail={"errors": exc.errors}) from exc
    return ExpenseOut.model_validate(expense)


@app.delete("/expenses/{expense_id}", status_code=204)
def delete_expense(
    expense_id: int,
    user_id: int = Depends(get_owner_id),
    repository: ExpenseRepository = Depends(get_repository),
    budgets: CategoryBudgetTable = Depends(get_budgets),
):
    try:
        ExpenseService(repository, budgets).delete(user_id, expense_id)
    except ExpenseNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return Response(status_code=204)


@app.post("/expenses/import", response_model=ImportOutcomeOut)
async def import_expenses(
    file: UploadFile = File(...),
    user_id: int = Depends(get_owner_id),
    repository: ExpenseRepository = Depends(get_repository),
    budgets: CategoryBudgetTable = Depends(get_budgets),
):
    content = await file.read()
    try:
        outcome = CSVImportService(repository, budgets).import_csv(user_id, content)
    except CSVImportFailed as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return ImportOutcomeOut(
        imported_count=outcome.imported_count,
        skipped_count=outcome.skipped_count,
        skipped=[
            SkippedRowOut(line_number=row.line_number, reason=row.reason)
            for row in outcome.skipped
        ],
    )


@app.get("/dashboard", response_model=DashboardOut)
def dashboard(
    year: Optional[int] = Query(None, ge=1970, le=3000),
    month: Optional[int] = Query(None, ge=1, le=12),
    user_id: int = Depends(get_owner_id),
    repository: ExpenseRepository = Depends(get_repository),
    budgets: CategoryBudgetTable = Depends(get_budgets),
):
    running = current_month(local_today())
    selected_year = year or running.year
    selected_month = month or running.month

    summary = MonthlySummaryService(repository)
    # alerts always describe the running month, whatever month is being browsed
    alerts = AlertService(repository, budgets).generate(
        user_id, running.year, running.month
    )
    return DashboardOut(
        year=selected_year,
        month=selected_month,
        available_years=ExpenseService(repository, budgets).years(user_id),
        alerts=[_alert_out(alert) for alert in alerts],
        total_cents=summary.compute_total(user_id, selected_year, selected_month).cents,
        category_totals=[
            _aggregate_out(agg)
            for agg in summary.compute_per_category_totals(
                user_id, selected_year, selected_month
            )
        ],
        category_averages=[
            _aggregate_out(agg)
            for agg in summary.compute_per_category_averages(
                user_id, selected_year, selected_month
            )
        ],
    )


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
