import datetime as dt
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class ExpenseIn(BaseModel):
    """Raw create/update payload.

    Business rules are enforced by validate_expense_data so every violation is
    reported at once; the model only checks types.
    """

    model_config = ConfigDict(extra="forbid")

    amount: Decimal = Field(..., allow_inf_nan=False)
    description: str
    date: dt.date
    category: str


class ExpenseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    date: dt.date
    category: str
    amount_cents: int
    description: str


class ExpensePageOut(BaseModel):
    expenses: list[ExpenseOut]
    total: int
    page: int
    page_size: int
    has_next: bool
    has_previous: bool


class SkippedRowOut(BaseModel):
    line_number: int
    reason: str


class ImportOutcomeOut(BaseModel):
    imported_count: int
    skipped_count: int
    skipped: list[SkippedRowOut]


class CategoryBudgetOut(BaseModel):
    name: str
    budget_cents: int


class CategoryAggregateOut(BaseModel):
    category: str
    value_cents: Decimal
    percentage: Decimal


class AlertOut(BaseModel):
    kind: Literal["warning", "success"]
    message: str
    category: Optional[str] = None
    budget_cents: Optional[int] = None
    spent_cents: Optional[int] = None
    overspent_cents: Optional[int] = None


class DashboardOut(BaseModel):
    year: int
    month: int = Field(..., ge=1, le=12)
    available_years: list[int]
    alerts: list[AlertOut]
    total_cents: int
    category_totals: list[CategoryAggregateOut]
    category_averages: list[CategoryAggregateOut]
