from __future__ import annotations

import json
from decimal import Decimal
from functools import lru_cache
from types import MappingProxyType
from typing import Iterator, Mapping, Optional

from rapidfuzz.distance import Levenshtein

from config import get_settings
from money import Money

MAX_SUGGESTION_DISTANCE = 2
CATEGORY_MAX_LENGTH = 50


class BudgetConfigError(ValueError):
    pass


def normalize_category(name: str) -> str:
    return name.strip().lower()


def _unique_keys(pairs: list[tuple[str, object]]) -> dict[str, object]:
    data: dict[str, object] = {}
    for key, value in pairs:
        if key in data:
            raise BudgetConfigError(f"Category '{key}' is defined more than once")
        data[key] = value
    return data


class CategoryBudgetTable:
    """Budget ceiling per category, in definition order.

    The keys are the full set of valid expense categories. Tables are built
    once per process and never mutated.
    """

    __slots__ = ("_budgets",)

    def __init__(self, budgets: Mapping[str, Money]) -> None:
        ordered: dict[str, Money] = {}
        for raw_name, budget in budgets.items():
            if not isinstance(raw_name, str) or not raw_name.strip():
                raise BudgetConfigError("Category names must be non-empty strings")
            if not isinstance(budget, Money):
                raise BudgetConfigError(f"Budget for '{raw_name}' must be Money")
            if budget.cents < 0:
                raise BudgetConfigError(f"Budget for '{raw_name}' must not be negative")
            name = normalize_category(raw_name)
            if len(name) > CATEGORY_MAX_LENGTH:
                raise BudgetConfigError(
                    f"Category '{name}' is longer than {CATEGORY_MAX_LENGTH} characters"
                )
            if name in ordered:
                raise BudgetConfigError(f"Category '{name}' is defined more than once")
            ordered[name] = budget
        if not ordered:
            raise BudgetConfigError("At least one category budget is required")
        object.__setattr__(self, "_budgets", MappingProxyType(ordered))

    def __setattr__(self, name: str, value: object) -> None:
        raise AttributeError("CategoryBudgetTable is immutable")

    @classmethod
    def from_json(cls, raw: str) -> CategoryBudgetTable:
        try:
            data = json.loads(
                raw,
                parse_float=Decimal,
                parse_int=Decimal,
                object_pairs_hook=_unique_keys,
            )
        except json.JSONDecodeError as exc:
            raise BudgetConfigError(f"Category budgets are not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise BudgetConfigError("Category budgets must be a JSON object")

        budgets: dict[str, Money] = {}
        for name, value in data.items():
            # bools come back as bool even with parse_int, reject them here
            if not isinstance(value, Decimal):
                raise BudgetConfigError(f"Budget for '{name}' must be a number")
            try:
                budgets[name] = Money.from_decimal(value)
            except ValueError as exc:
                raise BudgetConfigError(f"Budget for '{name}' is invalid: {exc}") from exc
        return cls(budgets)

    @property
    def categories(self) -> tuple[str, ...]:
        return tuple(self._budgets)

    def budget_for(self, category: str) -> Money:
        try:
            return self._budgets[normalize_category(category)]
        except KeyError:
            raise KeyError(f"Unknown category '{category}'") from None

    def items(self) -> Iterator[tuple[str, Money]]:
        return iter(self._budgets.items())

    def suggest(self, category: str) -> Optional[str]:
        """Closest known category for a misspelling, if exactly one is close."""
        needle = normalize_category(category)
        best_distance: Optional[int] = None
        best: list[str] = []
        for name in self._budgets:
            dist = int(Levenshtein.distance(needle, name))
            if best_distance is None or dist < best_distance:
                best_distance = dist
                best = [name]
            elif dist == best_distance:
                best.append(name)
        if best_distance is None or best_distance > MAX_SUGGESTION_DISTANCE:
            return None
        if len(best) > 1:
            return None
        return best[0]

    def __contains__(self, category: object) -> bool:
        if not isinstance(category, str):
            return False
        return normalize_category(category) in self._budgets

    def __iter__(self) -> Iterator[str]:
        return iter(self._budgets)

    def __len__(self) -> int:
        return len(self._budgets)

    def __repr__(self) -> str:
        inner = ", ".join(f"{name}={budget}" for name, budget in self._budgets.items())
        return f"CategoryBudgetTable({inner})"


@lru_cache(maxsize=1)
def get_budget_table() -> CategoryBudgetTable:
    return CategoryBudgetTable.from_json(get_settings().categories_budgets)
