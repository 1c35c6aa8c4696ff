import json
import os
from functools import lru_cache
from pathlib import Path


DEFAULT_CATEGORIES_BUDGETS = json.dumps(
    {
        "groceries": 300,
        "utilities": 200,
        "transport": 500,
        "entertainment": 150,
        "housing": 500,
        "healthcare": 100,
        "shopping": 250,
        "dining": 200,
        "education": 100,
        "travel": 400,
        "other": 100,
    }
)


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        categories_budgets: str,
        log_level: str,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.categories_budgets = categories_budgets
        self.log_level = log_level


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("EXPENSES_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "expenses.db"
    database_url = os.getenv("EXPENSES_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("EXPENSES_TIMEZONE", "Europe/Berlin")
    categories_budgets = os.getenv(
        "EXPENSES_CATEGORIES_BUDGETS", DEFAULT_CATEGORIES_BUDGETS
    )
    log_level = os.getenv("EXPENSES_LOG_LEVEL", "INFO").upper()
    return Settings(
        database_url=database_url,
        timezone=timezone,
        categories_budgets=categories_budgets,
        log_level=log_level,
    )
