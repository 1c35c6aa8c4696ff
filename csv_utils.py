import csv
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Iterator, Union

from budgets import normalize_category

EXPECTED_COLUMNS = 4
DATE_FORMATS = ("%Y-%m-%d", "%d.%m.%Y")
INVALID_COLUMN_COUNT = "invalid column count"


@dataclass(frozen=True)
class CSVRow:
    line_number: int
    raw_date: str
    raw_amount: str
    date: date
    amount: Decimal
    description: str
    category: str

    @property
    def dedup_key(self) -> tuple[str, str, str, str]:
        return (self.raw_date, self.description, self.raw_amount, self.category)


@dataclass(frozen=True)
class RowError:
    line_number: int
    reason: str


ParsedLine = Union[CSVRow, RowError]


def split_lines(content: str) -> Iterator[tuple[int, str]]:
    """Yield (line_number, line) for every non-blank line, numbered from 1."""
    for idx, line in enumerate(content.splitlines(), start=1):
        if line.strip():
            yield idx, line


def parse_date(value: str) -> date:
    value = value.strip()
    for fmt in DATE_FORMATS[:-1]:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    return datetime.strptime(value, DATE_FORMATS[-1]).date()


def parse_amount(value: str) -> Decimal:
    clean = value.strip().replace("€", "").replace("$", "").replace(" ", "")
    try:
        amount = Decimal(clean)
    except InvalidOperation as exc:
        raise ValueError(f"Invalid amount '{value.strip()}'") from exc
    if not amount.is_finite():
        raise ValueError(f"Invalid amount '{value.strip()}'")
    return amount


def parse_line(line_number: int, line: str) -> ParsedLine:
    """Parse one `date,amount,description,category` record.

    Row defects come back as a RowError; nothing here raises for bad input.
    """
    try:
        fields = next(csv.reader([line]))
    except csv.Error as exc:
        return RowError(line_number, str(exc))
    if len(fields) != EXPECTED_COLUMNS:
        return RowError(line_number, INVALID_COLUMN_COUNT)

    raw_date, raw_amount, raw_description, raw_category = (f.strip() for f in fields)
    try:
        parsed_date = parse_date(raw_date)
        amount = parse_amount(raw_amount)
    except ValueError as exc:
        return RowError(line_number, str(exc))

    return CSVRow(
        line_number=line_number,
        raw_date=raw_date,
        raw_amount=raw_amount,
        date=parsed_date,
        amount=amount,
        description=raw_description,
        category=normalize_category(raw_category),
    )
