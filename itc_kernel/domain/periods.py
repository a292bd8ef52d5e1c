"""
Periods -- Monthly return period keys and Indian financial years.

Responsibility:
    Parses and formats the ``MM-YYYY`` period key the register is keyed by,
    and derives the April-March financial year a date or period belongs to.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - A PeriodKey always has 1 <= month <= 12 and a four-digit year.
    - Keys order chronologically (year first), never lexically on the
      ``MM-YYYY`` text.

Failure modes:
    - InvalidPeriodError for anything that is not ``MM-YYYY``.
"""

from __future__ import annotations

import calendar
import re
from dataclasses import dataclass
from datetime import date

from itc_kernel.exceptions import InvalidPeriodError

_PERIOD_RE = re.compile(r"^(\d{2})-(\d{4})$")

# Indian financial years run April to March.
FINANCIAL_YEAR_START_MONTH = 4


@dataclass(frozen=True, slots=True, order=True)
class PeriodKey:
    """One calendar month, as used for monthly return filing."""

    year: int
    month: int

    def __post_init__(self) -> None:
        if not 1 <= self.month <= 12 or not 1000 <= self.year <= 9999:
            raise InvalidPeriodError(f"{self.month:02d}-{self.year}")

    @classmethod
    def parse(cls, value: str) -> PeriodKey:
        if not isinstance(value, str):
            raise InvalidPeriodError(repr(value))
        m = _PERIOD_RE.match(value.strip())
        if m is None:
            raise InvalidPeriodError(value)
        return cls(year=int(m.group(2)), month=int(m.group(1)))

    @classmethod
    def from_date(cls, d: date) -> PeriodKey:
        return cls(year=d.year, month=d.month)

    @property
    def start_date(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def end_date(self) -> date:
        return date(
            self.year, self.month, calendar.monthrange(self.year, self.month)[1]
        )

    @property
    def financial_year(self) -> str:
        return financial_year_label(self.start_date)

    def contains(self, d: date) -> bool:
        return self.start_date <= d <= self.end_date

    def next(self) -> PeriodKey:
        if self.month == 12:
            return PeriodKey(self.year + 1, 1)
        return PeriodKey(self.year, self.month + 1)

    def __str__(self) -> str:
        return f"{self.month:02d}-{self.year}"


def financial_year_start_year(d: date) -> int:
    """Calendar year in which the financial year containing ``d`` began."""
    return d.year if d.month >= FINANCIAL_YEAR_START_MONTH else d.year - 1


def financial_year_label(d: date) -> str:
    """Label such as ``2024-25`` for any date from April 2024 to March 2025."""
    start = financial_year_start_year(d)
    return f"{start}-{(start + 1) % 100:02d}"


def financial_year_end(d: date) -> date:
    """31 March closing the financial year that contains ``d``."""
    return date(financial_year_start_year(d) + 1, 3, 31)


def add_months_end(d: date, months: int) -> date:
    """Last day of the month ``months`` after the month of ``d``."""
    index = d.year * 12 + (d.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    return date(year, month, calendar.monthrange(year, month)[1])


def periods_between(start: PeriodKey, end: PeriodKey) -> list[PeriodKey]:
    """Inclusive list of periods from start to end; empty when start > end."""
    result: list[PeriodKey] = []
    current = start
    while current <= end:
        result.append(current)
        current = current.next()
    return result
