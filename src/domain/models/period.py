from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import UTC, date, datetime, time

from domain.exceptions.billing_exceptions import InvalidPeriodError

EARLIEST_BILLING_YEAR = 2020


@dataclass(frozen=True)
class BillingPeriod:
    """A calendar month being invoiced. Both boundaries are inclusive."""

    month: int
    year: int

    def __post_init__(self) -> None:
        if not 1 <= self.month <= 12:
            raise InvalidPeriodError(self.month, self.year, "month must be 1-12")
        if self.year < EARLIEST_BILLING_YEAR:
            raise InvalidPeriodError(
                self.month, self.year, f"year must be >= {EARLIEST_BILLING_YEAR}"
            )

    @classmethod
    def previous(cls, today: date) -> BillingPeriod:
        """The month before *today*'s month."""
        if today.month == 1:
            return cls(month=12, year=today.year - 1)
        return cls(month=today.month - 1, year=today.year)

    @property
    def period_start(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def period_end(self) -> date:
        return date(self.year, self.month, calendar.monthrange(self.year, self.month)[1])

    @property
    def reference_date(self) -> datetime:
        """Last instant of the period; selects which rules are in effect."""
        return datetime.combine(self.period_end, time.max, tzinfo=UTC)

    def __str__(self) -> str:
        return f"{self.year}-{self.month:02d}"
