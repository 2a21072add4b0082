from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP

from .exceptions import InvalidPeriod


ZERO = Decimal('0.00')


def to_decimal(value) -> Decimal:
    if isinstance(value, float):
        raise TypeError('Money values must not be floats.')
    return Decimal(str(value or '0'))


def quantize(value) -> Decimal:
    return to_decimal(value).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)


def money_sum(values) -> Decimal:
    return quantize(sum((to_decimal(value) for value in values), Decimal('0')))


def month_bounds(year, month):
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def date_range(start_date, end_date):
    current = start_date
    while current <= end_date:
        yield current
        current += timedelta(days=1)


@dataclass(frozen=True)
class ReportPeriod:
    start_date: date
    end_date: date
    account_id: int | None = None

    def __post_init__(self):
        if self.start_date > self.end_date:
            raise InvalidPeriod(self.start_date, self.end_date)

    @classmethod
    def for_month(cls, year, month, account_id=None):
        start, end = month_bounds(year, month)
        return cls(start_date=start, end_date=end, account_id=account_id)

    def contains(self, target_date) -> bool:
        return self.start_date <= target_date <= self.end_date

    def days(self):
        return date_range(self.start_date, self.end_date)

    def as_filters(self):
        return {
            'start_date': self.start_date.isoformat(),
            'end_date': self.end_date.isoformat(),
            'account_id': self.account_id,
        }


@dataclass(frozen=True)
class DataInconsistency:
    """Non-fatal data-quality signal carried on a report view-model."""

    code: str
    message: str
    amount: Decimal = ZERO

    def as_dict(self):
        return {'code': self.code, 'message': self.message, 'amount': self.amount}
