"""
Attendance status resolution.

Pure functions over immutable values: no database access and no settings
lookups. Callers build ``AttendanceRules`` for a school and hand in one
``AttendancePunch`` (or ``None``) per person per day.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from enum import Enum


PERSON_STUDENT = 'student'
PERSON_TEACHER = 'teacher'
PERSON_TYPES = (PERSON_STUDENT, PERSON_TEACHER)


class AttendanceStatus(str, Enum):
    PRESENT = 'present'
    LATE = 'late'
    ABSENT = 'absent'
    EXCUSED = 'excused'
    HOLIDAY = 'holiday'
    WEEKEND = 'weekend'
    HALF_DAY = 'half_day'
    NO_RECORD = 'no_record'


ATTENDED_STATUSES = frozenset({AttendanceStatus.PRESENT, AttendanceStatus.LATE, AttendanceStatus.HALF_DAY})
NON_WORKING_STATUSES = frozenset({AttendanceStatus.HOLIDAY, AttendanceStatus.WEEKEND})

_ANCHOR = date(2000, 1, 1)


@dataclass(frozen=True)
class AttendancePunch:
    person_id: int
    person_type: str
    date: date
    in_time: time | None = None
    out_time: time | None = None
    manual_status: str | None = None
    is_manual: bool = False

    def __post_init__(self):
        if self.person_type not in PERSON_TYPES:
            raise ValueError(f'Unknown person type {self.person_type!r}.')


@dataclass(frozen=True)
class AttendanceRules:
    in_time: time
    late_time: time
    out_time: time
    weekend_days: frozenset = field(default_factory=frozenset)
    holiday_dates: frozenset = field(default_factory=frozenset)
    early_leave_tolerance_minutes: int = 0

    def is_holiday(self, target_date) -> bool:
        return target_date in self.holiday_dates

    def is_weekend(self, target_date) -> bool:
        return target_date.weekday() in self.weekend_days

    def is_working_day(self, target_date) -> bool:
        return not (self.is_holiday(target_date) or self.is_weekend(target_date))

    def early_leave_cutoff(self) -> time:
        scheduled = datetime.combine(_ANCHOR, self.out_time)
        cutoff = scheduled - timedelta(minutes=self.early_leave_tolerance_minutes)
        if cutoff.date() != _ANCHOR:
            return time.min
        return cutoff.time()


def resolve(punch: AttendancePunch | None, target_date, rules: AttendanceRules) -> AttendanceStatus:
    # Manual excusal outranks the calendar.
    if punch is not None and punch.is_manual and punch.manual_status == AttendanceStatus.EXCUSED.value:
        return AttendanceStatus.EXCUSED

    if rules.is_holiday(target_date):
        return AttendanceStatus.HOLIDAY
    if rules.is_weekend(target_date):
        return AttendanceStatus.WEEKEND

    if punch is None:
        return AttendanceStatus.NO_RECORD

    if punch.is_manual and punch.manual_status:
        return AttendanceStatus(punch.manual_status)

    if punch.in_time is None:
        return AttendanceStatus.ABSENT

    if punch.in_time > rules.late_time:
        return AttendanceStatus.LATE

    # Students are tracked by check-in only.
    if (
        punch.person_type == PERSON_TEACHER
        and punch.out_time is not None
        and punch.out_time < rules.early_leave_cutoff()
    ):
        return AttendanceStatus.HALF_DAY

    return AttendanceStatus.PRESENT


def working_duration(punch: AttendancePunch | None) -> timedelta | None:
    """Time between check-in and check-out; ``None`` when either is missing or out precedes in."""
    if punch is None or punch.in_time is None or punch.out_time is None:
        return None
    if punch.out_time < punch.in_time:
        return None
    return datetime.combine(_ANCHOR, punch.out_time) - datetime.combine(_ANCHOR, punch.in_time)


def format_duration(duration: timedelta | None) -> str | None:
    if duration is None:
        return None
    total_minutes = int(duration.total_seconds()) // 60
    return f'{total_minutes // 60}:{total_minutes % 60:02d}'


def summarize(statuses) -> dict:
    """Counts per status; ``no_record`` stays separate from ``absent``."""
    counts = {status.value: 0 for status in AttendanceStatus}
    for status in statuses:
        counts[AttendanceStatus(status).value] += 1

    working_days = sum(
        count for key, count in counts.items()
        if AttendanceStatus(key) not in NON_WORKING_STATUSES
    )
    attended = sum(counts[status.value] for status in ATTENDED_STATUSES)
    counts['working_days'] = working_days
    counts['attended'] = attended
    counts['attendance_percentage'] = round(attended * 100 / working_days, 2) if working_days else 0.0
    return counts
