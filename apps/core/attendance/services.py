from __future__ import annotations

import calendar
import logging
from datetime import timedelta

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import DatabaseError, transaction
from django.utils import timezone

from apps.core.hr.models import Staff
from apps.core.students.models import Student
from apps.core.students.services import active_students, students_by_ids
from apps.core.utils.exceptions import PartialWriteFailure, UnknownPerson
from apps.core.utils.reporting import date_range, month_bounds

from .models import AttendanceRecord, AttendanceRule, Holiday, StudentAttendance, TeacherAttendance
from .resolver import (
    PERSON_STUDENT,
    PERSON_TEACHER,
    PERSON_TYPES,
    AttendancePunch,
    AttendanceRules,
    format_duration,
    resolve,
    summarize,
    working_duration,
)


logger = logging.getLogger(__name__)

MANUAL_STATUSES = {choice for choice, _ in AttendanceRecord.MANUAL_STATUS_CHOICES}


def _student_edit_days() -> int:
    return int(getattr(settings, 'STUDENT_ATTENDANCE_EDIT_WINDOW_DAYS', 2))


def _ensure_person_type(person_type):
    if person_type not in PERSON_TYPES:
        raise ValidationError({'person_type': f'Unknown person type {person_type!r}.'})


def _record_model(person_type):
    return StudentAttendance if person_type == PERSON_STUDENT else TeacherAttendance


def _person_field(person_type):
    return 'student' if person_type == PERSON_STUDENT else 'staff'


def attendance_rule_for(school):
    """Stored rule row, or an unsaved one carrying the configured defaults."""
    rule = AttendanceRule.objects.filter(school=school).first()
    if rule is None:
        rule = AttendanceRule(school=school)
        rule.early_leave_tolerance_minutes = int(
            getattr(settings, 'ATTENDANCE_EARLY_LEAVE_TOLERANCE_MINUTES', 0)
        )
    return rule


def rules_for(*, school, person_type, date_from=None, date_to=None) -> AttendanceRules:
    """Snapshot of the school's attendance configuration for one resolver pass."""
    _ensure_person_type(person_type)
    rule = attendance_rule_for(school)

    holidays = Holiday.objects.for_school(school).filter(is_active=True)
    if date_from:
        holidays = holidays.filter(date__gte=date_from)
    if date_to:
        holidays = holidays.filter(date__lte=date_to)

    prefix = 'student' if person_type == PERSON_STUDENT else 'teacher'
    return AttendanceRules(
        in_time=getattr(rule, f'{prefix}_in_time'),
        late_time=getattr(rule, f'{prefix}_late_time'),
        out_time=getattr(rule, f'{prefix}_out_time'),
        weekend_days=frozenset(rule.weekend_days or []),
        holiday_dates=frozenset(holidays.values_list('date', flat=True)),
        early_leave_tolerance_minutes=rule.early_leave_tolerance_minutes,
    )


def punch_from_record(record, person_type) -> AttendancePunch:
    return AttendancePunch(
        person_id=record.person_id,
        person_type=person_type,
        date=record.date,
        in_time=record.in_time,
        out_time=record.out_time,
        manual_status=record.status or None,
        is_manual=record.is_manual,
    )


def persons_for(*, school, person_type, school_class=None, section=None):
    _ensure_person_type(person_type)
    if person_type == PERSON_STUDENT:
        return list(active_students(school=school, school_class=school_class, section=section))
    return list(Staff.objects.for_school(school).filter(is_active=True).order_by('employee_id', 'id'))


def persons_by_ids(*, school, person_type, person_ids):
    _ensure_person_type(person_type)
    if person_type == PERSON_STUDENT:
        return students_by_ids(school=school, student_ids=person_ids)

    ids = [int(person_id) for person_id in person_ids]
    found = Staff.objects.for_school(school).in_bulk(ids)
    for person_id in ids:
        if person_id not in found:
            raise UnknownPerson('teacher', person_id)
    return [found[person_id] for person_id in ids]


def _person_label(person):
    if isinstance(person, Student):
        return person.admission_number, person.full_name
    return person.employee_id, person.full_name


def _record_defaults(school, person_type, person):
    defaults = {}
    if person_type == PERSON_STUDENT:
        defaults = {
            'session': person.session,
            'school_class': person.current_class,
            'section': person.current_section,
        }
    return defaults


@transaction.atomic
def record_punch(*, school, person_type, person, punch_at, device_sn=''):
    """
    Folds one device punch into the person's record for that day. The
    earliest punch becomes ``in_time`` and the latest ``out_time``; a single
    punch leaves ``out_time`` empty. Manual statuses are kept.
    """
    _ensure_person_type(person_type)
    if person.school_id != school.id:
        raise UnknownPerson(person_type, person.id)

    model = _record_model(person_type)
    punch_date = punch_at.date()
    punch_time = punch_at.time().replace(microsecond=0)

    record, created = model.objects.select_for_update().get_or_create(
        school=school,
        date=punch_date,
        **{_person_field(person_type): person},
        defaults={
            'in_time': punch_time,
            'device_sn': device_sn,
            **_record_defaults(school, person_type, person),
        },
    )

    if not created:
        times = sorted({value for value in (record.in_time, record.out_time, punch_time) if value is not None})
        record.in_time = times[0]
        record.out_time = times[-1] if len(times) > 1 else None
        if device_sn:
            record.device_sn = device_sn
        record.save(update_fields=['in_time', 'out_time', 'device_sn', 'updated_at'])

    logger.info(
        'Recorded %s punch for %s %s at %s',
        'first' if created else 'additional',
        person_type,
        person.id,
        punch_at,
    )
    return record


def record_device_punch(*, school, device_user_id, punch_at, device_sn=''):
    """Matches a device user id to a teacher first, then a student."""
    staff = Staff.objects.for_school(school).filter(device_user_id=device_user_id).first()
    if staff is not None:
        return record_punch(school=school, person_type=PERSON_TEACHER, person=staff, punch_at=punch_at, device_sn=device_sn)

    student = Student.objects.for_school(school).filter(device_user_id=device_user_id).first()
    if student is not None:
        return record_punch(school=school, person_type=PERSON_STUDENT, person=student, punch_at=punch_at, device_sn=device_sn)

    raise UnknownPerson('device user', device_user_id)


def _ensure_editable(record, person_type, allow_override=False):
    if allow_override or person_type != PERSON_STUDENT:
        return
    editable_until = timezone.localtime(record.created_at).date() + timedelta(days=_student_edit_days())
    if timezone.localdate() > editable_until:
        raise ValidationError('Student attendance edit window has expired.')


@transaction.atomic
def mark_attendance(
    *,
    school,
    person_type,
    person,
    target_date,
    status,
    marked_by=None,
    reason='',
    allow_override=False,
):
    """Manual entry; authoritative over whatever the device recorded."""
    _ensure_person_type(person_type)
    if status not in MANUAL_STATUSES:
        raise ValidationError({'status': f'Unsupported attendance status {status!r}.'})
    if target_date > timezone.localdate():
        raise ValidationError({'date': 'Cannot mark attendance for a future date.'})
    if person.school_id != school.id:
        raise UnknownPerson(person_type, person.id)

    model = _record_model(person_type)
    record = model.objects.select_for_update().filter(
        school=school,
        date=target_date,
        **{_person_field(person_type): person},
    ).first()

    if record is None:
        record = model(
            school=school,
            date=target_date,
            **{_person_field(person_type): person},
            **_record_defaults(school, person_type, person),
        )
    else:
        _ensure_editable(record, person_type, allow_override=allow_override)

    record.status = status
    record.is_manual = True
    record.reason = (reason or '')[:255]
    record.marked_by = marked_by
    record.full_clean()
    record.save()
    return record


def mark_all(
    *,
    school,
    person_type,
    person_ids,
    target_date,
    status,
    marked_by=None,
    reason='',
    allow_override=False,
):
    """
    Applies one status to every person in the roster, all or nothing.

    Unknown ids are rejected before anything is written. If any single write
    fails the whole batch is rolled back and ``PartialWriteFailure`` is raised.
    """
    persons = persons_by_ids(school=school, person_type=person_type, person_ids=person_ids)

    current = None
    try:
        with transaction.atomic():
            records = []
            for person in persons:
                current = person
                records.append(
                    mark_attendance(
                        school=school,
                        person_type=person_type,
                        person=person,
                        target_date=target_date,
                        status=status,
                        marked_by=marked_by,
                        reason=reason,
                        allow_override=allow_override,
                    )
                )
    except (ValidationError, DatabaseError) as exc:
        logger.exception(
            'Bulk attendance for %s %s on %s rolled back at %s',
            len(persons),
            person_type,
            target_date,
            current.id if current else None,
        )
        messages = exc.messages if isinstance(exc, ValidationError) else [str(exc)]
        raise PartialWriteFailure(
            f"Attendance was not saved for anyone: {person_type} {current.id if current else '-'} failed ({'; '.join(messages)}).",
            failed_person_id=current.id if current else None,
        ) from exc

    logger.info('Marked %s %s records %s on %s', len(records), person_type, status, target_date)
    return records


def _records_by_person(records):
    return {record.person_id: record for record in records}


def daily_attendance_sheet(*, school, person_type, target_date, school_class=None, section=None):
    persons = persons_for(school=school, person_type=person_type, school_class=school_class, section=section)
    rules = rules_for(school=school, person_type=person_type, date_from=target_date, date_to=target_date)

    model = _record_model(person_type)
    records = _records_by_person(
        model.objects.for_school(school).filter(
            date=target_date,
            **{f'{_person_field(person_type)}__in': persons},
        )
    )

    rows = []
    statuses = []
    for person in persons:
        record = records.get(person.id)
        punch = punch_from_record(record, person_type) if record else None
        status = resolve(punch, target_date, rules)
        statuses.append(status)
        code, name = _person_label(person)
        rows.append({
            'person_id': person.id,
            'code': code,
            'name': name,
            'in_time': record.in_time if record else None,
            'out_time': record.out_time if record else None,
            'working_hours': format_duration(working_duration(punch)),
            'status': status,
            'is_manual': bool(record and record.is_manual),
            'reason': record.reason if record else '',
        })

    return {
        'date': target_date,
        'person_type': person_type,
        'rows': rows,
        'summary': summarize(statuses),
    }


def _month_statuses(*, school, person_type, persons, year, month):
    start_date, end_date = month_bounds(year, month)
    rules = rules_for(school=school, person_type=person_type, date_from=start_date, date_to=end_date)
    model = _record_model(person_type)

    records = {}
    for record in model.objects.for_school(school).filter(
        date__gte=start_date,
        date__lte=end_date,
        **{f'{_person_field(person_type)}__in': persons},
    ):
        records[(record.person_id, record.date)] = record

    # Days after today have not happened yet and stay out of the month view.
    days = list(date_range(start_date, min(end_date, timezone.localdate())))
    by_person = {}
    for person in persons:
        statuses = []
        for day in days:
            record = records.get((person.id, day))
            punch = punch_from_record(record, person_type) if record else None
            statuses.append((day, resolve(punch, day, rules), record))
        by_person[person.id] = statuses
    return days, by_person


def monthly_calendar(*, school, person_type, person, year, month):
    if person.school_id != school.id:
        raise UnknownPerson(person_type, person.id)
    _, by_person = _month_statuses(school=school, person_type=person_type, persons=[person], year=year, month=month)

    days = []
    for day, status, record in by_person[person.id]:
        punch = punch_from_record(record, person_type) if record else None
        days.append({
            'date': day,
            'weekday': calendar.day_abbr[day.weekday()],
            'status': status,
            'in_time': record.in_time if record else None,
            'out_time': record.out_time if record else None,
            'working_hours': format_duration(working_duration(punch)),
        })

    code, name = _person_label(person)
    return {
        'person_id': person.id,
        'code': code,
        'name': name,
        'year': year,
        'month': month,
        'days': days,
        'summary': summarize(entry['status'] for entry in days),
    }


def monthly_summary(*, school, person_type, year, month, school_class=None, section=None):
    persons = persons_for(school=school, person_type=person_type, school_class=school_class, section=section)
    _, by_person = _month_statuses(school=school, person_type=person_type, persons=persons, year=year, month=month)

    rows = []
    for person in persons:
        code, name = _person_label(person)
        rows.append({
            'person_id': person.id,
            'code': code,
            'name': name,
            **summarize(status for _, status, _ in by_person[person.id]),
        })

    return {
        'person_type': person_type,
        'year': year,
        'month': month,
        'rows': rows,
    }
