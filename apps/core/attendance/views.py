from django.contrib.auth.decorators import login_required
from django.core.exceptions import ValidationError
from django.shortcuts import get_object_or_404
from django.views.decorators.http import require_POST

from apps.core.academics.models import SchoolClass, Section
from apps.core.users.audit import log_audit_event
from apps.core.users.decorators import role_required
from apps.core.utils.exceptions import PartialWriteFailure
from apps.core.utils.exports import export_response
from apps.core.utils.http import form_error_response, report_response, validation_error_response

from .forms import (
    AttendanceRuleForm,
    DailyAttendanceFilterForm,
    DevicePunchForm,
    HolidayForm,
    MarkAllAttendanceForm,
    MarkAttendanceForm,
    MonthlyAttendanceFilterForm,
)
from .models import Holiday
from .services import (
    attendance_rule_for,
    daily_attendance_sheet,
    mark_all,
    mark_attendance,
    monthly_calendar,
    monthly_summary,
    persons_by_ids,
    record_device_punch,
)


ATTENDANCE_ROLES = ['schooladmin', 'teacher', 'staff']
ATTENDANCE_ADMIN_ROLES = ['schooladmin']


def _class_filters(school, filters):
    school_class = None
    section = None
    if filters.get('school_class'):
        school_class = get_object_or_404(SchoolClass, pk=filters['school_class'], school=school)
    if filters.get('section'):
        section = get_object_or_404(Section, pk=filters['section'], school_class__school=school)
    return school_class, section


def _can_override(user):
    return user.role == 'schooladmin'


@login_required
@role_required(ATTENDANCE_ROLES)
def attendance_daily(request):
    school = request.user.school
    form = DailyAttendanceFilterForm(request.GET)
    if not form.is_valid():
        return form_error_response(form)

    filters = form.cleaned_data
    school_class, section = _class_filters(school, filters)
    sheet = daily_attendance_sheet(
        school=school,
        person_type=filters['person_type'],
        target_date=filters['date'],
        school_class=school_class,
        section=section,
    )

    exported = export_response(
        title=f"{school.name} - Daily Attendance ({filters['person_type']})",
        subtitle=f"{filters['date']:%d %b %Y}",
        headers=['ID', 'Name', 'In', 'Out', 'Hours', 'Status', 'Reason'],
        rows=[
            [
                row['code'],
                row['name'],
                row['in_time'] or '',
                row['out_time'] or '',
                row['working_hours'] or '',
                row['status'].value,
                row['reason'],
            ]
            for row in sheet['rows']
        ],
        filename_base=f"daily_attendance_{filters['date']:%Y%m%d}",
        export_type=filters.get('export'),
    )
    return exported or report_response(sheet)


@login_required
@role_required(ATTENDANCE_ROLES)
def attendance_monthly_summary(request):
    school = request.user.school
    form = MonthlyAttendanceFilterForm(request.GET)
    if not form.is_valid():
        return form_error_response(form)

    filters = form.cleaned_data
    school_class, section = _class_filters(school, filters)
    summary = monthly_summary(
        school=school,
        person_type=filters['person_type'],
        year=filters['year'],
        month=filters['month'],
        school_class=school_class,
        section=section,
    )

    exported = export_response(
        title=f"{school.name} - Monthly Attendance ({filters['person_type']})",
        subtitle=f"{filters['month']:02d}/{filters['year']}",
        headers=['ID', 'Name', 'Present', 'Late', 'Half Day', 'Absent', 'Excused', 'No Record', 'Working Days', '%'],
        rows=[
            [
                row['code'],
                row['name'],
                row['present'],
                row['late'],
                row['half_day'],
                row['absent'],
                row['excused'],
                row['no_record'],
                row['working_days'],
                row['attendance_percentage'],
            ]
            for row in summary['rows']
        ],
        filename_base=f"monthly_attendance_{filters['year']}_{filters['month']:02d}",
        export_type=filters.get('export'),
    )
    return exported or report_response(summary)


@login_required
@role_required(ATTENDANCE_ROLES)
def attendance_calendar(request):
    school = request.user.school
    form = MonthlyAttendanceFilterForm(request.GET)
    if not form.is_valid():
        return form_error_response(form)

    filters = form.cleaned_data
    if not filters.get('person'):
        return validation_error_response(ValidationError({'person': 'Select a person.'}))

    try:
        person = persons_by_ids(school=school, person_type=filters['person_type'], person_ids=[filters['person']])[0]
    except ValidationError as exc:
        return validation_error_response(exc, status=404)

    return report_response(
        monthly_calendar(
            school=school,
            person_type=filters['person_type'],
            person=person,
            year=filters['year'],
            month=filters['month'],
        )
    )


@login_required
@role_required(ATTENDANCE_ROLES)
@require_POST
def attendance_mark(request):
    school = request.user.school
    form = MarkAttendanceForm(request.POST)
    if not form.is_valid():
        return form_error_response(form)

    data = form.cleaned_data
    try:
        person = persons_by_ids(school=school, person_type=data['person_type'], person_ids=[data['person']])[0]
        record = mark_attendance(
            school=school,
            person_type=data['person_type'],
            person=person,
            target_date=data['date'],
            status=data['status'],
            marked_by=request.user,
            reason=data.get('reason', ''),
            allow_override=_can_override(request.user),
        )
    except ValidationError as exc:
        return validation_error_response(exc)

    log_audit_event(
        request=request,
        action='attendance.marked',
        school=school,
        target=record,
        details=f"Type={data['person_type']}, Person={person.id}, Date={record.date}, Status={record.status}",
    )
    return report_response(
        {
            'id': record.id,
            'person_id': record.person_id,
            'date': record.date,
            'status': record.status,
            'is_manual': record.is_manual,
        },
        status=201,
    )


@login_required
@role_required(ATTENDANCE_ROLES)
@require_POST
def attendance_mark_all(request):
    school = request.user.school
    form = MarkAllAttendanceForm(request.POST)
    if not form.is_valid():
        return form_error_response(form)

    data = form.cleaned_data
    try:
        records = mark_all(
            school=school,
            person_type=data['person_type'],
            person_ids=data['person_ids'],
            target_date=data['date'],
            status=data['status'],
            marked_by=request.user,
            reason=data.get('reason', ''),
            allow_override=_can_override(request.user),
        )
    except PartialWriteFailure as exc:
        return validation_error_response(exc, status=409)
    except ValidationError as exc:
        return validation_error_response(exc)

    log_audit_event(
        request=request,
        action='attendance.marked_all',
        school=school,
        details=f"Type={data['person_type']}, Count={len(records)}, Date={data['date']}, Status={data['status']}",
    )
    return report_response({'marked': len(records), 'date': data['date'], 'status': data['status']}, status=201)


@login_required
@role_required(ATTENDANCE_ADMIN_ROLES)
@require_POST
def attendance_device_punch(request):
    school = request.user.school
    form = DevicePunchForm(request.POST)
    if not form.is_valid():
        return form_error_response(form)

    data = form.cleaned_data
    try:
        record = record_device_punch(
            school=school,
            device_user_id=data['device_user_id'],
            punch_at=data['punch_at'],
            device_sn=data.get('device_sn', ''),
        )
    except ValidationError as exc:
        return validation_error_response(exc, status=404)

    log_audit_event(
        request=request,
        action='attendance.device_punch',
        school=school,
        target=record,
        details=f"DeviceUser={data['device_user_id']}, At={data['punch_at']}",
    )
    return report_response(
        {
            'id': record.id,
            'person_id': record.person_id,
            'date': record.date,
            'in_time': record.in_time,
            'out_time': record.out_time,
        },
        status=201,
    )


@login_required
@role_required(ATTENDANCE_ADMIN_ROLES)
def attendance_rule_settings(request):
    school = request.user.school
    rule = attendance_rule_for(school)

    if request.method == 'POST':
        form = AttendanceRuleForm(request.POST, instance=rule)
        if not form.is_valid():
            return form_error_response(form)
        rule = form.save()
        log_audit_event(
            request=request,
            action='attendance.rules_updated',
            school=school,
            target=rule,
            details=f"Weekend={rule.weekend_days}",
        )

    return report_response(
        {
            'teacher_in_time': rule.teacher_in_time,
            'teacher_late_time': rule.teacher_late_time,
            'teacher_out_time': rule.teacher_out_time,
            'student_in_time': rule.student_in_time,
            'student_late_time': rule.student_late_time,
            'student_out_time': rule.student_out_time,
            'weekend_days': rule.weekend_days,
            'early_leave_tolerance_minutes': rule.early_leave_tolerance_minutes,
        }
    )


@login_required
@role_required(ATTENDANCE_ROLES)
def attendance_holiday_list(request):
    school = request.user.school

    if request.method == 'POST':
        if request.user.role not in ATTENDANCE_ADMIN_ROLES:
            return report_response({'detail': 'You do not have access to this page.'}, status=403)
        form = HolidayForm(request.POST, school=school)
        if not form.is_valid():
            return form_error_response(form)
        holiday = form.save()
        log_audit_event(
            request=request,
            action='attendance.holiday_created',
            school=school,
            target=holiday,
            details=f"Date={holiday.date}",
        )
        return report_response({'id': holiday.id, 'name': holiday.name, 'date': holiday.date}, status=201)

    holidays = Holiday.objects.for_school(school).filter(is_active=True)
    return report_response(
        {
            'rows': [
                {'id': holiday.id, 'name': holiday.name, 'date': holiday.date, 'type': holiday.type}
                for holiday in holidays
            ]
        }
    )
