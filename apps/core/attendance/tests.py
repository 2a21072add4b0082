from datetime import date, datetime, time, timedelta
from unittest import mock

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.test import SimpleTestCase, TestCase
from django.urls import reverse
from django.utils import timezone

from apps.core.academic_sessions.models import AcademicSession
from apps.core.academics.models import SchoolClass, Section
from apps.core.hr.models import Staff
from apps.core.schools.models import School
from apps.core.students.models import Student
from apps.core.utils.exceptions import PartialWriteFailure, UnknownPerson

from .models import AttendanceRule, Holiday, StudentAttendance, TeacherAttendance
from .resolver import (
    PERSON_STUDENT,
    PERSON_TEACHER,
    AttendancePunch,
    AttendanceRules,
    AttendanceStatus,
    format_duration,
    resolve,
    summarize,
    working_duration,
)
from .services import (
    daily_attendance_sheet,
    mark_all,
    mark_attendance,
    monthly_calendar,
    monthly_summary,
    record_device_punch,
    rules_for,
)


TUESDAY = date(2024, 3, 12)
SATURDAY = date(2024, 3, 16)
INDEPENDENCE_DAY = date(2024, 3, 26)


def _rules(**overrides):
    values = {
        'in_time': time(8, 45),
        'late_time': time(9, 0),
        'out_time': time(15, 30),
        'weekend_days': frozenset({4, 5}),
        'holiday_dates': frozenset({INDEPENDENCE_DAY}),
    }
    values.update(overrides)
    return AttendanceRules(**values)


def _punch(target_date=TUESDAY, person_type=PERSON_STUDENT, **values):
    return AttendancePunch(person_id=1, person_type=person_type, date=target_date, **values)


class AttendanceResolverTests(SimpleTestCase):
    def test_check_in_at_late_time_is_present(self):
        self.assertEqual(resolve(_punch(in_time=time(9, 0)), TUESDAY, _rules()), AttendanceStatus.PRESENT)

    def test_check_in_one_minute_after_late_time_is_late(self):
        self.assertEqual(resolve(_punch(in_time=time(9, 1)), TUESDAY, _rules()), AttendanceStatus.LATE)

    def test_weekend_outranks_punches(self):
        punch = _punch(target_date=SATURDAY, in_time=time(8, 50))
        self.assertEqual(resolve(punch, SATURDAY, _rules()), AttendanceStatus.WEEKEND)

    def test_holiday_outranks_weekend_and_punches(self):
        rules = _rules(weekend_days=frozenset({INDEPENDENCE_DAY.weekday()}))
        punch = _punch(target_date=INDEPENDENCE_DAY, in_time=time(8, 50))
        self.assertEqual(resolve(punch, INDEPENDENCE_DAY, rules), AttendanceStatus.HOLIDAY)

    def test_manual_excused_outranks_holiday(self):
        punch = _punch(target_date=INDEPENDENCE_DAY, manual_status='excused', is_manual=True)
        self.assertEqual(resolve(punch, INDEPENDENCE_DAY, _rules()), AttendanceStatus.EXCUSED)

    def test_missing_punch_on_working_day_is_no_record(self):
        self.assertEqual(resolve(None, TUESDAY, _rules()), AttendanceStatus.NO_RECORD)

    def test_record_without_check_in_is_absent(self):
        self.assertEqual(resolve(_punch(), TUESDAY, _rules()), AttendanceStatus.ABSENT)

    def test_manual_status_outranks_device_times(self):
        punch = _punch(in_time=time(8, 30), manual_status='absent', is_manual=True)
        self.assertEqual(resolve(punch, TUESDAY, _rules()), AttendanceStatus.ABSENT)

    def test_teacher_leaving_early_is_half_day(self):
        rules = _rules(out_time=time(16, 30))
        punch = _punch(person_type=PERSON_TEACHER, in_time=time(8, 40), out_time=time(14, 0))
        self.assertEqual(resolve(punch, TUESDAY, rules), AttendanceStatus.HALF_DAY)

    def test_early_leave_tolerance(self):
        rules = _rules(out_time=time(16, 30), early_leave_tolerance_minutes=15)
        punch = _punch(person_type=PERSON_TEACHER, in_time=time(8, 40), out_time=time(16, 20))
        self.assertEqual(resolve(punch, TUESDAY, rules), AttendanceStatus.PRESENT)

    def test_student_leaving_early_stays_present(self):
        punch = _punch(in_time=time(8, 40), out_time=time(11, 0))
        self.assertEqual(resolve(punch, TUESDAY, _rules()), AttendanceStatus.PRESENT)

    def test_resolution_is_repeatable(self):
        punch = _punch(in_time=time(9, 5))
        rules = _rules()
        self.assertEqual(resolve(punch, TUESDAY, rules), resolve(punch, TUESDAY, rules))

    def test_early_leave_cutoff_does_not_wrap_past_midnight(self):
        rules = _rules(out_time=time(0, 10), early_leave_tolerance_minutes=30)
        self.assertEqual(rules.early_leave_cutoff(), time.min)

    def test_working_duration(self):
        punch = _punch(in_time=time(8, 40), out_time=time(16, 45))
        self.assertEqual(working_duration(punch), timedelta(hours=8, minutes=5))
        self.assertEqual(format_duration(working_duration(punch)), '8:05')

    def test_working_duration_is_none_when_out_precedes_in(self):
        self.assertIsNone(working_duration(_punch(in_time=time(9, 0), out_time=time(8, 0))))
        self.assertIsNone(working_duration(_punch(in_time=time(9, 0))))
        self.assertIsNone(format_duration(None))

    def test_summary_keeps_no_record_apart_from_absent(self):
        summary = summarize([
            AttendanceStatus.PRESENT,
            AttendanceStatus.LATE,
            AttendanceStatus.ABSENT,
            AttendanceStatus.NO_RECORD,
            AttendanceStatus.WEEKEND,
            AttendanceStatus.HOLIDAY,
        ])

        self.assertEqual(summary['absent'], 1)
        self.assertEqual(summary['no_record'], 1)
        self.assertEqual(summary['working_days'], 4)
        self.assertEqual(summary['attended'], 2)
        self.assertEqual(summary['attendance_percentage'], 50.0)

    def test_empty_summary(self):
        summary = summarize([])
        self.assertEqual(summary['working_days'], 0)
        self.assertEqual(summary['attendance_percentage'], 0.0)


class AttendanceBaseTestCase(TestCase):
    def setUp(self):
        user_model = get_user_model()

        self.school = School.objects.create(name='Attendance School', code='attendance_school')
        self.session = AcademicSession.objects.create(
            school=self.school,
            name='2024',
            start_date=date(2024, 1, 1),
            end_date=date(2024, 12, 31),
            is_active=True,
        )
        self.school.current_session = self.session
        self.school.save(update_fields=['current_session'])

        self.school_class = SchoolClass.objects.create(
            school=self.school,
            session=self.session,
            name='8th',
            code='VIII',
            display_order=8,
        )
        self.section = Section.objects.create(school_class=self.school_class, name='A')

        self.student_1 = Student.objects.create(
            school=self.school,
            session=self.session,
            admission_number='ATT-001',
            first_name='Nila',
            last_name='Roy',
            device_user_id='201',
            current_class=self.school_class,
            current_section=self.section,
            roll_number='1',
        )
        self.student_2 = Student.objects.create(
            school=self.school,
            session=self.session,
            admission_number='ATT-002',
            first_name='Tanvir',
            last_name='Hasan',
            device_user_id='202',
            current_class=self.school_class,
            current_section=self.section,
            roll_number='2',
        )

        self.teacher_1 = Staff.objects.create(
            school=self.school,
            employee_id='AT-T1',
            first_name='Mita',
            last_name='Sen',
            joining_date=date(2023, 1, 1),
            device_user_id='101',
        )
        self.teacher_2 = Staff.objects.create(
            school=self.school,
            employee_id='AT-T2',
            first_name='Rafiq',
            last_name='Ahmed',
            joining_date=date(2023, 1, 1),
            device_user_id='102',
        )

        Holiday.objects.create(school=self.school, name='Independence Day', date=INDEPENDENCE_DAY)

        self.admin_user = user_model.objects.create_user(
            username='attendance_admin',
            password='pass12345',
            role='schooladmin',
            school=self.school,
        )
        self.teacher_user = user_model.objects.create_user(
            username='attendance_teacher',
            password='pass12345',
            role='teacher',
            school=self.school,
        )
        self.accountant = user_model.objects.create_user(
            username='attendance_accountant',
            password='pass12345',
            role='accountant',
            school=self.school,
        )

    def _age_record(self, record, days=5):
        type(record).objects.filter(pk=record.pk).update(created_at=timezone.now() - timedelta(days=days))


class AttendanceRuleServiceTests(AttendanceBaseTestCase):
    def test_defaults_apply_without_a_stored_rule(self):
        rules = rules_for(school=self.school, person_type=PERSON_TEACHER)

        self.assertEqual(rules.late_time, time(8, 45))
        self.assertEqual(rules.out_time, time(16, 30))
        self.assertEqual(rules.weekend_days, frozenset({4, 5}))
        self.assertIn(INDEPENDENCE_DAY, rules.holiday_dates)
        self.assertFalse(AttendanceRule.objects.filter(school=self.school).exists())

    def test_stored_rule_and_holiday_window(self):
        AttendanceRule.objects.create(school=self.school, student_late_time=time(9, 15), weekend_days=[6])

        rules = rules_for(
            school=self.school,
            person_type=PERSON_STUDENT,
            date_from=date(2024, 4, 1),
            date_to=date(2024, 4, 30),
        )

        self.assertEqual(rules.late_time, time(9, 15))
        self.assertEqual(rules.weekend_days, frozenset({6}))
        self.assertEqual(rules.holiday_dates, frozenset())

    def test_rule_refuses_invalid_weekday(self):
        rule = AttendanceRule(school=self.school, weekend_days=[7])
        with self.assertRaises(ValidationError):
            rule.full_clean()

    def test_unknown_person_type_is_refused(self):
        with self.assertRaises(ValidationError):
            rules_for(school=self.school, person_type='parent')


class DevicePunchServiceTests(AttendanceBaseTestCase):
    def test_first_and_last_punch_become_in_and_out(self):
        for punch_at in (
            datetime(2024, 3, 12, 8, 40),
            datetime(2024, 3, 12, 16, 45),
            datetime(2024, 3, 12, 12, 5),
        ):
            record_device_punch(school=self.school, device_user_id='101', punch_at=punch_at, device_sn='F10-1')

        record = TeacherAttendance.objects.get(staff=self.teacher_1, date=TUESDAY)
        self.assertEqual(record.in_time, time(8, 40))
        self.assertEqual(record.out_time, time(16, 45))
        self.assertEqual(record.device_sn, 'F10-1')
        self.assertFalse(record.is_manual)

    def test_single_punch_leaves_out_time_empty(self):
        record = record_device_punch(school=self.school, device_user_id='201', punch_at=datetime(2024, 3, 12, 8, 50))

        self.assertIsInstance(record, StudentAttendance)
        self.assertEqual(record.in_time, time(8, 50))
        self.assertIsNone(record.out_time)
        self.assertEqual(record.school_class, self.school_class)
        self.assertEqual(record.session, self.session)

    def test_punch_keeps_manual_status(self):
        mark_attendance(
            school=self.school,
            person_type=PERSON_TEACHER,
            person=self.teacher_1,
            target_date=TUESDAY,
            status='excused',
        )
        record_device_punch(school=self.school, device_user_id='101', punch_at=datetime(2024, 3, 12, 8, 40))

        record = TeacherAttendance.objects.get(staff=self.teacher_1, date=TUESDAY)
        self.assertEqual(record.status, 'excused')
        self.assertTrue(record.is_manual)
        self.assertEqual(record.in_time, time(8, 40))

    def test_unknown_device_user_is_refused(self):
        with self.assertRaises(UnknownPerson):
            record_device_punch(school=self.school, device_user_id='999', punch_at=datetime(2024, 3, 12, 8, 40))


class MarkAttendanceServiceTests(AttendanceBaseTestCase):
    def test_manual_mark_creates_record(self):
        record = mark_attendance(
            school=self.school,
            person_type=PERSON_STUDENT,
            person=self.student_1,
            target_date=TUESDAY,
            status='absent',
            marked_by=self.teacher_user,
            reason='Sick',
        )

        self.assertTrue(record.is_manual)
        self.assertEqual(record.status, 'absent')
        self.assertEqual(record.marked_by, self.teacher_user)
        self.assertEqual(record.section, self.section)

    def test_future_date_is_refused(self):
        with self.assertRaises(ValidationError):
            mark_attendance(
                school=self.school,
                person_type=PERSON_STUDENT,
                person=self.student_1,
                target_date=timezone.localdate() + timedelta(days=1),
                status='present',
            )

    def test_unsupported_status_is_refused(self):
        with self.assertRaises(ValidationError):
            mark_attendance(
                school=self.school,
                person_type=PERSON_STUDENT,
                person=self.student_1,
                target_date=TUESDAY,
                status='holiday',
            )

    def test_student_edit_window_expires(self):
        record = mark_attendance(
            school=self.school,
            person_type=PERSON_STUDENT,
            person=self.student_1,
            target_date=TUESDAY,
            status='present',
        )
        self._age_record(record)

        with self.assertRaises(ValidationError):
            mark_attendance(
                school=self.school,
                person_type=PERSON_STUDENT,
                person=self.student_1,
                target_date=TUESDAY,
                status='absent',
            )

        updated = mark_attendance(
            school=self.school,
            person_type=PERSON_STUDENT,
            person=self.student_1,
            target_date=TUESDAY,
            status='absent',
            allow_override=True,
        )
        self.assertEqual(updated.status, 'absent')

    def test_teacher_records_have_no_edit_window(self):
        record = mark_attendance(
            school=self.school,
            person_type=PERSON_TEACHER,
            person=self.teacher_1,
            target_date=TUESDAY,
            status='present',
        )
        self._age_record(record)

        updated = mark_attendance(
            school=self.school,
            person_type=PERSON_TEACHER,
            person=self.teacher_1,
            target_date=TUESDAY,
            status='half_day',
        )
        self.assertEqual(updated.status, 'half_day')


class MarkAllServiceTests(AttendanceBaseTestCase):
    def test_marks_everyone(self):
        records = mark_all(
            school=self.school,
            person_type=PERSON_STUDENT,
            person_ids=[self.student_1.id, self.student_2.id],
            target_date=TUESDAY,
            status='present',
            marked_by=self.teacher_user,
        )

        self.assertEqual(len(records), 2)
        self.assertEqual(
            StudentAttendance.objects.filter(date=TUESDAY, status='present', is_manual=True).count(),
            2,
        )

    def test_failure_rolls_back_every_write(self):
        first = mark_attendance(
            school=self.school,
            person_type=PERSON_STUDENT,
            person=self.student_1,
            target_date=TUESDAY,
            status='present',
        )
        locked = mark_attendance(
            school=self.school,
            person_type=PERSON_STUDENT,
            person=self.student_2,
            target_date=TUESDAY,
            status='present',
        )
        self._age_record(locked)

        with self.assertRaises(PartialWriteFailure) as raised:
            mark_all(
                school=self.school,
                person_type=PERSON_STUDENT,
                person_ids=[self.student_1.id, self.student_2.id],
                target_date=TUESDAY,
                status='absent',
            )

        self.assertEqual(raised.exception.failed_person_id, self.student_2.id)
        first.refresh_from_db()
        locked.refresh_from_db()
        self.assertEqual(first.status, 'present')
        self.assertEqual(locked.status, 'present')

    def test_unknown_person_writes_nothing(self):
        with self.assertRaises(UnknownPerson):
            mark_all(
                school=self.school,
                person_type=PERSON_TEACHER,
                person_ids=[self.teacher_1.id, 99999],
                target_date=TUESDAY,
                status='present',
            )

        self.assertFalse(TeacherAttendance.objects.exists())


class AttendanceReportServiceTests(AttendanceBaseTestCase):
    def setUp(self):
        super().setUp()
        record_device_punch(school=self.school, device_user_id='101', punch_at=datetime(2024, 3, 12, 8, 40))
        record_device_punch(school=self.school, device_user_id='101', punch_at=datetime(2024, 3, 12, 16, 45))
        record_device_punch(school=self.school, device_user_id='102', punch_at=datetime(2024, 3, 12, 8, 50))

    def test_daily_sheet_resolves_each_teacher(self):
        sheet = daily_attendance_sheet(school=self.school, person_type=PERSON_TEACHER, target_date=TUESDAY)

        rows = {row['code']: row for row in sheet['rows']}
        self.assertEqual(rows['AT-T1']['status'], AttendanceStatus.PRESENT)
        self.assertEqual(rows['AT-T1']['working_hours'], '8:05')
        self.assertEqual(rows['AT-T2']['status'], AttendanceStatus.LATE)
        self.assertIsNone(rows['AT-T2']['working_hours'])
        self.assertEqual(sheet['summary']['attended'], 2)

    def test_daily_sheet_lists_students_without_records(self):
        sheet = daily_attendance_sheet(
            school=self.school,
            person_type=PERSON_STUDENT,
            target_date=TUESDAY,
            school_class=self.school_class,
        )

        self.assertEqual([row['code'] for row in sheet['rows']], ['ATT-001', 'ATT-002'])
        self.assertTrue(all(row['status'] == AttendanceStatus.NO_RECORD for row in sheet['rows']))

    def test_monthly_summary_counts_calendar(self):
        summary = monthly_summary(school=self.school, person_type=PERSON_TEACHER, year=2024, month=3)

        row = next(row for row in summary['rows'] if row['code'] == 'AT-T1')
        # March 2024: ten Friday/Saturday days and one holiday.
        self.assertEqual(row['weekend'], 10)
        self.assertEqual(row['holiday'], 1)
        self.assertEqual(row['working_days'], 20)
        self.assertEqual(row['present'], 1)
        self.assertEqual(row['no_record'], 19)
        self.assertEqual(row['attendance_percentage'], 5.0)

    def test_monthly_calendar(self):
        result = monthly_calendar(
            school=self.school,
            person_type=PERSON_TEACHER,
            person=self.teacher_2,
            year=2024,
            month=3,
        )

        days = {entry['date']: entry for entry in result['days']}
        self.assertEqual(len(days), 31)
        self.assertEqual(days[TUESDAY]['status'], AttendanceStatus.LATE)
        self.assertEqual(days[SATURDAY]['status'], AttendanceStatus.WEEKEND)
        self.assertEqual(days[INDEPENDENCE_DAY]['status'], AttendanceStatus.HOLIDAY)

    def test_current_month_stops_at_today(self):
        with mock.patch('apps.core.attendance.services.timezone.localdate', return_value=TUESDAY):
            result = monthly_calendar(
                school=self.school,
                person_type=PERSON_TEACHER,
                person=self.teacher_1,
                year=2024,
                month=3,
            )
            summary = monthly_summary(school=self.school, person_type=PERSON_TEACHER, year=2024, month=3)

        self.assertEqual(len(result['days']), 12)
        self.assertEqual(result['days'][-1]['date'], TUESDAY)
        row = next(row for row in summary['rows'] if row['code'] == 'AT-T1')
        self.assertEqual(row['weekend'], 4)
        self.assertEqual(row['working_days'], 8)
        self.assertEqual(row['present'], 1)
        self.assertEqual(row['no_record'], 7)
        self.assertEqual(row['attendance_percentage'], 12.5)

    def test_future_month_has_no_days(self):
        with mock.patch('apps.core.attendance.services.timezone.localdate', return_value=date(2024, 2, 20)):
            summary = monthly_summary(school=self.school, person_type=PERSON_TEACHER, year=2024, month=3)

        row = next(row for row in summary['rows'] if row['code'] == 'AT-T1')
        self.assertEqual(row['working_days'], 0)
        self.assertEqual(row['present'], 0)


class AttendanceViewTests(AttendanceBaseTestCase):
    def test_daily_view_returns_resolved_rows(self):
        record_device_punch(school=self.school, device_user_id='201', punch_at=datetime(2024, 3, 12, 9, 1))
        self.client.force_login(self.teacher_user)

        response = self.client.get(reverse('attendance_daily'), {'date': '2024-03-12', 'person_type': 'student'})

        self.assertEqual(response.status_code, 200)
        rows = {row['code']: row for row in response.json()['rows']}
        self.assertEqual(rows['ATT-001']['status'], 'late')
        self.assertEqual(rows['ATT-002']['status'], 'no_record')

    def test_daily_view_csv_export(self):
        self.client.force_login(self.teacher_user)

        response = self.client.get(
            reverse('attendance_daily'),
            {'date': '2024-03-12', 'person_type': 'teacher', 'export': 'csv'},
        )

        self.assertEqual(response.status_code, 200)
        self.assertIn('text/csv', response['Content-Type'])
        self.assertIn('AT-T1', response.content.decode())

    def test_accountant_cannot_open_attendance(self):
        self.client.force_login(self.accountant)

        response = self.client.get(reverse('attendance_daily'))

        self.assertEqual(response.status_code, 403)

    def test_mark_all_view_reports_conflict(self):
        locked = mark_attendance(
            school=self.school,
            person_type=PERSON_STUDENT,
            person=self.student_2,
            target_date=TUESDAY,
            status='present',
        )
        self._age_record(locked)
        self.client.force_login(self.teacher_user)

        response = self.client.post(
            reverse('attendance_mark_all'),
            {
                'person_type': 'student',
                'person_ids': f'{self.student_1.id},{self.student_2.id}',
                'date': '2024-03-12',
                'status': 'absent',
            },
        )

        self.assertEqual(response.status_code, 409)
        self.assertIn('errors', response.json())
        self.assertFalse(StudentAttendance.objects.filter(student=self.student_1).exists())

    def test_mark_view_creates_manual_record(self):
        self.client.force_login(self.teacher_user)

        response = self.client.post(
            reverse('attendance_mark'),
            {'person_type': 'teacher', 'person': self.teacher_1.id, 'date': '2024-03-12', 'status': 'excused'},
        )

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()['status'], 'excused')

    def test_device_punch_view(self):
        self.client.force_login(self.admin_user)

        response = self.client.post(
            reverse('attendance_device_punch'),
            {'device_user_id': '102', 'punch_at': '2024-03-12 08:44:00', 'device_sn': 'F10-1'},
        )

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()['in_time'], '08:44:00')

    def test_device_punch_view_unknown_user(self):
        self.client.force_login(self.admin_user)

        response = self.client.post(
            reverse('attendance_device_punch'),
            {'device_user_id': '555', 'punch_at': '2024-03-12 08:44:00'},
        )

        self.assertEqual(response.status_code, 404)

    def test_monthly_summary_view(self):
        self.client.force_login(self.admin_user)

        response = self.client.get(
            reverse('attendance_monthly_summary'),
            {'person_type': 'teacher', 'year': 2024, 'month': 3},
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.json()['rows']), 2)

    def test_holiday_creation_requires_admin(self):
        self.client.force_login(self.teacher_user)
        response = self.client.post(reverse('attendance_holiday_list'), {'name': 'Eid', 'date': '2024-04-10', 'type': 'religious'})
        self.assertEqual(response.status_code, 403)

        self.client.force_login(self.admin_user)
        response = self.client.post(
            reverse('attendance_holiday_list'),
            {'name': 'Eid', 'date': '2024-04-10', 'type': 'religious', 'is_active': 'on'},
        )
        self.assertEqual(response.status_code, 201)
        self.assertTrue(Holiday.objects.filter(school=self.school, date=date(2024, 4, 10)).exists())
