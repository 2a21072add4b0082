from datetime import time

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models

from apps.core.academic_sessions.models import AcademicSession
from apps.core.academics.models import SchoolClass, Section
from apps.core.hr.models import Staff
from apps.core.schools.models import School
from apps.core.students.models import Student
from apps.core.utils.managers import SchoolManager


def _default_weekend_days():
    return list(getattr(settings, 'ATTENDANCE_DEFAULT_WEEKEND_DAYS', [4, 5]))


class AttendanceRule(models.Model):
    """Per-school time windows and device configuration; weekdays use Python numbering (Monday = 0)."""

    school = models.OneToOneField(
        School,
        on_delete=models.CASCADE,
        related_name='attendance_rule',
    )
    objects = SchoolManager()

    teacher_in_time = models.TimeField(default=time(8, 30))
    teacher_late_time = models.TimeField(default=time(8, 45))
    teacher_out_time = models.TimeField(default=time(16, 30))
    student_in_time = models.TimeField(default=time(8, 45))
    student_late_time = models.TimeField(default=time(9, 0))
    student_out_time = models.TimeField(default=time(15, 30))
    weekend_days = models.JSONField(default=_default_weekend_days, blank=True)
    early_leave_tolerance_minutes = models.PositiveIntegerField(default=0)

    device_name = models.CharField(max_length=100, default='ZKTeco F10')
    device_ip = models.GenericIPAddressField(null=True, blank=True)
    device_port = models.PositiveIntegerField(default=4370)
    auto_sync_enabled = models.BooleanField(default=False)
    sync_interval_minutes = models.PositiveIntegerField(default=60)
    last_sync_at = models.DateTimeField(null=True, blank=True)
    last_sync_status = models.CharField(max_length=20, blank=True)
    total_synced = models.PositiveIntegerField(default=0)

    updated_at = models.DateTimeField(auto_now=True)

    def clean(self):
        super().clean()
        weekend_days = self.weekend_days or []
        if any(not isinstance(day, int) or day < 0 or day > 6 for day in weekend_days):
            raise ValidationError({'weekend_days': 'Weekend days must be weekday numbers between 0 and 6.'})

        for prefix in ('teacher', 'student'):
            in_time = getattr(self, f'{prefix}_in_time')
            late_time = getattr(self, f'{prefix}_late_time')
            out_time = getattr(self, f'{prefix}_out_time')
            if late_time < in_time:
                raise ValidationError({f'{prefix}_late_time': 'Late time cannot be before in time.'})
            if out_time <= in_time:
                raise ValidationError({f'{prefix}_out_time': 'Out time must be after in time.'})

    def __str__(self):
        return f"Attendance rules - {self.school}"


class Holiday(models.Model):
    TYPE_PUBLIC = 'public'
    TYPE_RELIGIOUS = 'religious'
    TYPE_SCHOOL = 'school'
    TYPE_CHOICES = (
        (TYPE_PUBLIC, 'Public'),
        (TYPE_RELIGIOUS, 'Religious'),
        (TYPE_SCHOOL, 'School'),
    )

    school = models.ForeignKey(
        School,
        on_delete=models.CASCADE,
        related_name='holidays',
    )
    objects = SchoolManager()

    name = models.CharField(max_length=150)
    date = models.DateField()
    type = models.CharField(max_length=20, choices=TYPE_CHOICES, default=TYPE_PUBLIC)
    description = models.CharField(max_length=255, blank=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['date', 'id']
        constraints = [
            models.UniqueConstraint(
                fields=['school', 'date'],
                name='unique_holiday_per_school_date',
            ),
        ]

    def __str__(self):
        return f"{self.name} ({self.date})"


class AttendanceRecord(models.Model):
    """
    One row per person per day. Device punches fill ``in_time``/``out_time``;
    a manual entry sets ``status`` and ``is_manual``. The displayed status is
    always resolved from these fields, never stored separately.
    """

    STATUS_PRESENT = 'present'
    STATUS_ABSENT = 'absent'
    STATUS_LATE = 'late'
    STATUS_EXCUSED = 'excused'
    STATUS_HALF_DAY = 'half_day'
    MANUAL_STATUS_CHOICES = (
        (STATUS_PRESENT, 'Present'),
        (STATUS_ABSENT, 'Absent'),
        (STATUS_LATE, 'Late'),
        (STATUS_EXCUSED, 'Excused'),
        (STATUS_HALF_DAY, 'Half Day'),
    )

    school = models.ForeignKey(
        School,
        on_delete=models.CASCADE,
        related_name='+',
    )
    objects = SchoolManager()

    date = models.DateField()
    in_time = models.TimeField(null=True, blank=True)
    out_time = models.TimeField(null=True, blank=True)
    status = models.CharField(max_length=20, choices=MANUAL_STATUS_CHOICES, blank=True)
    is_manual = models.BooleanField(default=False)
    reason = models.CharField(max_length=255, blank=True)
    device_sn = models.CharField(max_length=60, blank=True)
    marked_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True

    def clean(self):
        super().clean()
        if self.is_manual and not self.status:
            raise ValidationError({'status': 'Manual entries need a status.'})


class StudentAttendance(AttendanceRecord):
    session = models.ForeignKey(
        AcademicSession,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='student_attendances',
    )
    student = models.ForeignKey(
        Student,
        on_delete=models.CASCADE,
        related_name='daily_attendances',
    )
    school_class = models.ForeignKey(
        SchoolClass,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='student_attendances',
    )
    section = models.ForeignKey(
        Section,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='student_attendances',
    )

    class Meta:
        ordering = ['-date', 'student__admission_number']
        constraints = [
            models.UniqueConstraint(
                fields=['student', 'date'],
                name='unique_student_daily_attendance_per_date',
            ),
        ]
        indexes = [
            models.Index(fields=['school', 'date']),
            models.Index(fields=['school', 'school_class', 'section', 'date']),
        ]

    def clean(self):
        super().clean()
        if self.student_id and self.student.school_id != self.school_id:
            raise ValidationError({'student': 'Student must belong to selected school.'})
        if self.session_id and self.session.school_id != self.school_id:
            raise ValidationError({'session': 'Session must belong to selected school.'})

    @property
    def person_id(self):
        return self.student_id

    def __str__(self):
        return f"{self.student.admission_number} - {self.date}"


class TeacherAttendance(AttendanceRecord):
    staff = models.ForeignKey(
        Staff,
        on_delete=models.CASCADE,
        related_name='daily_attendances',
    )

    class Meta:
        ordering = ['-date', 'staff__employee_id']
        constraints = [
            models.UniqueConstraint(
                fields=['staff', 'date'],
                name='unique_teacher_daily_attendance_per_date',
            ),
        ]
        indexes = [
            models.Index(fields=['school', 'date']),
        ]

    def clean(self):
        super().clean()
        if self.staff_id and self.staff.school_id != self.school_id:
            raise ValidationError({'staff': 'Staff must belong to selected school.'})

    @property
    def person_id(self):
        return self.staff_id

    def __str__(self):
        return f"{self.staff.employee_id} - {self.date}"
