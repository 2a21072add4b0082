from django.core.exceptions import ValidationError
from django.db import models
from django.utils import timezone

from apps.core.academic_sessions.models import AcademicSession
from apps.core.academics.models import SchoolClass, Section
from apps.core.schools.models import School
from apps.core.utils.managers import SchoolManager


class Student(models.Model):
    STATUS_ACTIVE = 'active'
    STATUS_TRANSFERRED = 'transferred'
    STATUS_PASSED = 'passed'
    STATUS_DROPPED = 'dropped'
    STATUS_CHOICES = (
        (STATUS_ACTIVE, 'Active'),
        (STATUS_TRANSFERRED, 'Transferred'),
        (STATUS_PASSED, 'Passed'),
        (STATUS_DROPPED, 'Dropped'),
    )

    school = models.ForeignKey(School, on_delete=models.CASCADE, related_name='students')
    session = models.ForeignKey(AcademicSession, on_delete=models.CASCADE, related_name='students')
    objects = SchoolManager()

    admission_number = models.CharField(max_length=50)
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100, blank=True)
    admission_date = models.DateField(default=timezone.localdate)
    father_name = models.CharField(max_length=120, blank=True)
    phone = models.CharField(max_length=20, blank=True)
    father_phone = models.CharField(max_length=20, blank=True)
    device_user_id = models.CharField(
        max_length=50,
        blank=True,
        help_text='User id enrolled on the attendance device.',
    )

    current_class = models.ForeignKey(
        SchoolClass,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='students',
    )
    current_section = models.ForeignKey(
        Section,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='students',
    )
    roll_number = models.CharField(max_length=20, null=True, blank=True)

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_ACTIVE)
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['admission_number', 'id']
        constraints = [
            models.UniqueConstraint(
                fields=['school', 'admission_number'],
                name='unique_student_admission_number_per_school',
            ),
        ]
        indexes = [
            models.Index(fields=['school', 'session', 'status']),
            models.Index(fields=['school', 'is_active']),
            models.Index(fields=['school', 'device_user_id']),
        ]

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def contact_phone(self):
        return self.phone or self.father_phone or '-'

    def clean(self):
        super().clean()
        if self.session_id and self.school_id and self.session.school_id != self.school_id:
            raise ValidationError({'session': 'Selected session does not belong to your school.'})

        if self.current_class_id and self.current_class.school_id != self.school_id:
            raise ValidationError({'current_class': 'Class must belong to the student school.'})

        if self.current_section_id and self.current_section.school_class_id != self.current_class_id:
            raise ValidationError({'current_section': 'Section must belong to the selected class.'})

    def __str__(self):
        return f"{self.admission_number} - {self.full_name}"
