from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q

from apps.core.academic_sessions.models import AcademicSession
from apps.core.schools.models import School
from apps.core.students.models import Student
from apps.core.utils.managers import SchoolManager


STATUS_PENDING = 'pending'
STATUS_PARTIAL = 'partial'
STATUS_PAID = 'paid'


def fee_status_for(total_amount, paid_amount):
    """Nothing due is paid, nothing paid is pending, anything between is partial."""
    total = Decimal(str(total_amount or '0'))
    due = total - Decimal(str(paid_amount or '0'))
    if due == 0:
        return STATUS_PAID
    if due == total:
        return STATUS_PENDING
    return STATUS_PARTIAL


class FeeType(models.Model):
    FREQUENCY_MONTHLY = 'monthly'
    FREQUENCY_ONE_TIME = 'one_time'
    FREQUENCY_CHOICES = (
        (FREQUENCY_MONTHLY, 'Monthly'),
        (FREQUENCY_ONE_TIME, 'One Time'),
    )

    school = models.ForeignKey(
        School,
        on_delete=models.CASCADE,
        related_name='fee_types',
    )
    objects = SchoolManager()

    name = models.CharField(max_length=120)
    default_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    frequency = models.CharField(max_length=20, choices=FREQUENCY_CHOICES, default=FREQUENCY_MONTHLY)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['name', 'id']
        constraints = [
            models.UniqueConstraint(
                fields=['school', 'name'],
                name='unique_fee_type_name_per_school',
            ),
        ]

    def clean(self):
        super().clean()
        if self.name:
            self.name = self.name.strip()
        if not self.name:
            raise ValidationError({'name': 'Fee type name is required.'})
        if self.default_amount is not None and self.default_amount < 0:
            raise ValidationError({'default_amount': 'Amount cannot be negative.'})

    def delete(self, *args, **kwargs):
        if self.is_active:
            self.is_active = False
            self.save(update_fields=['is_active'])

    def __str__(self):
        return self.name


class FeeRecord(models.Model):
    STATUS_PENDING = STATUS_PENDING
    STATUS_PARTIAL = STATUS_PARTIAL
    STATUS_PAID = STATUS_PAID
    STATUS_CHOICES = (
        (STATUS_PENDING, 'Pending'),
        (STATUS_PARTIAL, 'Partial'),
        (STATUS_PAID, 'Paid'),
    )
    OUTSTANDING_STATUSES = (STATUS_PENDING, STATUS_PARTIAL)

    school = models.ForeignKey(
        School,
        on_delete=models.CASCADE,
        related_name='fee_records',
    )
    session = models.ForeignKey(
        AcademicSession,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='fee_records',
    )
    objects = SchoolManager()

    student = models.ForeignKey(
        Student,
        on_delete=models.CASCADE,
        related_name='fee_records',
    )
    fee_type = models.ForeignKey(
        FeeType,
        on_delete=models.PROTECT,
        related_name='fee_records',
    )
    month = models.PositiveSmallIntegerField()
    year = models.PositiveSmallIntegerField()

    amount = models.DecimalField(max_digits=12, decimal_places=2)
    late_fee = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    discount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, blank=True, editable=False)
    paid_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    due_amount = models.DecimalField(max_digits=12, decimal_places=2, blank=True, editable=False)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, blank=True, editable=False)

    due_date = models.DateField()
    payment_date = models.DateField(null=True, blank=True)
    receipt_number = models.CharField(max_length=40, blank=True)
    remarks = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['due_date', 'id']
        constraints = [
            models.UniqueConstraint(
                fields=['student', 'fee_type', 'year', 'month'],
                name='unique_fee_record_per_student_month',
            ),
            models.CheckConstraint(
                condition=Q(month__gte=1) & Q(month__lte=12),
                name='fee_record_month_range',
            ),
        ]
        indexes = [
            models.Index(fields=['school', 'status', 'due_date']),
            models.Index(fields=['school', 'student', 'status']),
            models.Index(fields=['school', 'receipt_number']),
        ]

    def derive_amounts(self):
        self.total_amount = (
            Decimal(str(self.amount or '0'))
            + Decimal(str(self.late_fee or '0'))
            - Decimal(str(self.discount or '0'))
        )
        self.paid_amount = Decimal(str(self.paid_amount or '0'))
        self.due_amount = self.total_amount - self.paid_amount
        self.status = fee_status_for(self.total_amount, self.paid_amount)

    def clean(self):
        super().clean()
        self.derive_amounts()

        if self.student_id and self.student.school_id != self.school_id:
            raise ValidationError({'student': 'Student must belong to selected school.'})
        if self.fee_type_id and self.fee_type.school_id != self.school_id:
            raise ValidationError({'fee_type': 'Fee type must belong to selected school.'})
        if self.session_id and self.session.school_id != self.school_id:
            raise ValidationError({'session': 'Session must belong to selected school.'})

        if self.amount is not None and self.amount < 0:
            raise ValidationError({'amount': 'Amount cannot be negative.'})
        if self.late_fee < 0 or self.discount < 0:
            raise ValidationError('Late fee and discount cannot be negative.')
        if self.total_amount < 0:
            raise ValidationError({'discount': 'Discount cannot exceed the fee amount.'})
        if self.paid_amount < 0:
            raise ValidationError({'paid_amount': 'Paid amount cannot be negative.'})
        if self.paid_amount > self.total_amount:
            raise ValidationError({'paid_amount': 'Paid amount cannot exceed the total amount.'})

    def save(self, *args, **kwargs):
        self.derive_amounts()
        update_fields = kwargs.get('update_fields')
        if update_fields is not None:
            kwargs['update_fields'] = set(update_fields) | {'total_amount', 'due_amount', 'status'}
        super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.student} {self.fee_type} {self.month}/{self.year} ({self.status})"


class FeePayment(models.Model):
    """One collection against a fee record, posted to the ledger as income."""

    school = models.ForeignKey(
        School,
        on_delete=models.CASCADE,
        related_name='fee_payments',
    )
    objects = SchoolManager()

    fee_record = models.ForeignKey(
        FeeRecord,
        on_delete=models.PROTECT,
        related_name='payments',
    )
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    payment_date = models.DateField()
    payment_method = models.CharField(max_length=20, default='cash')
    receipt_number = models.CharField(max_length=40)
    account = models.ForeignKey(
        'accounting.Account',
        on_delete=models.PROTECT,
        related_name='fee_payments',
    )
    ledger_transaction = models.OneToOneField(
        'accounting.Transaction',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='fee_payment',
    )
    received_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='received_fee_payments',
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-payment_date', '-id']
        constraints = [
            models.UniqueConstraint(
                fields=['school', 'receipt_number'],
                name='unique_fee_receipt_number_per_school',
            ),
            models.CheckConstraint(
                condition=Q(amount__gt=0),
                name='fee_payment_amount_positive',
            ),
        ]

    def delete(self, *args, **kwargs):
        raise ValidationError('Fee payments are posted to the ledger and cannot be deleted.')

    def __str__(self):
        return self.receipt_number
