from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models

from apps.core.schools.models import School
from apps.core.utils.managers import SchoolManager


class Staff(models.Model):
    STATUS_ACTIVE = 'active'
    STATUS_RESIGNED = 'resigned'
    STATUS_TERMINATED = 'terminated'
    STATUS_CHOICES = (
        (STATUS_ACTIVE, 'Active'),
        (STATUS_RESIGNED, 'Resigned'),
        (STATUS_TERMINATED, 'Terminated'),
    )

    school = models.ForeignKey(
        School,
        on_delete=models.CASCADE,
        related_name='staff_profiles',
    )
    objects = SchoolManager()

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='staff_profile',
    )
    employee_id = models.CharField(max_length=50)
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100, blank=True)
    joining_date = models.DateField()
    designation = models.CharField(max_length=120, blank=True)
    department = models.CharField(max_length=120, blank=True)
    phone = models.CharField(max_length=20, blank=True)
    device_user_id = models.CharField(
        max_length=50,
        blank=True,
        help_text='User id enrolled on the attendance device.',
    )

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_ACTIVE)
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['employee_id', 'id']
        constraints = [
            models.UniqueConstraint(
                fields=['school', 'employee_id'],
                name='unique_employee_id_per_school',
            ),
        ]
        indexes = [
            models.Index(fields=['school', 'status']),
            models.Index(fields=['school', 'is_active']),
            models.Index(fields=['school', 'device_user_id']),
        ]

    def clean(self):
        super().clean()

        if self.user_id:
            if self.user.school_id != self.school_id:
                raise ValidationError({'user': 'User must belong to the selected school.'})
            if self.user.role == 'superadmin':
                raise ValidationError({'user': 'Selected user role cannot be linked as staff.'})

        if self.status != self.STATUS_ACTIVE and self.is_active:
            raise ValidationError({'is_active': 'Inactive status cannot be marked active.'})

    def delete(self, *args, **kwargs):
        if self.is_active or self.status == self.STATUS_ACTIVE:
            self.is_active = False
            self.status = self.STATUS_TERMINATED
            self.save(update_fields=['is_active', 'status'])

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()

    def __str__(self):
        return f"{self.employee_id} - {self.full_name}"


class ProvidentFundTransaction(models.Model):
    TYPE_OPENING = 'opening'
    TYPE_CONTRIBUTION = 'contribution'
    TYPE_WITHDRAWAL = 'withdrawal'
    TYPE_CHOICES = (
        (TYPE_OPENING, 'Opening Balance'),
        (TYPE_CONTRIBUTION, 'Contribution'),
        (TYPE_WITHDRAWAL, 'Withdrawal'),
    )
    CREDIT_TYPES = (TYPE_OPENING, TYPE_CONTRIBUTION)

    school = models.ForeignKey(
        School,
        on_delete=models.CASCADE,
        related_name='provident_fund_transactions',
    )
    objects = SchoolManager()

    staff = models.ForeignKey(
        Staff,
        on_delete=models.PROTECT,
        related_name='provident_fund_transactions',
    )
    type = models.CharField(max_length=20, choices=TYPE_CHOICES)
    employee_contribution = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    employer_contribution = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    transaction_date = models.DateField()
    remarks = models.CharField(max_length=255, blank=True)
    recorded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='recorded_pf_transactions',
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['transaction_date', 'id']
        indexes = [
            models.Index(fields=['school', 'staff', 'transaction_date']),
            models.Index(fields=['school', 'type']),
        ]

    def _derive_total(self):
        if self.type in self.CREDIT_TYPES or not self.total_amount:
            self.total_amount = (self.employee_contribution or Decimal('0')) + (
                self.employer_contribution or Decimal('0')
            )

    def clean(self):
        super().clean()
        self._derive_total()
        if self.staff_id and self.staff.school_id != self.school_id:
            raise ValidationError({'staff': 'Staff must belong to selected school.'})
        if self.employee_contribution < 0 or self.employer_contribution < 0:
            raise ValidationError('Contributions cannot be negative.')
        if self.total_amount <= 0:
            raise ValidationError({'total_amount': 'Amount must be greater than zero.'})

    def save(self, *args, **kwargs):
        self._derive_total()
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError('Provident fund entries cannot be deleted. Record a reversing entry instead.')

    @property
    def signed_amount(self):
        if self.type == self.TYPE_WITHDRAWAL:
            return -self.total_amount
        return self.employee_contribution + self.employer_contribution

    def __str__(self):
        return f"{self.staff.employee_id} {self.type} {self.total_amount} ({self.transaction_date})"
