from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q
from django.utils import timezone

from apps.core.hr.models import Staff
from apps.core.schools.models import School
from apps.core.utils.managers import SchoolManager


class FinancialRecordModel(models.Model):
    class Meta:
        abstract = True

    def delete(self, *args, **kwargs):
        raise ValidationError('Financial records cannot be deleted. Post a reversing entry instead.')


class Account(models.Model):
    TYPE_BANK = 'bank'
    TYPE_CASH = 'cash'
    TYPE_CHOICES = (
        (TYPE_BANK, 'Bank'),
        (TYPE_CASH, 'Cash'),
    )

    STATUS_ACTIVE = 'active'
    STATUS_INACTIVE = 'inactive'
    STATUS_CHOICES = (
        (STATUS_ACTIVE, 'Active'),
        (STATUS_INACTIVE, 'Inactive'),
    )

    school = models.ForeignKey(
        School,
        on_delete=models.CASCADE,
        related_name='accounts',
    )
    objects = SchoolManager()

    account_name = models.CharField(max_length=150)
    account_number = models.CharField(max_length=60, blank=True)
    account_type = models.CharField(max_length=10, choices=TYPE_CHOICES, default=TYPE_BANK)
    bank_name = models.CharField(max_length=150, blank=True)
    branch = models.CharField(max_length=150, blank=True)
    opening_balance = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    description = models.TextField(blank=True)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_ACTIVE)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['account_name', 'id']
        constraints = [
            models.UniqueConstraint(
                fields=['school', 'account_name'],
                name='unique_account_name_per_school',
            ),
        ]
        indexes = [
            models.Index(fields=['school', 'status']),
        ]

    def clean(self):
        super().clean()
        if self.account_name:
            self.account_name = self.account_name.strip()
        if not self.account_name:
            raise ValidationError({'account_name': 'Account name is required.'})
        if self.account_type == self.TYPE_BANK and not self.bank_name:
            raise ValidationError({'bank_name': 'Bank name is required for bank accounts.'})

    def delete(self, *args, **kwargs):
        if self.status == self.STATUS_ACTIVE:
            self.status = self.STATUS_INACTIVE
            self.save(update_fields=['status'])

    def __str__(self):
        return f"{self.account_name} ({self.get_account_type_display()})"


class LedgerCategory(models.Model):
    objects = SchoolManager()

    name = models.CharField(max_length=120)
    description = models.CharField(max_length=255, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        abstract = True
        ordering = ['name', 'id']

    def clean(self):
        super().clean()
        if self.name:
            self.name = self.name.strip()
        if not self.name:
            raise ValidationError({'name': 'Category name is required.'})

    def delete(self, *args, **kwargs):
        if self.is_active:
            self.is_active = False
            self.save(update_fields=['is_active'])

    def __str__(self):
        return self.name


class IncomeCategory(LedgerCategory):
    school = models.ForeignKey(
        School,
        on_delete=models.CASCADE,
        related_name='income_categories',
    )

    class Meta(LedgerCategory.Meta):
        verbose_name_plural = 'income categories'
        constraints = [
            models.UniqueConstraint(
                fields=['school', 'name'],
                name='unique_income_category_per_school',
            ),
        ]


class ExpenseCategory(LedgerCategory):
    school = models.ForeignKey(
        School,
        on_delete=models.CASCADE,
        related_name='expense_categories',
    )

    class Meta(LedgerCategory.Meta):
        verbose_name_plural = 'expense categories'
        constraints = [
            models.UniqueConstraint(
                fields=['school', 'name'],
                name='unique_expense_category_per_school',
            ),
        ]


class Fund(models.Model):
    school = models.ForeignKey(
        School,
        on_delete=models.CASCADE,
        related_name='funds',
    )
    objects = SchoolManager()

    name = models.CharField(max_length=150)
    fund_code = models.CharField(max_length=40, blank=True)
    investor_name = models.CharField(max_length=150, blank=True)
    account = models.ForeignKey(
        Account,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='funds',
    )
    description = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['name', 'id']
        constraints = [
            models.UniqueConstraint(
                fields=['school', 'name'],
                name='unique_fund_name_per_school',
            ),
        ]

    def clean(self):
        super().clean()
        if self.account_id and self.account.school_id != self.school_id:
            raise ValidationError({'account': 'Account must belong to selected school.'})

    def __str__(self):
        return self.name


class FundTransaction(FinancialRecordModel):
    TYPE_IN = 'in'
    TYPE_OUT = 'out'
    TYPE_CHOICES = (
        (TYPE_IN, 'Fund In'),
        (TYPE_OUT, 'Fund Out'),
    )

    school = models.ForeignKey(
        School,
        on_delete=models.CASCADE,
        related_name='fund_transactions',
    )
    objects = SchoolManager()

    fund = models.ForeignKey(
        Fund,
        on_delete=models.PROTECT,
        related_name='transactions',
    )
    account = models.ForeignKey(
        Account,
        on_delete=models.PROTECT,
        related_name='fund_transactions',
    )
    transaction_type = models.CharField(max_length=3, choices=TYPE_CHOICES)
    amount = models.DecimalField(max_digits=14, decimal_places=2)
    transaction_date = models.DateField(default=timezone.localdate)
    description = models.CharField(max_length=255, blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='fund_transactions_created',
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['transaction_date', 'id']
        constraints = [
            models.CheckConstraint(
                condition=Q(amount__gt=0),
                name='fund_transaction_amount_positive',
            ),
        ]
        indexes = [
            models.Index(fields=['school', 'transaction_date']),
            models.Index(fields=['school', 'account', 'transaction_date']),
        ]

    def clean(self):
        super().clean()
        if self.fund_id and self.fund.school_id != self.school_id:
            raise ValidationError({'fund': 'Fund must belong to selected school.'})
        if self.account_id and self.account.school_id != self.school_id:
            raise ValidationError({'account': 'Account must belong to selected school.'})
        if self.amount is None or self.amount <= 0:
            raise ValidationError({'amount': 'Amount must be greater than zero.'})

    def __str__(self):
        return f"{self.fund} {self.transaction_type} {self.amount}"


class Transaction(FinancialRecordModel):
    TYPE_INCOME = 'income'
    TYPE_EXPENSE = 'expense'
    TYPE_TRANSFER = 'transfer'
    TYPE_ASSET_PURCHASE = 'asset_purchase'
    TYPE_CHOICES = (
        (TYPE_INCOME, 'Income'),
        (TYPE_EXPENSE, 'Expense'),
        (TYPE_TRANSFER, 'Transfer'),
        (TYPE_ASSET_PURCHASE, 'Asset Purchase'),
    )

    METHOD_CASH = 'cash'
    METHOD_BANK = 'bank'
    METHOD_CHEQUE = 'cheque'
    METHOD_MOBILE = 'mobile_banking'
    PAYMENT_METHOD_CHOICES = (
        (METHOD_CASH, 'Cash'),
        (METHOD_BANK, 'Bank Transfer'),
        (METHOD_CHEQUE, 'Cheque'),
        (METHOD_MOBILE, 'Mobile Banking'),
    )

    school = models.ForeignKey(
        School,
        on_delete=models.CASCADE,
        related_name='transactions',
    )
    objects = SchoolManager()

    account = models.ForeignKey(
        Account,
        on_delete=models.PROTECT,
        related_name='transactions',
    )
    type = models.CharField(max_length=20, choices=TYPE_CHOICES)
    income_category = models.ForeignKey(
        IncomeCategory,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='transactions',
    )
    expense_category = models.ForeignKey(
        ExpenseCategory,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='transactions',
    )
    transfer_to_account = models.ForeignKey(
        Account,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='incoming_transfers',
    )
    amount = models.DecimalField(max_digits=14, decimal_places=2)
    transaction_date = models.DateField(default=timezone.localdate)
    payment_method = models.CharField(max_length=20, choices=PAYMENT_METHOD_CHOICES, default=METHOD_CASH)
    reference_number = models.CharField(max_length=120, blank=True)
    description = models.CharField(max_length=255, blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='transactions_created',
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['transaction_date', 'id']
        constraints = [
            models.CheckConstraint(
                condition=Q(amount__gt=0),
                name='transaction_amount_positive',
            ),
        ]
        indexes = [
            models.Index(fields=['school', 'transaction_date']),
            models.Index(fields=['school', 'type', 'transaction_date']),
            models.Index(fields=['school', 'account', 'transaction_date']),
        ]

    def clean(self):
        super().clean()

        if self.account_id and self.account.school_id != self.school_id:
            raise ValidationError({'account': 'Account must belong to selected school.'})

        if self.amount is None or self.amount <= 0:
            raise ValidationError({'amount': 'Amount must be greater than zero.'})

        if self.type == self.TYPE_INCOME:
            if self.expense_category_id:
                raise ValidationError({'expense_category': 'Income cannot carry an expense category.'})
            if self.income_category_id and self.income_category.school_id != self.school_id:
                raise ValidationError({'income_category': 'Category must belong to selected school.'})
        elif self.type in {self.TYPE_EXPENSE, self.TYPE_ASSET_PURCHASE}:
            if self.income_category_id:
                raise ValidationError({'income_category': 'Expenses cannot carry an income category.'})
            if self.expense_category_id and self.expense_category.school_id != self.school_id:
                raise ValidationError({'expense_category': 'Category must belong to selected school.'})

        if self.type == self.TYPE_TRANSFER:
            if not self.transfer_to_account_id:
                raise ValidationError({'transfer_to_account': 'Target account is required for transfers.'})
            if self.transfer_to_account_id == self.account_id:
                raise ValidationError({'transfer_to_account': 'Cannot transfer to the same account.'})
            if self.transfer_to_account.school_id != self.school_id:
                raise ValidationError({'transfer_to_account': 'Account must belong to selected school.'})
        elif self.transfer_to_account_id:
            raise ValidationError({'transfer_to_account': 'Only transfers can have a target account.'})

        if self.pk:
            previous = Transaction.objects.filter(pk=self.pk).first()
            immutable_fields = ['account_id', 'type', 'amount', 'transaction_date', 'transfer_to_account_id']
            if previous and any(getattr(previous, field) != getattr(self, field) for field in immutable_fields):
                raise ValidationError('Posted transactions are immutable. Post a reversing entry instead.')

    @property
    def category_name(self):
        if self.income_category_id:
            return self.income_category.name
        if self.expense_category_id:
            return self.expense_category.name
        return ''

    def __str__(self):
        return f"{self.get_type_display()} {self.amount} ({self.transaction_date})"


class FixedAsset(models.Model):
    STATUS_ACTIVE = 'active'
    STATUS_DISPOSED = 'disposed'
    STATUS_CHOICES = (
        (STATUS_ACTIVE, 'Active'),
        (STATUS_DISPOSED, 'Disposed'),
    )

    school = models.ForeignKey(
        School,
        on_delete=models.CASCADE,
        related_name='fixed_assets',
    )
    objects = SchoolManager()

    asset_name = models.CharField(max_length=150)
    asset_code = models.CharField(max_length=40, blank=True)
    category = models.CharField(max_length=100, blank=True)
    account = models.ForeignKey(
        Account,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='fixed_assets',
    )
    purchase_price = models.DecimalField(max_digits=14, decimal_places=2)
    purchase_date = models.DateField()
    depreciation_rate = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal('0.00'))
    current_value = models.DecimalField(max_digits=14, decimal_places=2)
    description = models.TextField(blank=True)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_ACTIVE)

    class Meta:
        ordering = ['asset_name', 'id']
        indexes = [
            models.Index(fields=['school', 'status', 'purchase_date']),
        ]

    def clean(self):
        super().clean()
        if self.purchase_price is not None and self.purchase_price < 0:
            raise ValidationError({'purchase_price': 'Purchase price cannot be negative.'})
        if self.current_value is not None and self.current_value < 0:
            raise ValidationError({'current_value': 'Current value cannot be negative.'})

    def __str__(self):
        return self.asset_name


class StaffWelfareLoan(models.Model):
    STATUS_ACTIVE = 'active'
    STATUS_COMPLETED = 'completed'
    STATUS_CHOICES = (
        (STATUS_ACTIVE, 'Active'),
        (STATUS_COMPLETED, 'Completed'),
    )

    school = models.ForeignKey(
        School,
        on_delete=models.CASCADE,
        related_name='staff_welfare_loans',
    )
    objects = SchoolManager()

    loan_number = models.CharField(max_length=40, blank=True)
    staff = models.ForeignKey(
        Staff,
        on_delete=models.PROTECT,
        related_name='welfare_loans',
    )
    account = models.ForeignKey(
        Account,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='welfare_loans',
    )
    loan_amount = models.DecimalField(max_digits=14, decimal_places=2)
    total_paid = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    installment_count = models.PositiveIntegerField(default=1)
    loan_date = models.DateField()
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_ACTIVE)
    purpose = models.CharField(max_length=255, blank=True)

    class Meta:
        ordering = ['-loan_date', '-id']
        indexes = [
            models.Index(fields=['school', 'status', 'loan_date']),
        ]

    def clean(self):
        super().clean()
        if self.staff_id and self.staff.school_id != self.school_id:
            raise ValidationError({'staff': 'Staff must belong to selected school.'})
        if self.loan_amount is None or self.loan_amount <= 0:
            raise ValidationError({'loan_amount': 'Loan amount must be greater than zero.'})
        if self.total_paid is not None and self.total_paid > self.loan_amount:
            raise ValidationError({'total_paid': 'Repayments cannot exceed the loan amount.'})

    @property
    def outstanding_amount(self):
        return Decimal(self.loan_amount) - Decimal(self.total_paid)

    def __str__(self):
        return f"{self.loan_number or self.pk} - {self.staff}"


class PeriodClosing(models.Model):
    """Stored closing balance checkpoint for one account, or all accounts when ``account`` is empty."""

    school = models.ForeignKey(
        School,
        on_delete=models.CASCADE,
        related_name='period_closings',
    )
    objects = SchoolManager()

    account = models.ForeignKey(
        Account,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='period_closings',
    )
    period_end = models.DateField()
    closing_balance = models.DecimalField(max_digits=14, decimal_places=2)
    closed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='period_closings',
    )
    closed_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-period_end', 'id']
        constraints = [
            models.UniqueConstraint(
                fields=['school', 'account', 'period_end'],
                condition=Q(account__isnull=False),
                name='unique_account_period_closing',
            ),
            models.UniqueConstraint(
                fields=['school', 'period_end'],
                condition=Q(account__isnull=True),
                name='unique_school_period_closing',
            ),
        ]

    def __str__(self):
        scope = self.account.account_name if self.account_id else 'All accounts'
        return f"{scope} closed {self.period_end}: {self.closing_balance}"
