from django import forms
from django.core.exceptions import ValidationError

from apps.core.academic_sessions.models import AcademicSession
from apps.core.accounting.models import Account, Transaction
from apps.core.students.models import Student

from .models import FeeRecord, FeeType


class FeeRecordForm(forms.ModelForm):
    class Meta:
        model = FeeRecord
        fields = [
            'session',
            'student',
            'fee_type',
            'month',
            'year',
            'amount',
            'late_fee',
            'discount',
            'due_date',
            'remarks',
        ]
        widgets = {
            'due_date': forms.DateInput(attrs={'type': 'date'}),
        }

    def __init__(self, *args, **kwargs):
        self.school = kwargs.pop('school', None)
        super().__init__(*args, **kwargs)

        if self.school and not self.instance.school_id:
            self.instance.school = self.school

        self.fields['session'].queryset = AcademicSession.objects.none()
        self.fields['student'].queryset = Student.objects.none()
        self.fields['fee_type'].queryset = FeeType.objects.none()

        if not self.school:
            return

        self.fields['session'].queryset = AcademicSession.objects.filter(school=self.school).order_by('-start_date')
        self.fields['student'].queryset = Student.objects.filter(school=self.school, is_active=True)
        self.fields['fee_type'].queryset = FeeType.objects.filter(school=self.school, is_active=True)
        if self.school.current_session_id and not self.is_bound:
            self.initial.setdefault('session', self.school.current_session_id)

    def clean_month(self):
        month = self.cleaned_data['month']
        if not 1 <= month <= 12:
            raise ValidationError('Month must be between 1 and 12.')
        return month


class FeeRecordFilterForm(forms.Form):
    status = forms.ChoiceField(required=False, choices=[('', 'All')] + list(FeeRecord.STATUS_CHOICES))
    student = forms.IntegerField(required=False, min_value=1)
    year = forms.IntegerField(required=False, min_value=2000)
    month = forms.IntegerField(required=False, min_value=1, max_value=12)


class FeePaymentForm(forms.Form):
    amount = forms.DecimalField(max_digits=12, decimal_places=2, min_value=0)
    account = forms.ModelChoiceField(queryset=Account.objects.none())
    payment_date = forms.DateField(required=False, widget=forms.DateInput(attrs={'type': 'date'}))
    payment_method = forms.ChoiceField(
        choices=Transaction.PAYMENT_METHOD_CHOICES,
        initial=Transaction.METHOD_CASH,
        required=False,
    )

    def __init__(self, *args, **kwargs):
        school = kwargs.pop('school', None)
        super().__init__(*args, **kwargs)
        if school:
            self.fields['account'].queryset = Account.objects.filter(
                school=school,
                status=Account.STATUS_ACTIVE,
            )

    def clean_amount(self):
        amount = self.cleaned_data['amount']
        if amount <= 0:
            raise ValidationError('Payment amount must be greater than zero.')
        return amount
