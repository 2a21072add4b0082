from django import forms
from django.core.exceptions import ValidationError

from .models import ProvidentFundTransaction


class ProvidentFundLedgerFilterForm(forms.Form):
    date_from = forms.DateField(required=False, widget=forms.DateInput(attrs={'type': 'date'}))
    date_to = forms.DateField(required=False, widget=forms.DateInput(attrs={'type': 'date'}))
    export = forms.ChoiceField(
        required=False,
        choices=[('', 'Screen'), ('csv', 'CSV'), ('pdf', 'PDF')],
    )

    def clean(self):
        cleaned_data = super().clean()
        date_from = cleaned_data.get('date_from')
        date_to = cleaned_data.get('date_to')
        if date_from and date_to and date_from > date_to:
            raise ValidationError('From date cannot be after to date.')
        return cleaned_data


class ProvidentFundEntryForm(forms.Form):
    ENTRY_TYPES = (
        (ProvidentFundTransaction.TYPE_OPENING, 'Opening Balance'),
        (ProvidentFundTransaction.TYPE_CONTRIBUTION, 'Contribution'),
        (ProvidentFundTransaction.TYPE_WITHDRAWAL, 'Withdrawal'),
    )

    type = forms.ChoiceField(choices=ENTRY_TYPES)
    transaction_date = forms.DateField(widget=forms.DateInput(attrs={'type': 'date'}))
    employee_contribution = forms.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False)
    employer_contribution = forms.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False)
    amount = forms.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False)
    remarks = forms.CharField(max_length=255, required=False)

    def clean(self):
        cleaned_data = super().clean()
        entry_type = cleaned_data.get('type')

        if entry_type == ProvidentFundTransaction.TYPE_WITHDRAWAL:
            if not cleaned_data.get('amount'):
                raise ValidationError({'amount': 'Withdrawal amount is required.'})
        elif entry_type:
            employee = cleaned_data.get('employee_contribution') or 0
            employer = cleaned_data.get('employer_contribution') or 0
            if not employee and not employer:
                raise ValidationError('Enter an employee or employer contribution.')

        return cleaned_data
