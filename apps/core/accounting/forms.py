from django import forms
from django.core.exceptions import ValidationError
from django.utils import timezone

from apps.core.utils.reporting import ReportPeriod

from . import aggregator


EXPORT_CHOICES = [('', 'Screen'), ('csv', 'CSV'), ('pdf', 'PDF')]


class ReportPeriodForm(forms.Form):
    """Either an explicit date range or a month; defaults to the current month."""

    start_date = forms.DateField(required=False, widget=forms.DateInput(attrs={'type': 'date'}))
    end_date = forms.DateField(required=False, widget=forms.DateInput(attrs={'type': 'date'}))
    year = forms.IntegerField(required=False, min_value=2000, max_value=2100)
    month = forms.IntegerField(required=False, min_value=1, max_value=12)
    account = forms.CharField(required=False, max_length=20)
    export = forms.ChoiceField(required=False, choices=EXPORT_CHOICES)

    def clean(self):
        cleaned_data = super().clean()
        start_date = cleaned_data.get('start_date')
        end_date = cleaned_data.get('end_date')
        if bool(start_date) != bool(end_date):
            raise ValidationError('Provide both start and end date, or neither.')
        if cleaned_data.get('month') and not cleaned_data.get('year'):
            raise ValidationError({'year': 'Year is required with a month.'})
        return cleaned_data

    def period(self):
        """Builds the report period; a reversed range raises ``InvalidPeriod``."""
        data = self.cleaned_data
        account_id = data.get('account') or None

        if data.get('start_date'):
            return ReportPeriod(
                start_date=data['start_date'],
                end_date=data['end_date'],
                account_id=account_id,
            )

        today = timezone.localdate()
        return ReportPeriod.for_month(
            data.get('year') or today.year,
            data.get('month') or today.month,
            account_id=account_id,
        )


class BalanceSheetForm(forms.Form):
    as_of = forms.DateField(required=False, widget=forms.DateInput(attrs={'type': 'date'}))
    export = forms.ChoiceField(required=False, choices=EXPORT_CHOICES)

    def as_of_date(self):
        return self.cleaned_data.get('as_of') or timezone.localdate()


class DueReportForm(ReportPeriodForm):
    report_type = forms.ChoiceField(
        required=False,
        choices=[
            (aggregator.REPORT_ORGANIZATION, 'Organization'),
            (aggregator.REPORT_CLASS, 'Class'),
            (aggregator.REPORT_STUDENT, 'Student'),
        ],
    )
    school_class = forms.IntegerField(required=False, min_value=1)
    student = forms.IntegerField(required=False, min_value=1)

    def clean(self):
        cleaned_data = super().clean()
        cleaned_data['report_type'] = cleaned_data.get('report_type') or aggregator.REPORT_ORGANIZATION
        return cleaned_data


class ClosePeriodForm(forms.Form):
    period_end = forms.DateField(widget=forms.DateInput(attrs={'type': 'date'}))
    account = forms.CharField(required=False, max_length=20)

    def clean_period_end(self):
        period_end = self.cleaned_data['period_end']
        if period_end > timezone.localdate():
            raise ValidationError('Cannot close a period that has not ended.')
        return period_end
