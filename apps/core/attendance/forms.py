from django import forms
from django.core.exceptions import ValidationError
from django.utils import timezone

from .models import AttendanceRecord, AttendanceRule, Holiday
from .resolver import PERSON_STUDENT, PERSON_TYPES


PERSON_TYPE_CHOICES = [(person_type, person_type.title()) for person_type in PERSON_TYPES]
EXPORT_CHOICES = [('', 'None'), ('csv', 'CSV'), ('pdf', 'PDF')]


class DailyAttendanceFilterForm(forms.Form):
    person_type = forms.ChoiceField(choices=PERSON_TYPE_CHOICES, required=False)
    date = forms.DateField(required=False, widget=forms.DateInput(attrs={'type': 'date'}))
    school_class = forms.IntegerField(required=False, min_value=1)
    section = forms.IntegerField(required=False, min_value=1)
    export = forms.ChoiceField(choices=EXPORT_CHOICES, required=False)

    def clean(self):
        cleaned_data = super().clean()
        cleaned_data['person_type'] = cleaned_data.get('person_type') or PERSON_STUDENT
        cleaned_data['date'] = cleaned_data.get('date') or timezone.localdate()
        return cleaned_data


class MonthlyAttendanceFilterForm(forms.Form):
    person_type = forms.ChoiceField(choices=PERSON_TYPE_CHOICES, required=False)
    year = forms.IntegerField(required=False, min_value=2000, max_value=2100)
    month = forms.IntegerField(required=False, min_value=1, max_value=12)
    school_class = forms.IntegerField(required=False, min_value=1)
    section = forms.IntegerField(required=False, min_value=1)
    person = forms.IntegerField(required=False, min_value=1)
    export = forms.ChoiceField(choices=EXPORT_CHOICES, required=False)

    def clean(self):
        cleaned_data = super().clean()
        today = timezone.localdate()
        cleaned_data['person_type'] = cleaned_data.get('person_type') or PERSON_STUDENT
        cleaned_data['year'] = cleaned_data.get('year') or today.year
        cleaned_data['month'] = cleaned_data.get('month') or today.month
        return cleaned_data


class MarkAttendanceForm(forms.Form):
    person_type = forms.ChoiceField(choices=PERSON_TYPE_CHOICES)
    person = forms.IntegerField(min_value=1)
    date = forms.DateField()
    status = forms.ChoiceField(choices=AttendanceRecord.MANUAL_STATUS_CHOICES)
    reason = forms.CharField(max_length=255, required=False)

    def clean_date(self):
        target_date = self.cleaned_data['date']
        if target_date > timezone.localdate():
            raise ValidationError('Cannot mark attendance for a future date.')
        return target_date


class MarkAllAttendanceForm(forms.Form):
    person_type = forms.ChoiceField(choices=PERSON_TYPE_CHOICES)
    person_ids = forms.CharField(help_text='Comma separated ids.')
    date = forms.DateField()
    status = forms.ChoiceField(choices=AttendanceRecord.MANUAL_STATUS_CHOICES)
    reason = forms.CharField(max_length=255, required=False)

    def clean_person_ids(self):
        raw = self.cleaned_data['person_ids']
        person_ids = []
        for chunk in raw.split(','):
            chunk = chunk.strip()
            if not chunk:
                continue
            if not chunk.isdigit():
                raise ValidationError(f'Invalid id {chunk!r}.')
            person_id = int(chunk)
            if person_id not in person_ids:
                person_ids.append(person_id)
        if not person_ids:
            raise ValidationError('Select at least one person.')
        return person_ids

    def clean_date(self):
        target_date = self.cleaned_data['date']
        if target_date > timezone.localdate():
            raise ValidationError('Cannot mark attendance for a future date.')
        return target_date


class DevicePunchForm(forms.Form):
    device_user_id = forms.CharField(max_length=50)
    punch_at = forms.DateTimeField()
    device_sn = forms.CharField(max_length=60, required=False)


class AttendanceRuleForm(forms.ModelForm):
    class Meta:
        model = AttendanceRule
        fields = [
            'teacher_in_time',
            'teacher_late_time',
            'teacher_out_time',
            'student_in_time',
            'student_late_time',
            'student_out_time',
            'weekend_days',
            'early_leave_tolerance_minutes',
        ]


class HolidayForm(forms.ModelForm):
    class Meta:
        model = Holiday
        fields = ['name', 'date', 'type', 'description', 'is_active']
        widgets = {
            'date': forms.DateInput(attrs={'type': 'date'}),
        }

    def __init__(self, *args, **kwargs):
        self.school = kwargs.pop('school', None)
        super().__init__(*args, **kwargs)
        if self.school and not self.instance.school_id:
            self.instance.school = self.school

    def clean_date(self):
        holiday_date = self.cleaned_data['date']
        duplicate = Holiday.objects.filter(school=self.school, date=holiday_date).exclude(pk=self.instance.pk)
        if self.school and duplicate.exists():
            raise ValidationError('A holiday already exists on this date.')
        return holiday_date
