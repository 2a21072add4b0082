from django.contrib.auth.decorators import login_required
from django.core.exceptions import ValidationError
from django.shortcuts import get_object_or_404
from django.views.decorators.http import require_POST

from apps.core.users.audit import log_audit_event
from apps.core.users.decorators import role_required
from apps.core.utils.exports import export_response
from apps.core.utils.http import form_error_response, report_response, validation_error_response

from .forms import ProvidentFundEntryForm, ProvidentFundLedgerFilterForm
from .models import ProvidentFundTransaction, Staff
from .services import (
    provident_fund_ledger,
    provident_fund_summary,
    record_pf_contribution,
    record_pf_opening,
    record_pf_withdrawal,
)


PF_ROLES = ['schooladmin', 'accountant']


@login_required
@role_required(PF_ROLES)
def hr_pf_summary(request):
    school = request.user.school
    summary = provident_fund_summary(
        school=school,
        include_inactive=request.GET.get('include_inactive') == '1',
    )

    exported = export_response(
        title=f'{school.name} - Provident Fund Summary',
        headers=['Employee ID', 'Name', 'Designation', 'Employee', 'Employer', 'Withdrawal', 'Balance'],
        rows=[
            [
                row['employee_id'],
                row['name'],
                row['designation'],
                row['employee_contribution'],
                row['employer_contribution'],
                row['withdrawal'],
                row['balance'],
            ]
            for row in summary['rows']
        ],
        filename_base='provident_fund_summary',
        export_type=request.GET.get('export'),
    )
    return exported or report_response(summary)


@login_required
@role_required(PF_ROLES)
def hr_pf_ledger(request, staff_id):
    school = request.user.school
    staff = get_object_or_404(Staff, pk=staff_id, school=school)

    form = ProvidentFundLedgerFilterForm(request.GET or None)
    if request.GET and not form.is_valid():
        return form_error_response(form)
    filters = form.cleaned_data if form.is_bound else {}

    ledger = provident_fund_ledger(
        staff=staff,
        date_from=filters.get('date_from'),
        date_to=filters.get('date_to'),
    )

    exported = export_response(
        title=f'Provident Fund Ledger - {staff}',
        subtitle=f"Opening balance: {ledger['opening_balance']}",
        headers=['Date', 'Type', 'Employee', 'Employer', 'Total', 'Balance', 'Remarks'],
        rows=[
            [
                row['date'],
                row['type'],
                row['employee_contribution'],
                row['employer_contribution'],
                row['total_amount'],
                row['balance'],
                row['remarks'],
            ]
            for row in ledger['rows']
        ],
        filename_base=f'provident_fund_{staff.employee_id}',
        export_type=filters.get('export'),
    )
    return exported or report_response(ledger)


@login_required
@role_required(PF_ROLES)
@require_POST
def hr_pf_entry_create(request, staff_id):
    school = request.user.school
    staff = get_object_or_404(Staff, pk=staff_id, school=school)

    form = ProvidentFundEntryForm(request.POST)
    if not form.is_valid():
        return form_error_response(form)

    data = form.cleaned_data
    common = {
        'school': school,
        'staff': staff,
        'transaction_date': data['transaction_date'],
        'remarks': data.get('remarks', ''),
        'recorded_by': request.user,
    }

    try:
        if data['type'] == ProvidentFundTransaction.TYPE_WITHDRAWAL:
            entry = record_pf_withdrawal(amount=data['amount'], **common)
        else:
            record = record_pf_opening if data['type'] == ProvidentFundTransaction.TYPE_OPENING else record_pf_contribution
            entry = record(
                employee_contribution=data.get('employee_contribution') or 0,
                employer_contribution=data.get('employer_contribution') or 0,
                **common,
            )
    except ValidationError as exc:
        return validation_error_response(exc)

    log_audit_event(
        request=request,
        action=f'hr.pf_{entry.type}_recorded',
        school=school,
        target=entry,
        details=f"Staff={staff.employee_id}, Amount={entry.total_amount}",
    )
    return report_response(
        {
            'id': entry.id,
            'type': entry.type,
            'total_amount': entry.total_amount,
            'transaction_date': entry.transaction_date,
        },
        status=201,
    )
