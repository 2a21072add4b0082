from django.contrib.auth.decorators import login_required
from django.core.exceptions import ValidationError
from django.shortcuts import get_object_or_404
from django.views.decorators.http import require_POST

from apps.core.academics.models import SchoolClass
from apps.core.students.models import Student
from apps.core.users.audit import log_audit_event
from apps.core.users.decorators import role_required
from apps.core.utils.exports import export_response
from apps.core.utils.http import form_error_response, report_response, validation_error_response

from . import aggregator
from .forms import BalanceSheetForm, ClosePeriodForm, DueReportForm, ReportPeriodForm
from .services import (
    balance_sheet_report,
    bank_report,
    close_period,
    due_report,
    income_expenditure_report,
    receipt_payment_report,
    resolve_account,
)


ACCOUNTING_ROLES = ['schooladmin', 'accountant']


def _period_subtitle(period):
    return f'{period.start_date:%d %b %Y} to {period.end_date:%d %b %Y}'


def _receipt_payment_rows(report):
    rows = [['Opening Balance', '', report.opening_balance, '']]
    rows += [['Receipt', line.category_label, line.month_amount, line.cumulative_amount] for line in report.receipts]
    rows.append(['Total Receipts', '', report.total_month_receipts, report.total_cumulative_receipts])
    rows += [['Payment', line.category_label, line.month_amount, line.cumulative_amount] for line in report.payments]
    rows.append(['Total Payments', '', report.total_month_payments, report.total_cumulative_payments])
    rows.append(['Closing Balance', '', report.closing_balance, ''])
    return rows


def _income_expenditure_rows(report):
    rows = [['Income', line.description, line.amount] for line in report.incomes]
    rows.append(['Total Income', '', report.total_income])
    rows += [['Expenditure', line.description, line.amount] for line in report.expenditures]
    rows.append(['Total Expenditure', '', report.total_expenditure])
    rows.append(['Surplus / Deficit', '', report.surplus_deficit])
    return rows


def _balance_sheet_rows(report):
    liabilities = report.fund_and_liabilities
    assets = report.property_and_assets
    rows = [
        ['Fund & Liabilities', 'Fund', liabilities.fund],
        ['Fund & Liabilities', 'Surplus', liabilities.surplus],
        ['Fund & Liabilities', 'Provident Fund', liabilities.provident_fund],
        ['Fund & Liabilities', 'Staff Welfare Fund', liabilities.staff_welfare_fund],
        ['Fund & Liabilities', 'Total', liabilities.total],
    ]
    rows += [['Property & Assets', line.description, line.amount] for line in assets.fixed_assets]
    rows += [
        ['Property & Assets', 'Staff Welfare Loan Outstanding', assets.welfare_loan_outstanding],
        ['Property & Assets', 'Closing Bank Balance', assets.closing_bank_balance],
        ['Property & Assets', 'Total', assets.total],
        ['Difference', '', report.balance_difference],
    ]
    return rows


def _bank_rows(report):
    rows = []
    for day in report.days:
        rows.append(
            [day.date]
            + [day.credits.get(category, '') for category in report.credit_categories]
            + [day.total_credit]
            + [day.debits.get(category, '') for category in report.debit_categories]
            + [day.total_debit, day.balance]
        )
    rows.append(
        ['Total']
        + [report.credit_totals.get(category, '') for category in report.credit_categories]
        + [report.grand_total_credit]
        + [report.debit_totals.get(category, '') for category in report.debit_categories]
        + [report.grand_total_debit, report.closing_balance]
    )
    return rows


def _due_export(report):
    if report.report_type == aggregator.REPORT_ORGANIZATION:
        headers = ['Group', 'Name', 'Records', 'Total', 'Paid', 'Due']
        rows = [
            ['Fee Type', group['fee_type'], group['record_count'], group['total_amount'], group['paid_amount'], group['due_amount']]
            for group in report.data['fee_type_wise']
        ]
        rows += [
            ['Class', group['class_name'], group['record_count'], group['total_amount'], group['paid_amount'], group['due_amount']]
            for group in report.data['class_wise']
        ]
        return headers, rows

    headers = ['Class', 'Student ID', 'Name', 'Roll', 'Fee Type', 'Month', 'Total', 'Paid', 'Due']
    rows = []
    if report.report_type == aggregator.REPORT_CLASS:
        students = [
            (class_group['class_name'], student)
            for class_group in report.data
            for student in class_group['students']
        ]
    else:
        students = [(student['class_name'], student) for student in report.data]

    for class_name, student in students:
        for fee in student['fees']:
            rows.append([
                class_name,
                student['student_number'],
                student['student_name'],
                student['roll_number'],
                fee['fee_type'],
                f"{fee['month']:02d}/{fee['year']}",
                fee['total_amount'],
                fee['paid_amount'],
                fee['due_amount'],
            ])
    return headers, rows


def _bound_period_form(request, form_class=ReportPeriodForm):
    form = form_class(request.GET)
    return form, form.is_valid()


@login_required
@role_required(ACCOUNTING_ROLES)
def accounting_report_receipt_payment(request):
    school = request.user.school
    form, valid = _bound_period_form(request)
    if not valid:
        return form_error_response(form)

    try:
        period = form.period()
        report = receipt_payment_report(school=school, period=period)
    except ValidationError as exc:
        return validation_error_response(exc)

    exported = export_response(
        title=f'{school.name} - Receipt & Payment',
        subtitle=_period_subtitle(period),
        headers=['Section', 'Category', 'This Period', 'Cumulative'],
        rows=_receipt_payment_rows(report),
        filename_base='receipt_payment',
        export_type=form.cleaned_data.get('export'),
    )
    return exported or report_response(report)


@login_required
@role_required(ACCOUNTING_ROLES)
def accounting_report_income_expenditure(request):
    school = request.user.school
    form, valid = _bound_period_form(request)
    if not valid:
        return form_error_response(form)

    try:
        period = form.period()
        report = income_expenditure_report(school=school, period=period)
    except ValidationError as exc:
        return validation_error_response(exc)

    exported = export_response(
        title=f'{school.name} - Income & Expenditure',
        subtitle=_period_subtitle(period),
        headers=['Section', 'Description', 'Amount'],
        rows=_income_expenditure_rows(report),
        filename_base='income_expenditure',
        export_type=form.cleaned_data.get('export'),
    )
    return exported or report_response(report)


@login_required
@role_required(ACCOUNTING_ROLES)
def accounting_report_balance_sheet(request):
    school = request.user.school
    form = BalanceSheetForm(request.GET)
    if not form.is_valid():
        return form_error_response(form)

    as_of = form.as_of_date()
    report = balance_sheet_report(school=school, as_of=as_of)

    exported = export_response(
        title=f'{school.name} - Balance Sheet',
        subtitle=f'As of {as_of:%d %b %Y}',
        headers=['Side', 'Item', 'Amount'],
        rows=_balance_sheet_rows(report),
        filename_base='balance_sheet',
        export_type=form.cleaned_data.get('export'),
    )
    return exported or report_response(report)


@login_required
@role_required(ACCOUNTING_ROLES)
def accounting_report_bank(request):
    school = request.user.school
    form, valid = _bound_period_form(request)
    if not valid:
        return form_error_response(form)

    try:
        period = form.period()
        report = bank_report(school=school, period=period)
    except ValidationError as exc:
        return validation_error_response(exc)

    exported = export_response(
        title=f'{school.name} - Bank Report',
        subtitle=f'{_period_subtitle(period)} | Opening: {report.opening_balance}',
        headers=(
            ['Date']
            + report.credit_categories
            + ['Total Credit']
            + report.debit_categories
            + ['Total Debit', 'Balance']
        ),
        rows=_bank_rows(report),
        filename_base='bank_report',
        export_type=form.cleaned_data.get('export'),
    )
    return exported or report_response(report)


@login_required
@role_required(ACCOUNTING_ROLES)
def accounting_report_due(request):
    school = request.user.school
    form, valid = _bound_period_form(request, DueReportForm)
    if not valid:
        return form_error_response(form)

    filters = form.cleaned_data
    school_class = None
    student = None
    if filters.get('school_class'):
        school_class = get_object_or_404(SchoolClass, pk=filters['school_class'], school=school)
    if filters.get('student'):
        student = get_object_or_404(Student, pk=filters['student'], school=school)

    try:
        period = form.period()
        report = due_report(
            school=school,
            period=period,
            report_type=filters['report_type'],
            school_class=school_class,
            student=student,
        )
    except ValidationError as exc:
        return validation_error_response(exc)

    headers, rows = _due_export(report)
    exported = export_response(
        title=f'{school.name} - Fee Due Report ({report.report_type})',
        subtitle=_period_subtitle(period),
        headers=headers,
        rows=rows,
        filename_base=f'due_report_{report.report_type}',
        export_type=filters.get('export'),
    )
    return exported or report_response(report)


@login_required
@role_required(ACCOUNTING_ROLES)
@require_POST
def accounting_period_close(request):
    school = request.user.school
    form = ClosePeriodForm(request.POST)
    if not form.is_valid():
        return form_error_response(form)

    try:
        account = resolve_account(school=school, account_id=form.cleaned_data.get('account'))
        closing = close_period(
            school=school,
            period_end=form.cleaned_data['period_end'],
            account=account,
            closed_by=request.user,
        )
    except ValidationError as exc:
        return validation_error_response(exc)

    log_audit_event(
        request=request,
        action='accounting.period_closed',
        school=school,
        target=closing,
        details=f"PeriodEnd={closing.period_end}, Balance={closing.closing_balance}",
    )
    return report_response(
        {
            'id': closing.id,
            'period_end': closing.period_end,
            'account_id': closing.account_id,
            'closing_balance': closing.closing_balance,
        },
        status=201,
    )
