from django.contrib.auth.decorators import login_required
from django.core.exceptions import ValidationError
from django.http import HttpResponse
from django.shortcuts import get_object_or_404
from django.views.decorators.http import require_POST

from apps.core.users.audit import log_audit_event
from apps.core.users.decorators import role_required
from apps.core.utils.http import form_error_response, report_response, validation_error_response

from .forms import FeePaymentForm, FeeRecordFilterForm, FeeRecordForm
from .models import FeePayment, FeeRecord
from .services import fee_receipt_pdf, record_fee_payment


FEE_ROLES = ['schooladmin', 'accountant']


def _fee_record_payload(record):
    return {
        'id': record.id,
        'student_id': record.student_id,
        'student': str(record.student),
        'fee_type': record.fee_type.name,
        'month': record.month,
        'year': record.year,
        'amount': record.amount,
        'late_fee': record.late_fee,
        'discount': record.discount,
        'total_amount': record.total_amount,
        'paid_amount': record.paid_amount,
        'due_amount': record.due_amount,
        'status': record.status,
        'due_date': record.due_date,
        'payment_date': record.payment_date,
        'receipt_number': record.receipt_number,
    }


@login_required
@role_required(FEE_ROLES)
def fee_record_list(request):
    school = request.user.school

    if request.method == 'POST':
        form = FeeRecordForm(request.POST, school=school)
        if not form.is_valid():
            return form_error_response(form)
        record = form.save()
        log_audit_event(
            request=request,
            action='fees.record_created',
            school=school,
            target=record,
            details=f"Student={record.student_id}, Total={record.total_amount}",
        )
        return report_response(_fee_record_payload(record), status=201)

    form = FeeRecordFilterForm(request.GET or None)
    if request.GET and not form.is_valid():
        return form_error_response(form)
    filters = form.cleaned_data if form.is_bound else {}

    records = FeeRecord.objects.for_school(school).select_related('student', 'fee_type')
    if filters.get('status'):
        records = records.filter(status=filters['status'])
    if filters.get('student'):
        records = records.filter(student_id=filters['student'])
    if filters.get('year'):
        records = records.filter(year=filters['year'])
    if filters.get('month'):
        records = records.filter(month=filters['month'])

    return report_response({'rows': [_fee_record_payload(record) for record in records]})


@login_required
@role_required(FEE_ROLES)
@require_POST
def fee_payment_create(request, record_id):
    school = request.user.school
    fee_record = get_object_or_404(FeeRecord, pk=record_id, school=school)

    form = FeePaymentForm(request.POST, school=school)
    if not form.is_valid():
        return form_error_response(form)

    data = form.cleaned_data
    try:
        payment = record_fee_payment(
            fee_record=fee_record,
            amount=data['amount'],
            account=data['account'],
            received_by=request.user,
            payment_date=data.get('payment_date'),
            payment_method=data.get('payment_method') or 'cash',
        )
    except ValidationError as exc:
        return validation_error_response(exc)

    log_audit_event(
        request=request,
        action='fees.payment_recorded',
        school=school,
        target=payment,
        details=f"Receipt={payment.receipt_number}, Amount={payment.amount}",
    )
    fee_record.refresh_from_db()
    return report_response(
        {
            'receipt_number': payment.receipt_number,
            'amount': payment.amount,
            'payment_date': payment.payment_date,
            'fee_record': _fee_record_payload(fee_record),
        },
        status=201,
    )


@login_required
@role_required(FEE_ROLES)
def fee_receipt_download(request, payment_id):
    payment = get_object_or_404(
        FeePayment.objects.select_related('fee_record__student', 'fee_record__fee_type', 'account', 'school'),
        pk=payment_id,
        school=request.user.school,
    )
    response = HttpResponse(fee_receipt_pdf(payment), content_type='application/pdf')
    response['Content-Disposition'] = f'inline; filename="{payment.receipt_number}.pdf"'
    return response
