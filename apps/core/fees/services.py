from __future__ import annotations

import logging

from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from apps.core.accounting.aggregator import DueRow
from apps.core.accounting.models import Account, IncomeCategory, Transaction
from apps.core.schools.models import School
from apps.core.utils.exports import table_pdf_bytes
from apps.core.utils.reporting import quantize, to_decimal

from .models import FeePayment, FeeRecord, fee_status_for


logger = logging.getLogger(__name__)

__all__ = [
    'due_rows',
    'fee_receipt_pdf',
    'fee_status_for',
    'outstanding_fee_records',
    'record_fee_payment',
]


def _receipt_number(*, school, payment_date) -> str:
    # Serializes numbering across concurrent collections for the school.
    School.objects.select_for_update().get(pk=school.pk)
    date_part = payment_date.strftime('%Y%m%d')
    issued_today = FeePayment.objects.filter(
        school=school,
        receipt_number__startswith=f'RCP-{date_part}-',
    ).count()
    return f'RCP-{date_part}-{issued_today + 1:04d}'


@transaction.atomic
def record_fee_payment(
    *,
    fee_record: FeeRecord,
    amount,
    account: Account,
    received_by=None,
    payment_date=None,
    payment_method=Transaction.METHOD_CASH,
):
    """Collects ``amount`` against a fee record and posts it as income on ``account``."""
    payment_date = payment_date or timezone.localdate()
    school = fee_record.school

    if account.school_id != school.id:
        raise ValidationError({'account': 'Account must belong to selected school.'})
    if account.status != Account.STATUS_ACTIVE:
        raise ValidationError({'account': 'Payments cannot be posted to an inactive account.'})

    amount = quantize(to_decimal(amount))
    if amount <= 0:
        raise ValidationError({'amount': 'Payment amount must be greater than zero.'})

    fee_record = FeeRecord.objects.select_for_update().select_related('fee_type', 'student').get(pk=fee_record.pk)
    if amount > fee_record.due_amount:
        raise ValidationError({'amount': f'Payment exceeds the due amount ({fee_record.due_amount}).'})

    receipt_number = _receipt_number(school=school, payment_date=payment_date)
    category, _ = IncomeCategory.objects.get_or_create(
        school=school,
        name=fee_record.fee_type.name,
        defaults={'description': 'Student fee collection'},
    )

    ledger_transaction = Transaction(
        school=school,
        account=account,
        type=Transaction.TYPE_INCOME,
        income_category=category,
        amount=amount,
        transaction_date=payment_date,
        payment_method=payment_method,
        reference_number=receipt_number,
        description=f'{fee_record.fee_type.name} fee from {fee_record.student.admission_number}'[:255],
        created_by=received_by,
    )
    ledger_transaction.full_clean()
    ledger_transaction.save()

    payment = FeePayment.objects.create(
        school=school,
        fee_record=fee_record,
        amount=amount,
        payment_date=payment_date,
        payment_method=payment_method,
        receipt_number=receipt_number,
        account=account,
        ledger_transaction=ledger_transaction,
        received_by=received_by,
    )

    fee_record.paid_amount = quantize(fee_record.paid_amount + amount)
    fee_record.payment_date = payment_date
    fee_record.receipt_number = receipt_number
    fee_record.full_clean()
    fee_record.save(update_fields=['paid_amount', 'payment_date', 'receipt_number', 'updated_at'])

    logger.info(
        'Fee payment %s of %s recorded for fee record %s (status %s)',
        receipt_number,
        amount,
        fee_record.id,
        fee_record.status,
    )
    return payment


def outstanding_fee_records(
    *,
    school,
    date_from=None,
    date_to=None,
    session=None,
    school_class=None,
    student=None,
    newest_first=False,
):
    queryset = FeeRecord.objects.for_school(school).filter(
        status__in=FeeRecord.OUTSTANDING_STATUSES,
    ).select_related(
        'fee_type',
        'student',
        'student__current_class',
        'student__current_section',
    )

    if date_from:
        queryset = queryset.filter(due_date__gte=date_from)
    if date_to:
        queryset = queryset.filter(due_date__lte=date_to)
    if session:
        queryset = queryset.filter(session=session)
    if school_class:
        queryset = queryset.filter(student__current_class=school_class)
    if student:
        queryset = queryset.filter(student=student)

    if newest_first:
        return queryset.order_by('-due_date', '-id')
    return queryset.order_by(
        'student__current_class__display_order',
        'student__roll_number',
        'student__admission_number',
        'due_date',
        'id',
    )


def due_rows(records):
    rows = []
    for record in records:
        student = record.student
        rows.append(
            DueRow(
                record_id=record.id,
                student_id=student.id,
                student_number=student.admission_number,
                student_name=student.full_name,
                class_name=student.current_class.name if student.current_class_id else '-',
                section=student.current_section.name if student.current_section_id else '-',
                roll_number=student.roll_number or '-',
                father_name=student.father_name or '-',
                phone=student.contact_phone,
                fee_type=record.fee_type.name,
                month=record.month,
                year=record.year,
                total_amount=record.total_amount,
                paid_amount=record.paid_amount,
                status=record.status,
                due_date=record.due_date,
                receipt_number=record.receipt_number,
                late_fee=record.late_fee,
                discount=record.discount,
            )
        )
    return rows


def fee_receipt_pdf(payment: FeePayment) -> bytes:
    fee_record = payment.fee_record
    student = fee_record.student
    rows = [
        ['Receipt No', payment.receipt_number],
        ['Payment Date', payment.payment_date],
        ['Student', f'{student.full_name} ({student.admission_number})'],
        ['Fee Type', fee_record.fee_type.name],
        ['Month', f'{fee_record.month:02d}/{fee_record.year}'],
        ['Paid Now', payment.amount],
        ['Total Paid', fee_record.paid_amount],
        ['Remaining Due', fee_record.due_amount],
        ['Method', payment.payment_method],
        ['Account', payment.account.account_name],
    ]
    return table_pdf_bytes(
        f'{payment.school.name} - Fee Receipt',
        ['Field', 'Value'],
        rows,
    )
