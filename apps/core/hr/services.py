from __future__ import annotations

import logging
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import Case, DecimalField, F, Q, Sum, Value, When

from apps.core.utils.reporting import ZERO, DataInconsistency, quantize, to_decimal

from .models import ProvidentFundTransaction, Staff


logger = logging.getLogger(__name__)

_MONEY = DecimalField(max_digits=14, decimal_places=2)


def _signed_amount_expression():
    return Case(
        When(
            type=ProvidentFundTransaction.TYPE_WITHDRAWAL,
            then=Value(Decimal('0.00')) - F('total_amount'),
        ),
        default=F('employee_contribution') + F('employer_contribution'),
        output_field=_MONEY,
    )


def _withdrawal_q():
    return Q(type=ProvidentFundTransaction.TYPE_WITHDRAWAL)


def _ensure_same_school(school, staff):
    if staff.school_id != school.id:
        raise ValidationError('Staff does not belong to selected school.')


def provident_fund_balance(*, staff) -> Decimal:
    """Replays the whole ledger of ``staff``; the balance is never stored."""
    result = ProvidentFundTransaction.objects.filter(staff=staff).aggregate(
        balance=Sum(_signed_amount_expression())
    )
    return quantize(result['balance'])


def provident_fund_ledger(*, staff, date_from=None, date_to=None):
    entries = ProvidentFundTransaction.objects.filter(staff=staff)

    opening_balance = ZERO
    if date_from:
        earlier = entries.filter(transaction_date__lt=date_from).aggregate(
            balance=Sum(_signed_amount_expression())
        )
        opening_balance = quantize(earlier['balance'])
        entries = entries.filter(transaction_date__gte=date_from)
    if date_to:
        entries = entries.filter(transaction_date__lte=date_to)

    running = opening_balance
    rows = []
    warnings = []
    totals = {
        'employee_contribution': ZERO,
        'employer_contribution': ZERO,
        'withdrawal': ZERO,
    }

    for entry in entries.order_by('transaction_date', 'id'):
        running = quantize(running + entry.signed_amount)
        if entry.type == ProvidentFundTransaction.TYPE_WITHDRAWAL:
            totals['withdrawal'] = quantize(totals['withdrawal'] + entry.total_amount)
        else:
            totals['employee_contribution'] = quantize(
                totals['employee_contribution'] + entry.employee_contribution
            )
            totals['employer_contribution'] = quantize(
                totals['employer_contribution'] + entry.employer_contribution
            )

        rows.append(
            {
                'id': entry.id,
                'date': entry.transaction_date,
                'type': entry.type,
                'employee_contribution': quantize(entry.employee_contribution),
                'employer_contribution': quantize(entry.employer_contribution),
                'total_amount': quantize(entry.total_amount),
                'remarks': entry.remarks,
                'balance': running,
            }
        )

        if running < 0 and not warnings:
            warnings.append(
                DataInconsistency(
                    code='negative_balance',
                    message=f'Provident fund balance fell below zero on {entry.transaction_date}.',
                    amount=running,
                )
            )

    if warnings:
        logger.warning('Negative provident fund balance for staff %s', staff.id)

    return {
        'staff': {
            'id': staff.id,
            'employee_id': staff.employee_id,
            'name': staff.full_name,
        },
        'opening_balance': opening_balance,
        'rows': rows,
        'totals': totals,
        'closing_balance': running,
        'warnings': warnings,
    }


def _record_entry(*, school, staff, entry_type, transaction_date, employee_contribution=ZERO,
                  employer_contribution=ZERO, total_amount=ZERO, remarks='', recorded_by=None):
    _ensure_same_school(school, staff)

    entry = ProvidentFundTransaction(
        school=school,
        staff=staff,
        type=entry_type,
        employee_contribution=quantize(employee_contribution),
        employer_contribution=quantize(employer_contribution),
        total_amount=quantize(total_amount),
        transaction_date=transaction_date,
        remarks=remarks,
        recorded_by=recorded_by,
    )
    entry.full_clean()
    entry.save()
    logger.info(
        'Recorded provident fund %s of %s for staff %s',
        entry_type,
        entry.total_amount,
        staff.id,
    )
    return entry


@transaction.atomic
def record_pf_opening(*, school, staff, transaction_date, employee_contribution,
                      employer_contribution, remarks='', recorded_by=None):
    if ProvidentFundTransaction.objects.filter(
        staff=staff,
        type=ProvidentFundTransaction.TYPE_OPENING,
    ).exists():
        raise ValidationError('An opening balance is already recorded for this staff member.')

    return _record_entry(
        school=school,
        staff=staff,
        entry_type=ProvidentFundTransaction.TYPE_OPENING,
        transaction_date=transaction_date,
        employee_contribution=employee_contribution,
        employer_contribution=employer_contribution,
        remarks=remarks,
        recorded_by=recorded_by,
    )


@transaction.atomic
def record_pf_contribution(*, school, staff, transaction_date, employee_contribution,
                           employer_contribution, remarks='', recorded_by=None):
    return _record_entry(
        school=school,
        staff=staff,
        entry_type=ProvidentFundTransaction.TYPE_CONTRIBUTION,
        transaction_date=transaction_date,
        employee_contribution=employee_contribution,
        employer_contribution=employer_contribution,
        remarks=remarks,
        recorded_by=recorded_by,
    )


@transaction.atomic
def record_pf_withdrawal(*, school, staff, transaction_date, amount, remarks='', recorded_by=None):
    amount = quantize(amount)
    if amount <= 0:
        raise ValidationError('Withdrawal amount must be greater than zero.')

    # Lock the staff row so concurrent withdrawals see each other's entries.
    Staff.objects.select_for_update().filter(pk=staff.pk).first()
    balance = provident_fund_balance(staff=staff)
    if amount > balance:
        raise ValidationError(
            f'Withdrawal of {amount} exceeds the available provident fund balance of {balance}.'
        )

    return _record_entry(
        school=school,
        staff=staff,
        entry_type=ProvidentFundTransaction.TYPE_WITHDRAWAL,
        transaction_date=transaction_date,
        total_amount=amount,
        remarks=remarks,
        recorded_by=recorded_by,
    )


def provident_fund_summary(*, school, include_inactive=False):
    staff_members = Staff.objects.for_school(school).order_by('employee_id', 'id')
    if not include_inactive:
        staff_members = staff_members.filter(is_active=True)

    totals_by_staff = {
        row['staff_id']: row
        for row in ProvidentFundTransaction.objects.for_school(school)
        .order_by()
        .values('staff_id')
        .annotate(
            employee=Sum(
                'employee_contribution',
                filter=~_withdrawal_q(),
            ),
            employer=Sum(
                'employer_contribution',
                filter=~_withdrawal_q(),
            ),
            withdrawn=Sum('total_amount', filter=_withdrawal_q()),
        )
    }

    rows = []
    grand = {'employee_contribution': ZERO, 'employer_contribution': ZERO, 'withdrawal': ZERO, 'balance': ZERO}
    for staff in staff_members:
        totals = totals_by_staff.get(staff.id, {})
        employee = quantize(totals.get('employee'))
        employer = quantize(totals.get('employer'))
        withdrawn = quantize(totals.get('withdrawn'))
        balance = quantize(employee + employer - withdrawn)
        rows.append(
            {
                'staff_id': staff.id,
                'employee_id': staff.employee_id,
                'name': staff.full_name,
                'designation': staff.designation,
                'employee_contribution': employee,
                'employer_contribution': employer,
                'withdrawal': withdrawn,
                'balance': balance,
            }
        )
        grand['employee_contribution'] += employee
        grand['employer_contribution'] += employer
        grand['withdrawal'] += withdrawn
        grand['balance'] += balance

    return {
        'rows': rows,
        'totals': {key: quantize(value) for key, value in grand.items()},
    }


def parse_amount(raw_value, field_name):
    try:
        return to_decimal(raw_value)
    except (ArithmeticError, TypeError, ValueError):
        raise ValidationError({field_name: 'Enter a valid amount.'})
