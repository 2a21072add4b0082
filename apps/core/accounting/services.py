from __future__ import annotations

import logging
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.db import transaction
from django.db.models import Q, Sum

from apps.core.academic_sessions.services import session_covering
from apps.core.fees.services import due_rows, outstanding_fee_records
from apps.core.utils.exceptions import UnknownAccount
from apps.core.utils.reporting import ZERO, quantize

from . import aggregator
from .aggregator import CREDIT, DEBIT, CategoryBaseline, TransactionRecord
from .models import (
    Account,
    ExpenseCategory,
    FixedAsset,
    FundTransaction,
    IncomeCategory,
    PeriodClosing,
    StaffWelfareLoan,
    Transaction,
)


logger = logging.getLogger(__name__)

TRANSFER_IN_LABEL = 'Transfer In'
TRANSFER_OUT_LABEL = 'Transfer Out'


def _other_label():
    return getattr(settings, 'REPORT_OTHER_CATEGORY_LABEL', aggregator.OTHER_CATEGORY)


def resolve_account(*, school, account_id):
    if account_id in (None, ''):
        return None
    try:
        account_pk = int(account_id)
    except (TypeError, ValueError):
        raise UnknownAccount(account_id)

    account = Account.objects.for_school(school).filter(pk=account_pk).first()
    if account is None:
        raise UnknownAccount(account_id)
    return account


def _reporting_accounts(school, account=None):
    # Deactivated accounts keep their history, so balances span every account.
    if account is not None:
        return [account]
    return list(Account.objects.for_school(school))


def _sum(queryset):
    return quantize(queryset.aggregate(total=Sum('amount'))['total'])


def _net_movement(school, accounts, date_filter):
    """Cash effect on ``accounts`` of every movement matching ``date_filter``."""
    account_ids = [account.id for account in accounts]
    if not account_ids:
        return ZERO

    transactions = Transaction.objects.for_school(school).filter(**date_filter)
    outgoing_types = [Transaction.TYPE_EXPENSE, Transaction.TYPE_ASSET_PURCHASE, Transaction.TYPE_TRANSFER]

    income = _sum(transactions.filter(account_id__in=account_ids, type=Transaction.TYPE_INCOME))
    outgoing = _sum(transactions.filter(account_id__in=account_ids, type__in=outgoing_types))
    transfers_in = _sum(
        transactions.filter(transfer_to_account_id__in=account_ids, type=Transaction.TYPE_TRANSFER)
    )

    fund_transactions = FundTransaction.objects.for_school(school).filter(
        account_id__in=account_ids,
        **date_filter,
    )
    fund_in = _sum(fund_transactions.filter(transaction_type=FundTransaction.TYPE_IN))
    fund_out = _sum(fund_transactions.filter(transaction_type=FundTransaction.TYPE_OUT))

    return quantize(income + transfers_in + fund_in - outgoing - fund_out)


def _opening_balances(accounts):
    return quantize(sum((account.opening_balance for account in accounts), Decimal('0')))


def account_balance_as_of(*, school, as_of, account=None):
    """Balance after every movement dated on or before ``as_of``."""
    accounts = _reporting_accounts(school, account)
    movement = _net_movement(school, accounts, {'transaction_date__lte': as_of})
    return quantize(_opening_balances(accounts) + movement)


def balance_before(*, school, start_date, account=None):
    """Closing balance of the day before ``start_date``: opening balances plus earlier movements."""
    accounts = _reporting_accounts(school, account)
    movement = _net_movement(school, accounts, {'transaction_date__lt': start_date})
    return quantize(_opening_balances(accounts) + movement)


def _transaction_record(transaction_row, account=None, other_label=''):
    common = {
        'date': transaction_row.transaction_date,
        'amount': transaction_row.amount,
        'account_id': transaction_row.account_id,
        'description': transaction_row.description,
    }
    row_type = transaction_row.type

    if row_type == Transaction.TYPE_TRANSFER:
        if account is None:
            # Transfers between the school's own accounts net to zero.
            return None
        if transaction_row.transfer_to_account_id == account.id:
            return TransactionRecord(
                direction=CREDIT,
                category=TRANSFER_IN_LABEL,
                kind=aggregator.KIND_TRANSFER_IN,
                **common,
            )
        return TransactionRecord(
            direction=DEBIT,
            category=TRANSFER_OUT_LABEL,
            kind=aggregator.KIND_TRANSFER_OUT,
            **common,
        )

    if row_type == Transaction.TYPE_INCOME:
        return TransactionRecord(
            direction=CREDIT,
            category=transaction_row.category_name or other_label,
            kind=aggregator.KIND_INCOME,
            **common,
        )

    if row_type == Transaction.TYPE_ASSET_PURCHASE:
        return TransactionRecord(
            direction=DEBIT,
            category=transaction_row.category_name or aggregator.ASSET_PURCHASE_LABEL,
            kind=aggregator.KIND_ASSET_PURCHASE,
            **common,
        )

    return TransactionRecord(
        direction=DEBIT,
        category=transaction_row.category_name or other_label,
        kind=aggregator.KIND_EXPENSE,
        **common,
    )


def _fund_record(fund_row, label_style='named'):
    is_in = fund_row.transaction_type == FundTransaction.TYPE_IN
    base_label = aggregator.FUND_IN_LABEL if is_in else aggregator.FUND_OUT_LABEL
    category = f'{base_label} - {fund_row.fund.name}' if label_style == 'named' else base_label
    return TransactionRecord(
        date=fund_row.transaction_date,
        amount=fund_row.amount,
        direction=CREDIT if is_in else DEBIT,
        category=category,
        kind=aggregator.KIND_FUND_IN if is_in else aggregator.KIND_FUND_OUT,
        account_id=fund_row.account_id,
        description=fund_row.description,
    )


def load_transaction_records(*, school, date_filter, account=None, include_funds=True,
                             fund_label_style='named', types=None):
    """Converts stored transactions into aggregator records, in date order."""
    other_label = _other_label()
    transactions = Transaction.objects.for_school(school).filter(**date_filter).select_related(
        'income_category',
        'expense_category',
    )
    if account is not None:
        transactions = transactions.filter(Q(account=account) | Q(transfer_to_account=account))
    if types is not None:
        transactions = transactions.filter(type__in=types)

    records = []
    for transaction_row in transactions.order_by('transaction_date', 'id'):
        record = _transaction_record(transaction_row, account=account, other_label=other_label)
        if record is not None:
            records.append(record)

    if include_funds:
        fund_transactions = FundTransaction.objects.for_school(school).filter(**date_filter).select_related('fund')
        if account is not None:
            fund_transactions = fund_transactions.filter(account=account)
        records.extend(
            _fund_record(fund_row, label_style=fund_label_style)
            for fund_row in fund_transactions.order_by('transaction_date', 'id')
        )

    return records


def _tracking_window_start(school, period):
    session = session_covering(school=school, target_date=period.start_date)
    if session and session.contains(period.start_date):
        return session.start_date
    return None


def category_baselines(*, school, period, account=None):
    """
    Per-category amounts from the tracking window start up to the day before
    the period. The window is the academic session covering the period start,
    or the whole history when no session covers it.
    """
    window_start = _tracking_window_start(school, period)
    date_filter = {'transaction_date__lt': period.start_date}
    if window_start:
        date_filter['transaction_date__gte'] = window_start

    other_label = _other_label()
    baselines = []

    transactions = Transaction.objects.for_school(school).filter(**date_filter)
    if account is not None:
        owned = transactions.filter(account=account)
    else:
        owned = transactions

    grouped = (
        owned.exclude(type=Transaction.TYPE_TRANSFER)
        .order_by()
        .values('type', 'income_category__name', 'expense_category__name')
        .annotate(total=Sum('amount'))
    )
    for row in grouped:
        if row['type'] == Transaction.TYPE_INCOME:
            baselines.append(
                CategoryBaseline(
                    category_label=row['income_category__name'] or other_label,
                    amount=quantize(row['total']),
                    direction=CREDIT,
                    kind=aggregator.KIND_INCOME,
                )
            )
        elif row['type'] == Transaction.TYPE_ASSET_PURCHASE:
            baselines.append(
                CategoryBaseline(
                    category_label=row['expense_category__name'] or aggregator.ASSET_PURCHASE_LABEL,
                    amount=quantize(row['total']),
                    direction=DEBIT,
                    kind=aggregator.KIND_ASSET_PURCHASE,
                )
            )
        else:
            baselines.append(
                CategoryBaseline(
                    category_label=row['expense_category__name'] or other_label,
                    amount=quantize(row['total']),
                    direction=DEBIT,
                    kind=aggregator.KIND_EXPENSE,
                )
            )

    if account is not None:
        transfers = transactions.filter(type=Transaction.TYPE_TRANSFER)
        transfer_in = _sum(transfers.filter(transfer_to_account=account))
        transfer_out = _sum(transfers.filter(account=account))
        if transfer_in:
            baselines.append(CategoryBaseline(TRANSFER_IN_LABEL, transfer_in, CREDIT, aggregator.KIND_TRANSFER_IN))
        if transfer_out:
            baselines.append(CategoryBaseline(TRANSFER_OUT_LABEL, transfer_out, DEBIT, aggregator.KIND_TRANSFER_OUT))

    fund_transactions = FundTransaction.objects.for_school(school).filter(**date_filter)
    if account is not None:
        fund_transactions = fund_transactions.filter(account=account)
    for row in (
        fund_transactions.order_by()
        .values('transaction_type', 'fund__name')
        .annotate(total=Sum('amount'))
    ):
        is_in = row['transaction_type'] == FundTransaction.TYPE_IN
        base_label = aggregator.FUND_IN_LABEL if is_in else aggregator.FUND_OUT_LABEL
        baselines.append(
            CategoryBaseline(
                category_label=f"{base_label} - {row['fund__name']}",
                amount=quantize(row['total']),
                direction=CREDIT if is_in else DEBIT,
                kind=aggregator.KIND_FUND_IN if is_in else aggregator.KIND_FUND_OUT,
            )
        )

    return baselines


def _recorded_opening(school, period, account):
    closing = PeriodClosing.objects.for_school(school).filter(
        account=account,
        period_end=period.start_date - timedelta(days=1),
    ).first()
    return closing.closing_balance if closing else None


def receipt_payment_report(*, school, period):
    account = resolve_account(school=school, account_id=period.account_id)

    records = load_transaction_records(
        school=school,
        date_filter={
            'transaction_date__gte': period.start_date,
            'transaction_date__lte': period.end_date,
        },
        account=account,
    )
    report = aggregator.aggregate(
        records,
        period,
        prior_closing_balance=balance_before(school=school, start_date=period.start_date, account=account),
        baselines=category_baselines(school=school, period=period, account=account),
        recorded_opening=_recorded_opening(school, period, account),
        other_label=_other_label(),
    )

    for warning in report.warnings:
        logger.warning('Receipt & payment report for school %s: %s', school.id, warning.message)
    return report


def income_expenditure_report(*, school, period):
    account = resolve_account(school=school, account_id=period.account_id)

    transactions_filter = {
        'transaction_date__gte': period.start_date,
        'transaction_date__lte': period.end_date,
    }
    if account is not None:
        transactions_filter['account'] = account

    records = load_transaction_records(
        school=school,
        date_filter=transactions_filter,
        include_funds=False,
        types=[Transaction.TYPE_INCOME, Transaction.TYPE_EXPENSE],
    )
    return aggregator.aggregate_income_expenditure(records, period, other_label=_other_label())


def balance_sheet_report(*, school, as_of):
    records = load_transaction_records(
        school=school,
        date_filter={'transaction_date__lte': as_of},
        types=[Transaction.TYPE_INCOME, Transaction.TYPE_EXPENSE],
    )

    fixed_assets = [
        (asset.asset_name, asset.current_value)
        for asset in FixedAsset.objects.for_school(school).filter(
            status=FixedAsset.STATUS_ACTIVE,
            purchase_date__lte=as_of,
        ).order_by('asset_name', 'id')
    ]
    welfare_loan_outstanding = quantize(
        sum(
            (
                loan.outstanding_amount
                for loan in StaffWelfareLoan.objects.for_school(school).filter(
                    status=StaffWelfareLoan.STATUS_ACTIVE,
                    loan_date__lte=as_of,
                )
            ),
            Decimal('0'),
        )
    )

    report = aggregator.aggregate_balance_sheet(
        records,
        as_of,
        fixed_assets=fixed_assets,
        welfare_loan_outstanding=welfare_loan_outstanding,
        closing_bank_balance=account_balance_as_of(school=school, as_of=as_of),
    )
    for warning in report.warnings:
        logger.warning('Balance sheet for school %s as of %s: %s', school.id, as_of, warning.message)
    return report


def bank_report(*, school, period):
    income_names = list(
        IncomeCategory.objects.for_school(school).filter(is_active=True).order_by('name').values_list('name', flat=True)
    )
    expense_names = list(
        ExpenseCategory.objects.for_school(school).filter(is_active=True).order_by('name').values_list('name', flat=True)
    )
    credit_categories = [aggregator.FUND_IN_LABEL, *income_names]
    debit_categories = [aggregator.FUND_OUT_LABEL, *expense_names, aggregator.ASSET_PURCHASE_LABEL]

    records = [
        _bank_record(record)
        for record in load_transaction_records(
            school=school,
            date_filter={
                'transaction_date__gte': period.start_date,
                'transaction_date__lte': period.end_date,
            },
            fund_label_style='plain',
        )
    ]

    return aggregator.aggregate_bank_report(
        records,
        period,
        opening_balance=balance_before(school=school, start_date=period.start_date),
        credit_categories=credit_categories,
        debit_categories=debit_categories,
        other_label=_other_label(),
    )


def _bank_record(record):
    # Asset purchases share one column whatever expense category they carry.
    if record.kind == aggregator.KIND_ASSET_PURCHASE:
        return TransactionRecord(
            date=record.date,
            amount=record.amount,
            direction=record.direction,
            category=aggregator.ASSET_PURCHASE_LABEL,
            kind=record.kind,
            account_id=record.account_id,
            description=record.description,
        )
    return record


def due_report(*, school, period, report_type, school_class=None, student=None, session=None):
    fee_records = outstanding_fee_records(
        school=school,
        date_from=period.start_date,
        date_to=period.end_date,
        session=session or school.current_session,
        school_class=school_class,
        student=student,
        newest_first=report_type == aggregator.REPORT_STUDENT,
    )
    return aggregator.aggregate_due_report(due_rows(fee_records), report_type)


@transaction.atomic
def close_period(*, school, period_end, account=None, closed_by=None):
    """Stores the recomputed balance at ``period_end`` as the next period's recorded opening."""
    if account is not None and account.school_id != school.id:
        raise UnknownAccount(account.id)

    closing_balance = account_balance_as_of(
        school=school,
        as_of=period_end,
        account=account,
    )
    closing, _ = PeriodClosing.objects.update_or_create(
        school=school,
        account=account,
        period_end=period_end,
        defaults={'closing_balance': closing_balance, 'closed_by': closed_by},
    )
    logger.info(
        'Closed period %s for school %s (account %s) at %s',
        period_end,
        school.id,
        account.id if account else 'all',
        closing_balance,
    )
    return closing
