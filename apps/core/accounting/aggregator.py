"""
Report aggregation over plain transaction records.

Nothing in this module touches the ORM: callers load records and the
cumulative baselines, this module groups, totals and reconciles them into
report view-models. Money is always ``Decimal`` quantized to two places.

Imbalances are never raised. They are attached to the view-model as
``DataInconsistency`` warnings so the page can show them.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from django.core.exceptions import ValidationError

from apps.core.utils.reporting import ZERO, DataInconsistency, ReportPeriod, money_sum, quantize


CREDIT = 'credit'
DEBIT = 'debit'
DIRECTIONS = (CREDIT, DEBIT)

KIND_INCOME = 'income'
KIND_EXPENSE = 'expense'
KIND_ASSET_PURCHASE = 'asset_purchase'
KIND_TRANSFER_IN = 'transfer_in'
KIND_TRANSFER_OUT = 'transfer_out'
KIND_FUND_IN = 'fund_in'
KIND_FUND_OUT = 'fund_out'

OTHER_CATEGORY = 'Other'

FUND_IN_LABEL = 'Fund In'
FUND_OUT_LABEL = 'Fund Out'
ASSET_PURCHASE_LABEL = 'Asset Purchase'

# Balance sheet: these categories move into their own fund lines instead of the surplus.
WELFARE_DONATION_CATEGORY = 'Staff Welfare Fund Donation'
WELFARE_RECOVERY_CATEGORY = 'Staff Welfare Loan Recovery'
PF_CONTRIBUTION_CATEGORY = 'Provident Fund Contribution'
WELFARE_LOAN_CATEGORY = 'Staff Welfare Loan'
PF_WITHDRAWAL_CATEGORY = 'Provident Fund Withdrawal'
ASSET_PURCHASE_CATEGORY = 'Fixed Asset Purchase'
SURPLUS_EXCLUDED_INCOME = frozenset({
    WELFARE_DONATION_CATEGORY,
    WELFARE_RECOVERY_CATEGORY,
    PF_CONTRIBUTION_CATEGORY,
})
SURPLUS_EXCLUDED_EXPENSE = frozenset({
    WELFARE_LOAN_CATEGORY,
    PF_WITHDRAWAL_CATEGORY,
    ASSET_PURCHASE_CATEGORY,
})

REPORT_ORGANIZATION = 'organization'
REPORT_CLASS = 'class'
REPORT_STUDENT = 'student'
DUE_REPORT_TYPES = (REPORT_ORGANIZATION, REPORT_CLASS, REPORT_STUDENT)


@dataclass(frozen=True)
class TransactionRecord:
    date: date
    amount: Decimal
    direction: str
    category: str = ''
    kind: str = KIND_INCOME
    account_id: int | None = None
    description: str = ''

    def __post_init__(self):
        if self.direction not in DIRECTIONS:
            raise ValueError(f'Unknown direction {self.direction!r}.')
        object.__setattr__(self, 'amount', quantize(self.amount))


@dataclass(frozen=True)
class CategoryBaseline:
    """Amount booked against a category from the window start up to the period start."""

    category_label: str
    amount: Decimal
    direction: str
    kind: str = ''


@dataclass(frozen=True)
class CategoryTotal:
    category_label: str
    month_amount: Decimal
    cumulative_amount: Decimal
    kind: str


@dataclass(frozen=True)
class LineItem:
    description: str
    amount: Decimal


@dataclass(frozen=True)
class ReceiptPaymentReport:
    period: ReportPeriod
    receipts: list[CategoryTotal]
    payments: list[CategoryTotal]
    opening_balance: Decimal
    total_month_receipts: Decimal
    total_month_payments: Decimal
    total_cumulative_receipts: Decimal
    total_cumulative_payments: Decimal
    closing_balance: Decimal
    warnings: list[DataInconsistency] = field(default_factory=list)


@dataclass(frozen=True)
class IncomeExpenditureReport:
    period: ReportPeriod
    incomes: list[LineItem]
    expenditures: list[LineItem]
    total_income: Decimal
    total_expenditure: Decimal
    surplus_deficit: Decimal


@dataclass(frozen=True)
class FundAndLiabilities:
    fund: Decimal
    surplus: Decimal
    provident_fund: Decimal
    staff_welfare_fund: Decimal
    total: Decimal


@dataclass(frozen=True)
class PropertyAndAssets:
    fixed_assets: list[LineItem]
    total_fixed_assets: Decimal
    welfare_loan_outstanding: Decimal
    closing_bank_balance: Decimal
    total: Decimal


@dataclass(frozen=True)
class BalanceSheetReport:
    as_of: date
    fund_and_liabilities: FundAndLiabilities
    property_and_assets: PropertyAndAssets
    balance_difference: Decimal
    warnings: list[DataInconsistency] = field(default_factory=list)


@dataclass(frozen=True)
class BankDay:
    date: date
    credits: dict
    total_credit: Decimal
    debits: dict
    total_debit: Decimal
    balance: Decimal


@dataclass(frozen=True)
class BankReport:
    period: ReportPeriod
    credit_categories: list[str]
    debit_categories: list[str]
    days: list[BankDay]
    credit_totals: dict
    debit_totals: dict
    grand_total_credit: Decimal
    grand_total_debit: Decimal
    opening_balance: Decimal
    closing_balance: Decimal


@dataclass(frozen=True)
class DueRow:
    record_id: int
    student_id: int
    student_number: str
    student_name: str
    class_name: str
    fee_type: str
    month: int
    year: int
    total_amount: Decimal
    paid_amount: Decimal
    status: str
    roll_number: str = '-'
    section: str = '-'
    father_name: str = '-'
    phone: str = '-'
    due_date: date | None = None
    receipt_number: str = ''
    late_fee: Decimal = ZERO
    discount: Decimal = ZERO

    @property
    def due_amount(self) -> Decimal:
        return quantize(quantize(self.total_amount) - quantize(self.paid_amount))


@dataclass(frozen=True)
class DueSummary:
    total_due: Decimal
    total_paid: Decimal
    total_remaining: Decimal
    total_records: int


@dataclass(frozen=True)
class DueReport:
    report_type: str
    data: object
    summary: DueSummary


def _label(category, other_label):
    label = (category or '').strip()
    return label or other_label


def group_category_totals(records, period, baselines=(), other_label=OTHER_CATEGORY):
    """
    Groups one side of a statement by category label.

    Rows keep the order in which their labels first appear among the records
    inside the period; categories known only from ``baselines`` follow with a
    zero month amount. Records outside the period are not counted.
    """
    month_totals = {}
    kinds = {}

    for record in records:
        if not period.contains(record.date):
            continue
        label = _label(record.category, other_label)
        month_totals[label] = month_totals.get(label, ZERO) + record.amount
        kinds.setdefault(label, record.kind)

    baseline_totals = {}
    for baseline in baselines:
        label = _label(baseline.category_label, other_label)
        baseline_totals[label] = baseline_totals.get(label, ZERO) + quantize(baseline.amount)
        kinds.setdefault(label, baseline.kind)

    labels = list(month_totals)
    labels.extend(label for label in baseline_totals if label not in month_totals)

    return [
        CategoryTotal(
            category_label=label,
            month_amount=quantize(month_totals.get(label, ZERO)),
            cumulative_amount=quantize(baseline_totals.get(label, ZERO) + month_totals.get(label, ZERO)),
            kind=kinds.get(label, ''),
        )
        for label in labels
    ]


def aggregate(records, period, prior_closing_balance, baselines=(), recorded_opening=None,
              other_label=OTHER_CATEGORY):
    """Receipt & payment statement for ``period``."""
    records = list(records)
    baselines = list(baselines)

    receipts = group_category_totals(
        [record for record in records if record.direction == CREDIT],
        period,
        [baseline for baseline in baselines if baseline.direction == CREDIT],
        other_label=other_label,
    )
    payments = group_category_totals(
        [record for record in records if record.direction == DEBIT],
        period,
        [baseline for baseline in baselines if baseline.direction == DEBIT],
        other_label=other_label,
    )

    opening_balance = quantize(prior_closing_balance)
    total_month_receipts = money_sum(row.month_amount for row in receipts)
    total_month_payments = money_sum(row.month_amount for row in payments)

    warnings = []
    if recorded_opening is not None and quantize(recorded_opening) != opening_balance:
        difference = quantize(quantize(recorded_opening) - opening_balance)
        warnings.append(
            DataInconsistency(
                code='opening_mismatch',
                message=(
                    f'Stored closing balance {quantize(recorded_opening)} differs from the '
                    f'recomputed opening balance {opening_balance}.'
                ),
                amount=difference,
            )
        )

    return ReceiptPaymentReport(
        period=period,
        receipts=receipts,
        payments=payments,
        opening_balance=opening_balance,
        total_month_receipts=total_month_receipts,
        total_month_payments=total_month_payments,
        total_cumulative_receipts=money_sum(row.cumulative_amount for row in receipts),
        total_cumulative_payments=money_sum(row.cumulative_amount for row in payments),
        closing_balance=quantize(opening_balance + total_month_receipts - total_month_payments),
        warnings=warnings,
    )


def _line_items(records, period, other_label):
    return [
        LineItem(description=row.category_label, amount=row.month_amount)
        for row in group_category_totals(records, period, other_label=other_label)
    ]


def aggregate_income_expenditure(records, period, other_label=OTHER_CATEGORY):
    """Accrual statement: only income and expense records count, transfers and funds do not."""
    records = list(records)
    incomes = _line_items(
        [record for record in records if record.kind == KIND_INCOME],
        period,
        other_label,
    )
    expenditures = _line_items(
        [record for record in records if record.kind == KIND_EXPENSE],
        period,
        other_label,
    )

    total_income = money_sum(item.amount for item in incomes)
    total_expenditure = money_sum(item.amount for item in expenditures)

    return IncomeExpenditureReport(
        period=period,
        incomes=incomes,
        expenditures=expenditures,
        total_income=total_income,
        total_expenditure=total_expenditure,
        surplus_deficit=quantize(total_income - total_expenditure),
    )


def aggregate_balance_sheet(records, as_of, fixed_assets=(), welfare_loan_outstanding=ZERO,
                            closing_bank_balance=ZERO):
    """
    Fund & Liabilities against Property & Assets as of ``as_of``.

    ``fixed_assets`` is an iterable of ``(name, current_value)`` pairs. The
    difference between the two sides is reported, never corrected.
    """
    fund_in = ZERO
    fund_out = ZERO
    surplus_income = ZERO
    surplus_expense = ZERO
    pf_contributions = ZERO
    pf_withdrawals = ZERO
    welfare_donations = ZERO

    for record in records:
        if record.date > as_of:
            continue
        category = (record.category or '').strip()

        if record.kind == KIND_FUND_IN:
            fund_in += record.amount
        elif record.kind == KIND_FUND_OUT:
            fund_out += record.amount
        elif record.kind == KIND_INCOME:
            if category == PF_CONTRIBUTION_CATEGORY:
                pf_contributions += record.amount
            elif category == WELFARE_DONATION_CATEGORY:
                welfare_donations += record.amount
            if category not in SURPLUS_EXCLUDED_INCOME:
                surplus_income += record.amount
        elif record.kind == KIND_EXPENSE:
            if category == PF_WITHDRAWAL_CATEGORY:
                pf_withdrawals += record.amount
            if category not in SURPLUS_EXCLUDED_EXPENSE:
                surplus_expense += record.amount

    fund_balance = quantize(fund_in - fund_out)
    surplus = quantize(surplus_income - surplus_expense)
    provident_fund = quantize(pf_contributions - pf_withdrawals)
    staff_welfare_fund = quantize(welfare_donations)
    liabilities = FundAndLiabilities(
        fund=fund_balance,
        surplus=surplus,
        provident_fund=provident_fund,
        staff_welfare_fund=staff_welfare_fund,
        total=quantize(fund_balance + surplus + provident_fund + staff_welfare_fund),
    )

    asset_lines = [LineItem(description=name, amount=quantize(value)) for name, value in fixed_assets]
    total_fixed_assets = money_sum(line.amount for line in asset_lines)
    welfare_loan_outstanding = quantize(welfare_loan_outstanding)
    closing_bank_balance = quantize(closing_bank_balance)
    assets = PropertyAndAssets(
        fixed_assets=asset_lines,
        total_fixed_assets=total_fixed_assets,
        welfare_loan_outstanding=welfare_loan_outstanding,
        closing_bank_balance=closing_bank_balance,
        total=quantize(total_fixed_assets + welfare_loan_outstanding + closing_bank_balance),
    )

    balance_difference = quantize(liabilities.total - assets.total)
    warnings = []
    if balance_difference != ZERO:
        warnings.append(
            DataInconsistency(
                code='balance_mismatch',
                message=(
                    f'Fund & liabilities ({liabilities.total}) do not match '
                    f'property & assets ({assets.total}).'
                ),
                amount=balance_difference,
            )
        )

    return BalanceSheetReport(
        as_of=as_of,
        fund_and_liabilities=liabilities,
        property_and_assets=assets,
        balance_difference=balance_difference,
        warnings=warnings,
    )


def _bank_columns(categories, other_label):
    columns = []
    for category in categories:
        label = _label(category, other_label)
        if label not in columns:
            columns.append(label)
    return columns


def aggregate_bank_report(records, period, opening_balance, credit_categories, debit_categories,
                          other_label=OTHER_CATEGORY):
    """
    Day-by-day credit/debit breakdown with a running balance.

    Only days with activity produce a row. A record whose category is not
    one of the configured columns is booked under ``other_label``.
    """
    credit_columns = _bank_columns(credit_categories, other_label)
    debit_columns = _bank_columns(debit_categories, other_label)

    by_day = {}
    for record in records:
        if not period.contains(record.date):
            continue
        by_day.setdefault(record.date, []).append(record)

    def _column(label, columns):
        label = _label(label, other_label)
        if label not in columns:
            if other_label not in columns:
                columns.append(other_label)
            return other_label
        return label

    # Resolve columns up-front so every day carries the same keys.
    for day_records in by_day.values():
        for record in day_records:
            _column(record.category, credit_columns if record.direction == CREDIT else debit_columns)

    credit_totals = dict.fromkeys(credit_columns, ZERO)
    debit_totals = dict.fromkeys(debit_columns, ZERO)
    running = quantize(opening_balance)
    days = []

    for day in sorted(by_day):
        credits = dict.fromkeys(credit_columns, ZERO)
        debits = dict.fromkeys(debit_columns, ZERO)
        for record in by_day[day]:
            if record.direction == CREDIT:
                label = _column(record.category, credit_columns)
                credits[label] = quantize(credits[label] + record.amount)
            else:
                label = _column(record.category, debit_columns)
                debits[label] = quantize(debits[label] + record.amount)

        total_credit = money_sum(credits.values())
        total_debit = money_sum(debits.values())
        running = quantize(running + total_credit - total_debit)

        for label, amount in credits.items():
            credit_totals[label] = quantize(credit_totals[label] + amount)
        for label, amount in debits.items():
            debit_totals[label] = quantize(debit_totals[label] + amount)

        days.append(
            BankDay(
                date=day,
                credits=credits,
                total_credit=total_credit,
                debits=debits,
                total_debit=total_debit,
                balance=running,
            )
        )

    return BankReport(
        period=period,
        credit_categories=credit_columns,
        debit_categories=debit_columns,
        days=days,
        credit_totals=credit_totals,
        debit_totals=debit_totals,
        grand_total_credit=money_sum(credit_totals.values()),
        grand_total_debit=money_sum(debit_totals.values()),
        opening_balance=quantize(opening_balance),
        closing_balance=running,
    )


def _fee_entry(row):
    return {
        'id': row.record_id,
        'receipt_number': row.receipt_number,
        'fee_type': row.fee_type,
        'month': row.month,
        'year': row.year,
        'total_amount': quantize(row.total_amount),
        'paid_amount': quantize(row.paid_amount),
        'due_amount': row.due_amount,
        'late_fee': quantize(row.late_fee),
        'discount': quantize(row.discount),
        'status': row.status,
        'due_date': row.due_date,
    }


def _money_group(**identity):
    return {
        **identity,
        'total_amount': ZERO,
        'paid_amount': ZERO,
        'due_amount': ZERO,
    }


def _add_money(group, row):
    group['total_amount'] = quantize(group['total_amount'] + row.total_amount)
    group['paid_amount'] = quantize(group['paid_amount'] + row.paid_amount)
    group['due_amount'] = quantize(group['due_amount'] + row.due_amount)


def _organization_due(rows):
    fee_type_wise = {}
    class_wise = {}
    for row in rows:
        fee_group = fee_type_wise.setdefault(row.fee_type, _money_group(fee_type=row.fee_type, record_count=0))
        _add_money(fee_group, row)
        fee_group['record_count'] += 1

        class_group = class_wise.setdefault(row.class_name, _money_group(class_name=row.class_name, record_count=0))
        _add_money(class_group, row)
        class_group['record_count'] += 1

    return {
        'fee_type_wise': list(fee_type_wise.values()),
        'class_wise': list(class_wise.values()),
    }


def _student_group(row, with_class=False):
    group = _money_group(
        student_id=row.student_id,
        student_number=row.student_number,
        student_name=row.student_name,
        roll_number=row.roll_number,
        section=row.section,
    )
    if with_class:
        group.update(class_name=row.class_name, father_name=row.father_name, phone=row.phone)
    group['fees'] = []
    return group


def _class_due(rows):
    classes = {}
    for row in rows:
        class_group = classes.setdefault(
            row.class_name,
            {'class_name': row.class_name, 'students': {}, 'total_due': ZERO, 'total_paid': ZERO, 'total_remaining': ZERO},
        )
        student_group = class_group['students'].setdefault(row.student_id, _student_group(row))
        _add_money(student_group, row)
        student_group['fees'].append(_fee_entry(row))

        class_group['total_due'] = quantize(class_group['total_due'] + row.total_amount)
        class_group['total_paid'] = quantize(class_group['total_paid'] + row.paid_amount)
        class_group['total_remaining'] = quantize(class_group['total_remaining'] + row.due_amount)

    result = []
    for class_group in classes.values():
        class_group['students'] = list(class_group['students'].values())
        result.append(class_group)
    return result


def _student_due(rows):
    students = {}
    for row in rows:
        student_group = students.setdefault(row.student_id, _student_group(row, with_class=True))
        _add_money(student_group, row)
        student_group['fees'].append(_fee_entry(row))
    return list(students.values())


def aggregate_due_report(rows, report_type=REPORT_ORGANIZATION):
    """Groups outstanding fee rows; groups keep the order of their first row."""
    if report_type not in DUE_REPORT_TYPES:
        raise ValidationError(
            f'Unknown due report type {report_type!r}.',
            code='invalid_report_type',
        )

    rows = list(rows)
    if report_type == REPORT_ORGANIZATION:
        data = _organization_due(rows)
    elif report_type == REPORT_CLASS:
        data = _class_due(rows)
    else:
        data = _student_due(rows)

    summary = DueSummary(
        total_due=money_sum(row.total_amount for row in rows),
        total_paid=money_sum(row.paid_amount for row in rows),
        total_remaining=money_sum(row.due_amount for row in rows),
        total_records=len(rows),
    )
    return DueReport(report_type=report_type, data=data, summary=summary)
