from datetime import date
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.test import SimpleTestCase, TestCase
from django.urls import reverse

from apps.core.academic_sessions.models import AcademicSession
from apps.core.academics.models import SchoolClass, Section
from apps.core.fees.models import FeeRecord, FeeType
from apps.core.schools.models import School
from apps.core.students.models import Student
from apps.core.utils.exceptions import InvalidPeriod, UnknownAccount
from apps.core.utils.reporting import ZERO, ReportPeriod

from . import aggregator
from .aggregator import CREDIT, DEBIT, CategoryBaseline, DueRow, TransactionRecord
from .models import (
    Account,
    ExpenseCategory,
    FixedAsset,
    Fund,
    FundTransaction,
    IncomeCategory,
    PeriodClosing,
    Transaction,
)
from .services import (
    account_balance_as_of,
    balance_sheet_report,
    bank_report,
    close_period,
    due_report,
    income_expenditure_report,
    receipt_payment_report,
)


FEBRUARY = ReportPeriod(start_date=date(2024, 2, 1), end_date=date(2024, 2, 29))


def _record(day, amount, direction=CREDIT, category='Tuition', kind=aggregator.KIND_INCOME):
    return TransactionRecord(
        date=day,
        amount=Decimal(amount),
        direction=direction,
        category=category,
        kind=kind,
    )


class ReportPeriodTests(SimpleTestCase):
    def test_reversed_range_is_rejected(self):
        with self.assertRaises(InvalidPeriod):
            ReportPeriod(start_date=date(2024, 3, 2), end_date=date(2024, 3, 1))

    def test_single_day_period_is_allowed(self):
        period = ReportPeriod(start_date=date(2024, 3, 1), end_date=date(2024, 3, 1))
        self.assertEqual(list(period.days()), [date(2024, 3, 1)])

    def test_for_month_covers_leap_february(self):
        period = ReportPeriod.for_month(2024, 2)
        self.assertEqual(period.end_date, date(2024, 2, 29))


class ReceiptPaymentAggregatorTests(SimpleTestCase):
    def test_empty_period_yields_zero_report(self):
        report = aggregator.aggregate([], FEBRUARY, prior_closing_balance=ZERO)

        self.assertEqual(report.receipts, [])
        self.assertEqual(report.payments, [])
        self.assertEqual(report.opening_balance, ZERO)
        self.assertEqual(report.closing_balance, ZERO)
        self.assertEqual(report.warnings, [])

    def test_month_totals_account_for_every_record_in_period(self):
        records = [
            _record(date(2024, 2, 3), '1200.50'),
            _record(date(2024, 2, 9), '300.25', category='Admission'),
            _record(date(2024, 2, 9), '99.25'),
            _record(date(2024, 3, 1), '5000'),
            _record(date(2024, 2, 11), '450', direction=DEBIT, category='Salary', kind=aggregator.KIND_EXPENSE),
        ]

        report = aggregator.aggregate(records, FEBRUARY, prior_closing_balance=Decimal('1000'))

        self.assertEqual(report.total_month_receipts, Decimal('1600.00'))
        self.assertEqual(
            sum(row.month_amount for row in report.receipts),
            sum(r.amount for r in records if r.direction == CREDIT and FEBRUARY.contains(r.date)),
        )
        self.assertEqual([row.category_label for row in report.receipts], ['Tuition', 'Admission'])
        self.assertEqual(report.closing_balance, Decimal('2150.00'))

    def test_blank_category_falls_into_other(self):
        records = [_record(date(2024, 2, 3), '75', category='   ')]

        report = aggregator.aggregate(records, FEBRUARY, prior_closing_balance=ZERO)

        self.assertEqual(report.receipts[0].category_label, 'Other')
        self.assertEqual(report.receipts[0].month_amount, Decimal('75.00'))

    def test_cumulative_adds_baseline_to_month(self):
        records = [_record(date(2024, 2, 3), '3000')]
        baselines = [
            CategoryBaseline('Tuition', Decimal('5000'), CREDIT, aggregator.KIND_INCOME),
            CategoryBaseline('Donation', Decimal('250'), CREDIT, aggregator.KIND_INCOME),
        ]

        report = aggregator.aggregate(records, FEBRUARY, prior_closing_balance=ZERO, baselines=baselines)

        tuition, donation = report.receipts
        self.assertEqual(tuition.cumulative_amount, Decimal('8000.00'))
        self.assertEqual(donation.month_amount, ZERO)
        self.assertEqual(donation.cumulative_amount, Decimal('250.00'))
        self.assertEqual(report.total_cumulative_receipts, Decimal('8250.00'))

    def test_stored_opening_mismatch_is_flagged(self):
        report = aggregator.aggregate(
            [],
            FEBRUARY,
            prior_closing_balance=Decimal('90'),
            recorded_opening=Decimal('100'),
        )

        self.assertEqual(report.opening_balance, Decimal('90.00'))
        self.assertEqual([warning.code for warning in report.warnings], ['opening_mismatch'])
        self.assertEqual(report.warnings[0].amount, Decimal('10.00'))


class IncomeExpenditureAggregatorTests(SimpleTestCase):
    def test_only_income_and_expense_count(self):
        records = [
            _record(date(2024, 2, 3), '1000'),
            _record(date(2024, 2, 4), '400', direction=DEBIT, category='Salary', kind=aggregator.KIND_EXPENSE),
            _record(date(2024, 2, 5), '5000', category='Fund In - Trust', kind=aggregator.KIND_FUND_IN),
            _record(date(2024, 2, 6), '300', category='Transfer In', kind=aggregator.KIND_TRANSFER_IN),
        ]

        report = aggregator.aggregate_income_expenditure(records, FEBRUARY)

        self.assertEqual([item.description for item in report.incomes], ['Tuition'])
        self.assertEqual(report.total_income, Decimal('1000.00'))
        self.assertEqual(report.total_expenditure, Decimal('400.00'))
        self.assertEqual(report.surplus_deficit, Decimal('600.00'))

    def test_deficit_is_negative(self):
        records = [_record(date(2024, 2, 4), '10', direction=DEBIT, category='Salary', kind=aggregator.KIND_EXPENSE)]

        report = aggregator.aggregate_income_expenditure(records, FEBRUARY)

        self.assertEqual(report.surplus_deficit, Decimal('-10.00'))


class BalanceSheetAggregatorTests(SimpleTestCase):
    def test_empty_balance_sheet_balances(self):
        report = aggregator.aggregate_balance_sheet([], date(2024, 2, 29))

        self.assertEqual(report.fund_and_liabilities.total, ZERO)
        self.assertEqual(report.property_and_assets.total, ZERO)
        self.assertEqual(report.balance_difference, ZERO)
        self.assertEqual(report.warnings, [])

    def test_mismatch_is_reported_not_corrected(self):
        records = [_record(date(2024, 1, 5), '50000', category='Fund In - Trust', kind=aggregator.KIND_FUND_IN)]

        report = aggregator.aggregate_balance_sheet(
            records,
            date(2024, 2, 29),
            closing_bank_balance=Decimal('49500'),
        )

        self.assertEqual(report.fund_and_liabilities.total, Decimal('50000.00'))
        self.assertEqual(report.property_and_assets.total, Decimal('49500.00'))
        self.assertEqual(report.balance_difference, Decimal('500.00'))
        self.assertEqual([warning.code for warning in report.warnings], ['balance_mismatch'])

    def test_provident_fund_categories_leave_surplus(self):
        records = [
            _record(date(2024, 1, 5), '800', category=aggregator.PF_CONTRIBUTION_CATEGORY),
            _record(date(2024, 1, 6), '1000'),
            _record(
                date(2024, 1, 7),
                '300',
                direction=DEBIT,
                category=aggregator.PF_WITHDRAWAL_CATEGORY,
                kind=aggregator.KIND_EXPENSE,
            ),
            _record(date(2024, 3, 1), '999'),
        ]

        report = aggregator.aggregate_balance_sheet(
            records,
            date(2024, 2, 29),
            fixed_assets=[('Bus', Decimal('200'))],
            closing_bank_balance=Decimal('1300'),
        )

        liabilities = report.fund_and_liabilities
        self.assertEqual(liabilities.surplus, Decimal('1000.00'))
        self.assertEqual(liabilities.provident_fund, Decimal('500.00'))
        self.assertEqual(report.property_and_assets.total_fixed_assets, Decimal('200.00'))
        self.assertEqual(report.balance_difference, ZERO)


class BankReportAggregatorTests(SimpleTestCase):
    def test_only_active_days_with_running_balance(self):
        records = [
            _record(date(2024, 2, 3), '500'),
            _record(date(2024, 2, 3), '200', category='Fund In', kind=aggregator.KIND_FUND_IN),
            _record(date(2024, 2, 10), '100', direction=DEBIT, category='Stationery', kind=aggregator.KIND_EXPENSE),
        ]

        report = aggregator.aggregate_bank_report(
            records,
            FEBRUARY,
            opening_balance=Decimal('1000'),
            credit_categories=['Fund In', 'Tuition'],
            debit_categories=['Fund Out', 'Salary'],
        )

        self.assertEqual([day.date for day in report.days], [date(2024, 2, 3), date(2024, 2, 10)])
        self.assertEqual([day.balance for day in report.days], [Decimal('1700.00'), Decimal('1600.00')])
        self.assertEqual(report.debit_categories, ['Fund Out', 'Salary', 'Other'])
        self.assertEqual(report.days[1].debits['Other'], Decimal('100.00'))
        self.assertEqual(report.grand_total_credit, Decimal('700.00'))
        self.assertEqual(report.closing_balance, Decimal('1600.00'))


class DueReportAggregatorTests(SimpleTestCase):
    def _due_row(self, record_id, student_id, class_name, fee_type, total, paid):
        return DueRow(
            record_id=record_id,
            student_id=student_id,
            student_number=f'S-{student_id}',
            student_name=f'Student {student_id}',
            class_name=class_name,
            fee_type=fee_type,
            month=2,
            year=2024,
            total_amount=Decimal(total),
            paid_amount=Decimal(paid),
            status='partial' if Decimal(paid) else 'pending',
        )

    def setUp(self):
        self.rows = [
            self._due_row(1, 1, 'Class 1', 'Tuition', '500', '100'),
            self._due_row(2, 1, 'Class 1', 'Transport', '200', '0'),
            self._due_row(3, 2, 'Class 2', 'Tuition', '500', '0'),
        ]

    def test_organization_groups_by_fee_type_and_class(self):
        report = aggregator.aggregate_due_report(self.rows, aggregator.REPORT_ORGANIZATION)

        fee_types = {group['fee_type']: group for group in report.data['fee_type_wise']}
        self.assertEqual(fee_types['Tuition']['due_amount'], Decimal('900.00'))
        self.assertEqual(fee_types['Tuition']['record_count'], 2)
        self.assertEqual([group['class_name'] for group in report.data['class_wise']], ['Class 1', 'Class 2'])
        self.assertEqual(report.summary.total_remaining, Decimal('1100.00'))
        self.assertEqual(report.summary.total_records, 3)

    def test_class_report_nests_students_and_fees(self):
        report = aggregator.aggregate_due_report(self.rows, aggregator.REPORT_CLASS)

        first_class = report.data[0]
        self.assertEqual(first_class['class_name'], 'Class 1')
        self.assertEqual(len(first_class['students']), 1)
        self.assertEqual(len(first_class['students'][0]['fees']), 2)
        self.assertEqual(first_class['total_remaining'], Decimal('600.00'))

    def test_unknown_report_type_is_rejected(self):
        with self.assertRaises(ValidationError):
            aggregator.aggregate_due_report(self.rows, 'yearly')


class AccountingBaseTestCase(TestCase):
    def setUp(self):
        user_model = get_user_model()

        self.school = School.objects.create(name='Ledger School', code='ledger_school')
        self.session = AcademicSession.objects.create(
            school=self.school,
            name='2024',
            start_date=date(2024, 1, 1),
            end_date=date(2024, 12, 31),
            is_active=True,
        )
        self.school.current_session = self.session
        self.school.save(update_fields=['current_session'])

        self.admin = user_model.objects.create_user(
            username='ledger_admin',
            password='pass12345',
            role='schooladmin',
            school=self.school,
        )
        self.accountant = user_model.objects.create_user(
            username='ledger_accountant',
            password='pass12345',
            role='accountant',
            school=self.school,
        )

        self.cash = Account.objects.create(
            school=self.school,
            account_name='Cash Box',
            account_type=Account.TYPE_CASH,
        )
        self.bank = Account.objects.create(
            school=self.school,
            account_name='Main Bank',
            account_type=Account.TYPE_BANK,
            bank_name='Sonali Bank',
        )
        self.tuition = IncomeCategory.objects.create(school=self.school, name='Tuition')
        self.salary = ExpenseCategory.objects.create(school=self.school, name='Salary')

        self._post(Transaction.TYPE_INCOME, self.cash, '5000', date(2024, 1, 15), income_category=self.tuition)
        self._post(Transaction.TYPE_INCOME, self.cash, '3000', date(2024, 2, 10), income_category=self.tuition)
        self._post(Transaction.TYPE_EXPENSE, self.cash, '2000', date(2024, 2, 12), expense_category=self.salary)
        self._post(Transaction.TYPE_TRANSFER, self.cash, '1000', date(2024, 2, 20), transfer_to_account=self.bank)
        self._post(Transaction.TYPE_INCOME, self.bank, '100', date(2024, 2, 25))

    def _post(self, type_, account, amount, day, **extra):
        return Transaction.objects.create(
            school=self.school,
            account=account,
            type=type_,
            amount=Decimal(amount),
            transaction_date=day,
            **extra,
        )


class ReceiptPaymentServiceTests(AccountingBaseTestCase):
    def test_all_accounts_statement_ignores_internal_transfers(self):
        report = receipt_payment_report(school=self.school, period=FEBRUARY)

        receipts = {row.category_label: row for row in report.receipts}
        self.assertEqual(report.opening_balance, Decimal('5000.00'))
        self.assertEqual(receipts['Tuition'].month_amount, Decimal('3000.00'))
        self.assertEqual(receipts['Tuition'].cumulative_amount, Decimal('8000.00'))
        self.assertEqual(receipts['Other'].month_amount, Decimal('100.00'))
        self.assertNotIn('Transfer In', receipts)
        self.assertEqual(report.total_month_payments, Decimal('2000.00'))
        self.assertEqual(report.closing_balance, Decimal('6100.00'))

    def test_closing_matches_recomputed_balance(self):
        report = receipt_payment_report(school=self.school, period=FEBRUARY)

        self.assertEqual(
            report.closing_balance,
            account_balance_as_of(school=self.school, as_of=FEBRUARY.end_date),
        )

    def test_inactive_account_movements_carry_into_next_opening(self):
        old_bank = Account.objects.create(
            school=self.school,
            account_name='Old Bank',
            account_type=Account.TYPE_BANK,
            bank_name='Janata Bank',
            status=Account.STATUS_INACTIVE,
        )
        self._post(Transaction.TYPE_INCOME, old_bank, '700', date(2024, 2, 5), income_category=self.tuition)
        march = ReportPeriod.for_month(2024, 3)

        february_report = receipt_payment_report(school=self.school, period=FEBRUARY)
        close_period(school=self.school, period_end=FEBRUARY.end_date, closed_by=self.accountant)
        march_report = receipt_payment_report(school=self.school, period=march)

        self.assertEqual(february_report.closing_balance, Decimal('6800.00'))
        self.assertEqual(march_report.opening_balance, february_report.closing_balance)
        self.assertEqual(march_report.warnings, [])

    def test_single_account_statement_shows_transfers(self):
        period = ReportPeriod(start_date=FEBRUARY.start_date, end_date=FEBRUARY.end_date, account_id=self.bank.id)

        report = receipt_payment_report(school=self.school, period=period)

        receipts = {row.category_label: row.month_amount for row in report.receipts}
        self.assertEqual(report.opening_balance, ZERO)
        self.assertEqual(receipts, {'Transfer In': Decimal('1000.00'), 'Other': Decimal('100.00')})
        self.assertEqual(report.closing_balance, Decimal('1100.00'))

    def test_account_opening_balance_carries_into_opening(self):
        self.cash.opening_balance = Decimal('10000')
        self.cash.save(update_fields=['opening_balance'])

        report = receipt_payment_report(school=self.school, period=FEBRUARY)

        self.assertEqual(report.opening_balance, Decimal('15000.00'))

    def test_unknown_account_is_rejected(self):
        period = ReportPeriod(start_date=FEBRUARY.start_date, end_date=FEBRUARY.end_date, account_id=999999)

        with self.assertRaises(UnknownAccount):
            receipt_payment_report(school=self.school, period=period)

    def test_back_dated_entry_after_closing_is_flagged(self):
        close_period(school=self.school, period_end=date(2024, 1, 31), closed_by=self.accountant)
        self._post(Transaction.TYPE_EXPENSE, self.cash, '500', date(2024, 1, 20), expense_category=self.salary)

        report = receipt_payment_report(school=self.school, period=FEBRUARY)

        self.assertEqual(report.opening_balance, Decimal('4500.00'))
        self.assertEqual([warning.code for warning in report.warnings], ['opening_mismatch'])
        self.assertEqual(report.warnings[0].amount, Decimal('500.00'))


class ClosePeriodTests(AccountingBaseTestCase):
    def test_closing_is_stored_and_replaced(self):
        close_period(school=self.school, period_end=date(2024, 1, 31))
        self._post(Transaction.TYPE_INCOME, self.cash, '250', date(2024, 1, 31), income_category=self.tuition)
        closing = close_period(school=self.school, period_end=date(2024, 1, 31))

        self.assertEqual(closing.closing_balance, Decimal('5250.00'))
        self.assertEqual(PeriodClosing.objects.filter(school=self.school).count(), 1)

    def test_foreign_account_is_rejected(self):
        other_school = School.objects.create(name='Other Ledger', code='other_ledger')
        foreign = Account.objects.create(school=other_school, account_name='Foreign', account_type=Account.TYPE_CASH)

        with self.assertRaises(UnknownAccount):
            close_period(school=self.school, period_end=date(2024, 1, 31), account=foreign)


class StatementServiceTests(AccountingBaseTestCase):
    def test_income_expenditure_excludes_transfers(self):
        report = income_expenditure_report(school=self.school, period=FEBRUARY)

        self.assertEqual(report.total_income, Decimal('3100.00'))
        self.assertEqual(report.total_expenditure, Decimal('2000.00'))
        self.assertEqual(report.surplus_deficit, Decimal('1100.00'))

    def test_balance_sheet_balances_with_fund_and_asset(self):
        trust = Fund.objects.create(school=self.school, name='Trust', account=self.cash)
        FundTransaction.objects.create(
            school=self.school,
            fund=trust,
            account=self.cash,
            transaction_type=FundTransaction.TYPE_IN,
            amount=Decimal('50000'),
            transaction_date=date(2024, 1, 2),
        )
        self._post(Transaction.TYPE_ASSET_PURCHASE, self.cash, '1500', date(2024, 2, 5))
        FixedAsset.objects.create(
            school=self.school,
            asset_name='Projector',
            purchase_price=Decimal('1500'),
            purchase_date=date(2024, 2, 5),
            current_value=Decimal('1500'),
            account=self.cash,
        )

        report = balance_sheet_report(school=self.school, as_of=date(2024, 2, 29))

        self.assertEqual(report.fund_and_liabilities.fund, Decimal('50000.00'))
        self.assertEqual(report.fund_and_liabilities.surplus, Decimal('6100.00'))
        self.assertEqual(report.property_and_assets.closing_bank_balance, Decimal('54600.00'))
        self.assertEqual(report.balance_difference, ZERO)
        self.assertEqual(report.warnings, [])

    def test_bank_report_rows_only_for_active_days(self):
        report = bank_report(school=self.school, period=FEBRUARY)

        self.assertEqual(report.opening_balance, Decimal('5000.00'))
        self.assertEqual(
            [day.date for day in report.days],
            [date(2024, 2, 10), date(2024, 2, 12), date(2024, 2, 25)],
        )
        self.assertEqual(report.credit_categories, ['Fund In', 'Tuition', 'Other'])
        self.assertEqual(report.debit_categories, ['Fund Out', 'Salary', 'Asset Purchase'])
        self.assertEqual(report.closing_balance, Decimal('6100.00'))


class DueReportServiceTests(AccountingBaseTestCase):
    def setUp(self):
        super().setUp()
        school_class = SchoolClass.objects.create(
            school=self.school,
            session=self.session,
            name='5th',
            display_order=5,
        )
        section = Section.objects.create(school_class=school_class, name='A')
        self.school_class = school_class
        self.student = Student.objects.create(
            school=self.school,
            session=self.session,
            admission_number='ADM-5',
            first_name='Nila',
            current_class=school_class,
            current_section=section,
            roll_number='7',
        )
        tuition = FeeType.objects.create(school=self.school, name='Tuition', default_amount=Decimal('800'))
        FeeRecord.objects.create(
            school=self.school,
            session=self.session,
            student=self.student,
            fee_type=tuition,
            month=2,
            year=2024,
            amount=Decimal('800'),
            paid_amount=Decimal('300'),
            due_date=date(2024, 2, 10),
        )
        FeeRecord.objects.create(
            school=self.school,
            session=self.session,
            student=self.student,
            fee_type=tuition,
            month=1,
            year=2024,
            amount=Decimal('800'),
            paid_amount=Decimal('800'),
            due_date=date(2024, 1, 10),
        )

    def test_organization_report_lists_outstanding_only(self):
        period = ReportPeriod(start_date=date(2024, 1, 1), end_date=date(2024, 2, 29))

        report = due_report(school=self.school, period=period, report_type=aggregator.REPORT_ORGANIZATION)

        self.assertEqual(report.summary.total_records, 1)
        self.assertEqual(report.summary.total_remaining, Decimal('500.00'))
        self.assertEqual(report.data['class_wise'][0]['class_name'], '5th')

    def test_student_report_nests_fees(self):
        report = due_report(
            school=self.school,
            period=FEBRUARY,
            report_type=aggregator.REPORT_STUDENT,
            student=self.student,
        )

        self.assertEqual(report.data[0]['student_number'], 'ADM-5')
        self.assertEqual(report.data[0]['fees'][0]['status'], 'partial')


class AccountingViewTests(AccountingBaseTestCase):
    def test_receipt_payment_json(self):
        self.client.login(username='ledger_accountant', password='pass12345')

        response = self.client.get(
            reverse('accounting_report_receipt_payment'),
            {'start_date': '2024-02-01', 'end_date': '2024-02-29'},
        )

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload['closing_balance'], '6100.00')
        self.assertEqual(payload['period']['start_date'], '2024-02-01')

    def test_reversed_period_returns_400(self):
        self.client.login(username='ledger_accountant', password='pass12345')

        response = self.client.get(
            reverse('accounting_report_receipt_payment'),
            {'start_date': '2024-03-02', 'end_date': '2024-03-01'},
        )

        self.assertEqual(response.status_code, 400)
        self.assertIn('errors', response.json())

    def test_unknown_account_returns_400(self):
        self.client.login(username='ledger_accountant', password='pass12345')

        response = self.client.get(
            reverse('accounting_report_receipt_payment'),
            {'year': '2024', 'month': '2', 'account': '999999'},
        )

        self.assertEqual(response.status_code, 400)

    def test_bank_report_csv_export(self):
        self.client.login(username='ledger_admin', password='pass12345')

        response = self.client.get(reverse('accounting_report_bank'), {'year': '2024', 'month': '2', 'export': 'csv'})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response['Content-Type'], 'text/csv')
        self.assertIn(b'Tuition', response.content)

    def test_balance_sheet_pdf_export(self):
        self.client.login(username='ledger_admin', password='pass12345')

        response = self.client.get(reverse('accounting_report_balance_sheet'), {'as_of': '2024-02-29', 'export': 'pdf'})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response['Content-Type'], 'application/pdf')

    def test_due_report_rejects_unknown_type(self):
        self.client.login(username='ledger_accountant', password='pass12345')

        response = self.client.get(reverse('accounting_report_due'), {'report_type': 'yearly'})

        self.assertEqual(response.status_code, 400)

    def test_close_period_post(self):
        self.client.login(username='ledger_accountant', password='pass12345')

        response = self.client.post(reverse('accounting_period_close'), {'period_end': '2024-01-31'})

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()['closing_balance'], '5000.00')
