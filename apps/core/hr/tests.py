from datetime import date
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.db import IntegrityError
from django.test import TestCase
from django.urls import reverse

from apps.core.schools.models import School

from .models import ProvidentFundTransaction, Staff
from .services import (
    provident_fund_balance,
    provident_fund_ledger,
    provident_fund_summary,
    record_pf_contribution,
    record_pf_opening,
    record_pf_withdrawal,
)


class HRBaseTestCase(TestCase):
    def setUp(self):
        user_model = get_user_model()

        self.school = School.objects.create(name='HR School', code='hr_school')
        self.admin = user_model.objects.create_user(
            username='hr_admin',
            password='pass12345',
            role='schooladmin',
            school=self.school,
        )
        self.accountant = user_model.objects.create_user(
            username='hr_accountant',
            password='pass12345',
            role='accountant',
            school=self.school,
        )
        self.teacher_user = user_model.objects.create_user(
            username='hr_teacher',
            password='pass12345',
            role='teacher',
            school=self.school,
        )

        self.teacher = Staff.objects.create(
            school=self.school,
            user=self.teacher_user,
            employee_id='EMP-T1',
            first_name='Rahima',
            last_name='Khatun',
            joining_date='2020-01-05',
            designation='Assistant Teacher',
        )
        self.other_teacher = Staff.objects.create(
            school=self.school,
            employee_id='EMP-T2',
            first_name='Karim',
            joining_date='2021-03-01',
            designation='Senior Teacher',
        )

    def _replay_reference_ledger(self):
        record_pf_opening(
            school=self.school,
            staff=self.teacher,
            transaction_date=date(2024, 1, 1),
            employee_contribution=Decimal('1000'),
            employer_contribution=Decimal('1000'),
        )
        record_pf_contribution(
            school=self.school,
            staff=self.teacher,
            transaction_date=date(2024, 2, 1),
            employee_contribution=Decimal('500'),
            employer_contribution=Decimal('500'),
        )
        record_pf_withdrawal(
            school=self.school,
            staff=self.teacher,
            transaction_date=date(2024, 3, 1),
            amount=Decimal('2000'),
        )


class StaffModelTests(HRBaseTestCase):
    def test_employee_id_unique_per_school(self):
        with self.assertRaises(IntegrityError):
            Staff.objects.create(
                school=self.school,
                employee_id='EMP-T1',
                first_name='Duplicate',
                joining_date='2022-01-01',
            )

    def test_delete_deactivates_instead_of_removing(self):
        self.other_teacher.delete()
        self.other_teacher.refresh_from_db()

        self.assertFalse(self.other_teacher.is_active)
        self.assertEqual(self.other_teacher.status, Staff.STATUS_TERMINATED)

    def test_user_from_other_school_is_rejected(self):
        other_school = School.objects.create(name='Other School', code='other_hr_school')
        outsider = get_user_model().objects.create_user(
            username='outsider',
            password='pass12345',
            role='teacher',
            school=other_school,
        )
        staff = Staff(
            school=self.school,
            user=outsider,
            employee_id='EMP-X',
            first_name='Out',
            joining_date='2022-01-01',
        )
        with self.assertRaises(ValidationError):
            staff.full_clean()


class ProvidentFundBalanceTests(HRBaseTestCase):
    def test_balance_replays_opening_contribution_and_withdrawal(self):
        self._replay_reference_ledger()

        self.assertEqual(provident_fund_balance(staff=self.teacher), Decimal('1000.00'))

    def test_balance_is_zero_without_entries(self):
        self.assertEqual(provident_fund_balance(staff=self.other_teacher), Decimal('0.00'))

    def test_balance_is_recomputed_after_every_entry(self):
        record_pf_opening(
            school=self.school,
            staff=self.teacher,
            transaction_date=date(2024, 1, 1),
            employee_contribution=Decimal('100'),
            employer_contribution=Decimal('50'),
        )
        self.assertEqual(provident_fund_balance(staff=self.teacher), Decimal('150.00'))

        record_pf_contribution(
            school=self.school,
            staff=self.teacher,
            transaction_date=date(2024, 1, 31),
            employee_contribution=Decimal('25.50'),
            employer_contribution=Decimal('25.50'),
        )
        self.assertEqual(provident_fund_balance(staff=self.teacher), Decimal('201.00'))

    def test_credit_entries_derive_total_amount(self):
        entry = record_pf_contribution(
            school=self.school,
            staff=self.teacher,
            transaction_date=date(2024, 1, 31),
            employee_contribution=Decimal('300'),
            employer_contribution=Decimal('200'),
        )
        self.assertEqual(entry.total_amount, Decimal('500.00'))

    def test_withdrawal_above_balance_is_refused(self):
        record_pf_opening(
            school=self.school,
            staff=self.teacher,
            transaction_date=date(2024, 1, 1),
            employee_contribution=Decimal('100'),
            employer_contribution=Decimal('100'),
        )

        with self.assertRaises(ValidationError):
            record_pf_withdrawal(
                school=self.school,
                staff=self.teacher,
                transaction_date=date(2024, 2, 1),
                amount=Decimal('200.01'),
            )
        self.assertEqual(
            ProvidentFundTransaction.objects.filter(type=ProvidentFundTransaction.TYPE_WITHDRAWAL).count(),
            0,
        )

    def test_second_opening_is_refused(self):
        record_pf_opening(
            school=self.school,
            staff=self.teacher,
            transaction_date=date(2024, 1, 1),
            employee_contribution=Decimal('100'),
            employer_contribution=Decimal('100'),
        )
        with self.assertRaises(ValidationError):
            record_pf_opening(
                school=self.school,
                staff=self.teacher,
                transaction_date=date(2024, 1, 2),
                employee_contribution=Decimal('100'),
                employer_contribution=Decimal('100'),
            )

    def test_entries_cannot_be_deleted(self):
        entry = record_pf_contribution(
            school=self.school,
            staff=self.teacher,
            transaction_date=date(2024, 1, 31),
            employee_contribution=Decimal('10'),
            employer_contribution=Decimal('10'),
        )
        with self.assertRaises(ValidationError):
            entry.delete()
        self.assertTrue(ProvidentFundTransaction.objects.filter(pk=entry.pk).exists())

    def test_staff_from_other_school_is_rejected(self):
        other_school = School.objects.create(name='Other School', code='other_pf_school')
        with self.assertRaises(ValidationError):
            record_pf_contribution(
                school=other_school,
                staff=self.teacher,
                transaction_date=date(2024, 1, 31),
                employee_contribution=Decimal('10'),
                employer_contribution=Decimal('10'),
            )


class ProvidentFundLedgerTests(HRBaseTestCase):
    def test_ledger_carries_running_balance(self):
        self._replay_reference_ledger()

        ledger = provident_fund_ledger(staff=self.teacher)

        self.assertEqual(
            [row['balance'] for row in ledger['rows']],
            [Decimal('2000.00'), Decimal('3000.00'), Decimal('1000.00')],
        )
        self.assertEqual(ledger['closing_balance'], Decimal('1000.00'))
        self.assertEqual(ledger['totals']['withdrawal'], Decimal('2000.00'))
        self.assertEqual(ledger['warnings'], [])

    def test_ledger_window_starts_from_prior_balance(self):
        self._replay_reference_ledger()

        ledger = provident_fund_ledger(staff=self.teacher, date_from=date(2024, 2, 15))

        self.assertEqual(ledger['opening_balance'], Decimal('3000.00'))
        self.assertEqual(len(ledger['rows']), 1)
        self.assertEqual(ledger['closing_balance'], Decimal('1000.00'))

    def test_negative_balance_is_flagged_not_raised(self):
        # Imported history may contain an over-withdrawal that bypassed the service.
        ProvidentFundTransaction.objects.create(
            school=self.school,
            staff=self.teacher,
            type=ProvidentFundTransaction.TYPE_WITHDRAWAL,
            total_amount=Decimal('50'),
            transaction_date=date(2024, 1, 1),
        )

        ledger = provident_fund_ledger(staff=self.teacher)

        self.assertEqual(ledger['closing_balance'], Decimal('-50.00'))
        self.assertEqual([warning.code for warning in ledger['warnings']], ['negative_balance'])

    def test_summary_lists_every_active_staff_member(self):
        self._replay_reference_ledger()

        summary = provident_fund_summary(school=self.school)

        self.assertEqual([row['employee_id'] for row in summary['rows']], ['EMP-T1', 'EMP-T2'])
        self.assertEqual(summary['rows'][0]['balance'], Decimal('1000.00'))
        self.assertEqual(summary['rows'][1]['balance'], Decimal('0.00'))
        self.assertEqual(summary['totals']['employee_contribution'], Decimal('1500.00'))
        self.assertEqual(summary['totals']['balance'], Decimal('1000.00'))


class ProvidentFundViewTests(HRBaseTestCase):
    def test_teacher_cannot_open_pf_summary(self):
        self.client.login(username='hr_teacher', password='pass12345')
        response = self.client.get(reverse('hr_pf_summary'))
        self.assertEqual(response.status_code, 403)

    def test_accountant_reads_ledger_as_json(self):
        self._replay_reference_ledger()
        self.client.login(username='hr_accountant', password='pass12345')

        response = self.client.get(reverse('hr_pf_ledger', args=[self.teacher.id]))

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload['closing_balance'], '1000.00')
        self.assertEqual(len(payload['rows']), 3)

    def test_ledger_csv_export(self):
        self._replay_reference_ledger()
        self.client.login(username='hr_accountant', password='pass12345')

        response = self.client.get(reverse('hr_pf_ledger', args=[self.teacher.id]), {'export': 'csv'})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response['Content-Type'], 'text/csv')
        self.assertIn(b'withdrawal', response.content)

    def test_withdrawal_post_over_balance_returns_400(self):
        self.client.login(username='hr_admin', password='pass12345')

        response = self.client.post(
            reverse('hr_pf_entry_create', args=[self.teacher.id]),
            {'type': 'withdrawal', 'transaction_date': '2024-03-01', 'amount': '10.00'},
        )

        self.assertEqual(response.status_code, 400)
        self.assertIn('errors', response.json())

    def test_contribution_post_records_entry(self):
        self.client.login(username='hr_admin', password='pass12345')

        response = self.client.post(
            reverse('hr_pf_entry_create', args=[self.teacher.id]),
            {
                'type': 'contribution',
                'transaction_date': '2024-03-01',
                'employee_contribution': '250.00',
                'employer_contribution': '250.00',
            },
        )

        self.assertEqual(response.status_code, 201)
        self.assertEqual(provident_fund_balance(staff=self.teacher), Decimal('500.00'))
