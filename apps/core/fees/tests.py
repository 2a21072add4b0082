from datetime import date
from decimal import Decimal
from unittest import mock

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.test import SimpleTestCase, TestCase
from django.urls import reverse

from apps.core.academic_sessions.models import AcademicSession
from apps.core.academics.models import SchoolClass, Section
from apps.core.accounting.models import Account, IncomeCategory, Transaction
from apps.core.schools.models import School
from apps.core.students.models import Student

from .models import FeePayment, FeeRecord, FeeType, fee_status_for
from .services import due_rows, outstanding_fee_records, record_fee_payment


class FeeStatusRuleTests(SimpleTestCase):
    def test_nothing_due_is_paid(self):
        self.assertEqual(fee_status_for(Decimal('500'), Decimal('500')), 'paid')

    def test_nothing_paid_is_pending(self):
        self.assertEqual(fee_status_for(Decimal('500'), Decimal('0')), 'pending')

    def test_anything_between_is_partial(self):
        self.assertEqual(fee_status_for(Decimal('500'), Decimal('0.01')), 'partial')
        self.assertEqual(fee_status_for(Decimal('500'), Decimal('499.99')), 'partial')

    def test_zero_total_is_paid(self):
        self.assertEqual(fee_status_for(Decimal('0'), Decimal('0')), 'paid')


class FeesBaseTestCase(TestCase):
    def setUp(self):
        user_model = get_user_model()

        self.school = School.objects.create(name='Fee School', code='fee_school')
        self.session = AcademicSession.objects.create(
            school=self.school,
            name='2024',
            start_date=date(2024, 1, 1),
            end_date=date(2024, 12, 31),
            is_active=True,
        )
        self.school.current_session = self.session
        self.school.save(update_fields=['current_session'])

        self.school_class = SchoolClass.objects.create(
            school=self.school,
            session=self.session,
            name='8th',
            code='VIII',
            display_order=8,
        )
        self.section = Section.objects.create(school_class=self.school_class, name='A')

        self.student = Student.objects.create(
            school=self.school,
            session=self.session,
            admission_number='FEE-001',
            first_name='Riya',
            last_name='Das',
            father_name='Amit Das',
            phone='01700000001',
            current_class=self.school_class,
            current_section=self.section,
            roll_number='1',
        )

        self.school_admin = user_model.objects.create_user(
            username='fees_admin',
            password='pass12345',
            role='schooladmin',
            school=self.school,
        )
        self.accountant = user_model.objects.create_user(
            username='fees_accountant',
            password='pass12345',
            role='accountant',
            school=self.school,
        )
        self.teacher_user = user_model.objects.create_user(
            username='fees_teacher',
            password='pass12345',
            role='teacher',
            school=self.school,
        )

        self.cash = Account.objects.create(
            school=self.school,
            account_name='Cash Box',
            account_type=Account.TYPE_CASH,
        )
        self.tuition = FeeType.objects.create(
            school=self.school,
            name='Tuition',
            default_amount=Decimal('1200.00'),
        )

        self.march_fee = FeeRecord.objects.create(
            school=self.school,
            session=self.session,
            student=self.student,
            fee_type=self.tuition,
            month=3,
            year=2024,
            amount=Decimal('1200.00'),
            late_fee=Decimal('50.00'),
            discount=Decimal('250.00'),
            due_date=date(2024, 3, 10),
        )


class FeeRecordModelTests(FeesBaseTestCase):
    def test_save_derives_total_due_and_status(self):
        self.assertEqual(self.march_fee.total_amount, Decimal('1000.00'))
        self.assertEqual(self.march_fee.due_amount, Decimal('1000.00'))
        self.assertEqual(self.march_fee.status, FeeRecord.STATUS_PENDING)

    def test_partial_payment_moves_status_to_partial(self):
        self.march_fee.paid_amount = Decimal('400.00')
        self.march_fee.save()
        self.march_fee.refresh_from_db()

        self.assertEqual(self.march_fee.due_amount, Decimal('600.00'))
        self.assertEqual(self.march_fee.status, FeeRecord.STATUS_PARTIAL)

    def test_overpayment_is_refused(self):
        self.march_fee.paid_amount = Decimal('1000.01')
        with self.assertRaises(ValidationError):
            self.march_fee.full_clean()

    def test_discount_above_amount_is_refused(self):
        record = FeeRecord(
            school=self.school,
            student=self.student,
            fee_type=self.tuition,
            month=4,
            year=2024,
            amount=Decimal('100.00'),
            discount=Decimal('150.00'),
            due_date=date(2024, 4, 10),
        )
        with self.assertRaises(ValidationError):
            record.full_clean()


class FeePaymentServiceTests(FeesBaseTestCase):
    def test_payment_updates_record_and_posts_income(self):
        payment = record_fee_payment(
            fee_record=self.march_fee,
            amount=Decimal('400.00'),
            account=self.cash,
            received_by=self.accountant,
            payment_date=date(2024, 3, 12),
        )

        self.march_fee.refresh_from_db()
        self.assertEqual(self.march_fee.paid_amount, Decimal('400.00'))
        self.assertEqual(self.march_fee.due_amount, Decimal('600.00'))
        self.assertEqual(self.march_fee.status, FeeRecord.STATUS_PARTIAL)
        self.assertEqual(payment.receipt_number, 'RCP-20240312-0001')

        posted = payment.ledger_transaction
        self.assertEqual(posted.type, Transaction.TYPE_INCOME)
        self.assertEqual(posted.amount, Decimal('400.00'))
        self.assertEqual(posted.income_category.name, 'Tuition')
        self.assertEqual(posted.reference_number, payment.receipt_number)

    def test_second_payment_same_day_gets_next_receipt_number(self):
        record_fee_payment(
            fee_record=self.march_fee,
            amount=Decimal('400.00'),
            account=self.cash,
            payment_date=date(2024, 3, 12),
        )
        payment = record_fee_payment(
            fee_record=self.march_fee,
            amount=Decimal('600.00'),
            account=self.cash,
            payment_date=date(2024, 3, 12),
        )

        self.march_fee.refresh_from_db()
        self.assertEqual(payment.receipt_number, 'RCP-20240312-0002')
        self.assertEqual(self.march_fee.status, FeeRecord.STATUS_PAID)
        self.assertEqual(IncomeCategory.objects.filter(school=self.school, name='Tuition').count(), 1)

    def test_payments_on_different_records_same_day_get_distinct_receipts(self):
        april_fee = FeeRecord.objects.create(
            school=self.school,
            session=self.session,
            student=self.student,
            fee_type=self.tuition,
            month=4,
            year=2024,
            amount=Decimal('1200.00'),
            due_date=date(2024, 4, 10),
        )

        with mock.patch.object(
            School.objects,
            'select_for_update',
            wraps=School.objects.select_for_update,
        ) as school_lock:
            march_payment = record_fee_payment(
                fee_record=self.march_fee,
                amount=Decimal('300.00'),
                account=self.cash,
                payment_date=date(2024, 3, 12),
            )
            april_payment = record_fee_payment(
                fee_record=april_fee,
                amount=Decimal('500.00'),
                account=self.cash,
                payment_date=date(2024, 3, 12),
            )

        self.assertEqual(school_lock.call_count, 2)
        self.assertEqual(march_payment.receipt_number, 'RCP-20240312-0001')
        self.assertEqual(april_payment.receipt_number, 'RCP-20240312-0002')
        self.assertEqual(
            FeePayment.objects.filter(school=self.school).values('receipt_number').distinct().count(),
            2,
        )

    def test_payment_above_due_is_refused(self):
        with self.assertRaises(ValidationError):
            record_fee_payment(
                fee_record=self.march_fee,
                amount=Decimal('1000.01'),
                account=self.cash,
                payment_date=date(2024, 3, 12),
            )
        self.assertEqual(FeePayment.objects.count(), 0)
        self.assertEqual(Transaction.objects.count(), 0)

    def test_payment_to_inactive_account_is_refused(self):
        self.cash.delete()
        with self.assertRaises(ValidationError):
            record_fee_payment(
                fee_record=self.march_fee,
                amount=Decimal('100.00'),
                account=self.cash,
                payment_date=date(2024, 3, 12),
            )


class OutstandingFeeTests(FeesBaseTestCase):
    def test_paid_records_are_not_outstanding(self):
        record_fee_payment(
            fee_record=self.march_fee,
            amount=Decimal('1000.00'),
            account=self.cash,
            payment_date=date(2024, 3, 12),
        )

        records = outstanding_fee_records(school=self.school)

        self.assertEqual(list(records), [])

    def test_due_window_filters_on_due_date(self):
        FeeRecord.objects.create(
            school=self.school,
            session=self.session,
            student=self.student,
            fee_type=self.tuition,
            month=5,
            year=2024,
            amount=Decimal('1200.00'),
            due_date=date(2024, 5, 10),
        )

        records = outstanding_fee_records(
            school=self.school,
            date_from=date(2024, 3, 1),
            date_to=date(2024, 3, 31),
        )

        self.assertEqual([record.month for record in records], [3])

    def test_due_rows_carry_student_details(self):
        rows = due_rows(outstanding_fee_records(school=self.school))

        self.assertEqual(len(rows), 1)
        row = rows[0]
        self.assertEqual(row.student_number, 'FEE-001')
        self.assertEqual(row.student_name, 'Riya Das')
        self.assertEqual(row.class_name, '8th')
        self.assertEqual(row.section, 'A')
        self.assertEqual(row.phone, '01700000001')
        self.assertEqual(row.due_amount, Decimal('1000.00'))


class FeeViewTests(FeesBaseTestCase):
    def test_teacher_cannot_list_fee_records(self):
        self.client.login(username='fees_teacher', password='pass12345')
        response = self.client.get(reverse('fee_record_list'))
        self.assertEqual(response.status_code, 403)

    def test_accountant_lists_pending_records(self):
        self.client.login(username='fees_accountant', password='pass12345')

        response = self.client.get(reverse('fee_record_list'), {'status': 'pending'})

        self.assertEqual(response.status_code, 200)
        rows = response.json()['rows']
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]['due_amount'], '1000.00')

    def test_payment_post_returns_receipt(self):
        self.client.login(username='fees_accountant', password='pass12345')

        response = self.client.post(
            reverse('fee_payment_create', args=[self.march_fee.id]),
            {'amount': '250.00', 'account': self.cash.id, 'payment_date': '2024-03-15'},
        )

        self.assertEqual(response.status_code, 201)
        payload = response.json()
        self.assertEqual(payload['receipt_number'], 'RCP-20240315-0001')
        self.assertEqual(payload['fee_record']['status'], 'partial')

    def test_payment_post_over_due_returns_400(self):
        self.client.login(username='fees_accountant', password='pass12345')

        response = self.client.post(
            reverse('fee_payment_create', args=[self.march_fee.id]),
            {'amount': '5000.00', 'account': self.cash.id, 'payment_date': '2024-03-15'},
        )

        self.assertEqual(response.status_code, 400)
        self.assertIn('amount', response.json()['errors'])

    def test_receipt_pdf_download(self):
        payment = record_fee_payment(
            fee_record=self.march_fee,
            amount=Decimal('100.00'),
            account=self.cash,
            payment_date=date(2024, 3, 12),
        )
        self.client.login(username='fees_admin', password='pass12345')

        response = self.client.get(reverse('fee_receipt_download', args=[payment.id]))

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response['Content-Type'], 'application/pdf')
        self.assertTrue(response.content.startswith(b'%PDF'))
