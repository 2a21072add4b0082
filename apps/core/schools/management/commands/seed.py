import random
from datetime import date, datetime, time, timedelta
from decimal import Decimal

from django.core.management.base import BaseCommand
from django.db import transaction
from django.utils import timezone
from faker import Faker

from apps.core.academic_sessions.models import AcademicSession
from apps.core.academic_sessions.services import activate_session
from apps.core.academics.models import SchoolClass, Section
from apps.core.accounting.models import Account, ExpenseCategory, Fund, FundTransaction, IncomeCategory, Transaction
from apps.core.attendance.models import AttendanceRule, Holiday
from apps.core.attendance.resolver import PERSON_TEACHER
from apps.core.attendance.services import record_device_punch
from apps.core.fees.models import FeeRecord, FeeType
from apps.core.fees.services import record_fee_payment
from apps.core.hr.models import ProvidentFundTransaction, Staff
from apps.core.hr.services import record_pf_contribution, record_pf_opening
from apps.core.schools.models import School
from apps.core.students.models import Student
from apps.core.users.models import User


class Command(BaseCommand):
    help = 'Seeds the database with a demo school, ledger, fees, attendance and provident fund data.'

    def add_arguments(self, parser):
        parser.add_argument('--students-per-section', type=int, default=10)
        parser.add_argument('--seed', type=int, default=None, help='Random seed for repeatable data.')

    @transaction.atomic
    def handle(self, *args, **options):
        self.stdout.write('Seeding database...')

        fake = Faker()
        if options['seed'] is not None:
            Faker.seed(options['seed'])
            random.seed(options['seed'])

        today = timezone.localdate()
        school, created = School.objects.get_or_create(
            code='demo_school',
            defaults={
                'name': fake.company() + ' School',
                'address': fake.address(),
                'phone': fake.phone_number()[:20],
                'email': fake.email(),
            },
        )
        if created:
            self.stdout.write(self.style.SUCCESS(f'Created school: {school.name}'))

        session, created = AcademicSession.objects.get_or_create(
            school=school,
            name=str(today.year),
            defaults={
                'start_date': date(today.year, 1, 1),
                'end_date': date(today.year, 12, 31),
                'is_active': True,
            },
        )
        activate_session(school=school, session=session)

        if not User.objects.filter(username='superadmin').exists():
            User.objects.create_superuser('superadmin', 'superadmin@example.com', 'password', role='superadmin')
            self.stdout.write(self.style.SUCCESS('Created superadmin user.'))

        for username, role in (('schooladmin', 'schooladmin'), ('accountant', 'accountant'), ('teacher', 'teacher')):
            user, created = User.objects.get_or_create(username=username, defaults={'role': role, 'school': school})
            if created:
                user.set_password('password')
                user.save()
                self.stdout.write(self.style.SUCCESS(f'Created {role} user: {username}'))
        accountant = User.objects.get(username='accountant')

        cash, _ = Account.objects.get_or_create(
            school=school,
            account_name='Cash Box',
            defaults={'account_type': Account.TYPE_CASH},
        )
        bank, _ = Account.objects.get_or_create(
            school=school,
            account_name='Main Bank',
            defaults={
                'account_type': Account.TYPE_BANK,
                'bank_name': 'Sonali Bank',
                'account_number': fake.bban(),
                'opening_balance': Decimal('25000.00'),
            },
        )

        fund, created = Fund.objects.get_or_create(school=school, name='Founders Fund', defaults={'account': bank})
        if created:
            FundTransaction.objects.create(
                school=school,
                fund=fund,
                account=bank,
                transaction_type=FundTransaction.TYPE_IN,
                amount=Decimal('100000.00'),
                transaction_date=session.start_date,
                description='Initial capital',
            )

        salary, _ = ExpenseCategory.objects.get_or_create(school=school, name='Salary')
        utilities, _ = ExpenseCategory.objects.get_or_create(school=school, name='Utilities')
        donation, _ = IncomeCategory.objects.get_or_create(school=school, name='Donation')

        tuition, _ = FeeType.objects.get_or_create(
            school=school,
            name='Tuition',
            defaults={'default_amount': Decimal('1200.00')},
        )

        students = self._seed_students(fake, school, session, options['students_per_section'])
        staff_members = self._seed_staff(fake, school)

        if not FeeRecord.objects.filter(school=school).exists():
            for month in range(1, today.month + 1):
                for student in students:
                    record = FeeRecord.objects.create(
                        school=school,
                        session=session,
                        student=student,
                        fee_type=tuition,
                        month=month,
                        year=today.year,
                        amount=tuition.default_amount,
                        due_date=date(today.year, month, 10),
                    )
                    # Most students pay, some in part.
                    roll = random.random()
                    if roll < 0.6:
                        amount = record.total_amount
                    elif roll < 0.8:
                        amount = (record.total_amount / 2).quantize(Decimal('0.01'))
                    else:
                        continue
                    record_fee_payment(
                        fee_record=record,
                        amount=amount,
                        account=random.choice([cash, bank]),
                        received_by=accountant,
                        payment_date=min(record.due_date, today),
                    )
            self.stdout.write(self.style.SUCCESS('Created fee records and payments.'))

        if not Transaction.objects.filter(school=school, type=Transaction.TYPE_EXPENSE).exists():
            for month in range(1, today.month + 1):
                paid_on = min(date(today.year, month, 28), today)
                Transaction.objects.create(
                    school=school,
                    account=bank,
                    type=Transaction.TYPE_EXPENSE,
                    expense_category=salary,
                    amount=Decimal('45000.00'),
                    transaction_date=paid_on,
                    payment_method=Transaction.METHOD_BANK,
                    description=f'Salary {month:02d}/{today.year}',
                )
                Transaction.objects.create(
                    school=school,
                    account=cash,
                    type=Transaction.TYPE_EXPENSE,
                    expense_category=utilities,
                    amount=Decimal(random.randint(1500, 4000)),
                    transaction_date=paid_on,
                    description='Electricity and water',
                )
            Transaction.objects.create(
                school=school,
                account=cash,
                type=Transaction.TYPE_INCOME,
                income_category=donation,
                amount=Decimal('5000.00'),
                transaction_date=session.start_date + timedelta(days=20),
                description=fake.sentence(nb_words=4),
            )
            self.stdout.write(self.style.SUCCESS('Created ledger transactions.'))

        if not ProvidentFundTransaction.objects.filter(school=school).exists():
            for staff in staff_members:
                record_pf_opening(
                    school=school,
                    staff=staff,
                    transaction_date=session.start_date,
                    employee_contribution=Decimal(random.randint(5, 30) * 1000),
                    employer_contribution=Decimal(random.randint(5, 30) * 1000),
                )
                for month in range(1, today.month + 1):
                    record_pf_contribution(
                        school=school,
                        staff=staff,
                        transaction_date=min(date(today.year, month, 28), today),
                        employee_contribution=Decimal('1500.00'),
                        employer_contribution=Decimal('1500.00'),
                    )
            self.stdout.write(self.style.SUCCESS('Created provident fund ledgers.'))

        AttendanceRule.objects.get_or_create(school=school)
        Holiday.objects.get_or_create(
            school=school,
            date=date(today.year, 3, 26),
            defaults={'name': 'Independence Day', 'type': Holiday.TYPE_PUBLIC},
        )
        self._seed_punches(school, staff_members, today)

        self.stdout.write(self.style.SUCCESS('Database seeding complete!'))

    def _seed_students(self, fake, school, session, per_section):
        students = []
        for order in range(1, 6):
            school_class, _ = SchoolClass.objects.get_or_create(
                school=school,
                session=session,
                name=f'Class {order}',
                defaults={'code': f'C{order}', 'display_order': order},
            )
            for section_name in ['A', 'B']:
                section, _ = Section.objects.get_or_create(school_class=school_class, name=section_name)
                for roll in range(1, per_section + 1):
                    admission_number = f'{school_class.code}{section_name}-{roll:03d}'
                    student, created = Student.objects.get_or_create(
                        school=school,
                        admission_number=admission_number,
                        defaults={
                            'session': session,
                            'first_name': fake.first_name(),
                            'last_name': fake.last_name(),
                            'father_name': fake.name(),
                            'father_phone': fake.msisdn()[:11],
                            'current_class': school_class,
                            'current_section': section,
                            'roll_number': str(roll),
                        },
                    )
                    students.append(student)
        self.stdout.write(self.style.SUCCESS(f'{len(students)} students ready.'))
        return students

    def _seed_staff(self, fake, school):
        staff_members = []
        for index in range(1, 9):
            staff, _ = Staff.objects.get_or_create(
                school=school,
                employee_id=f'EMP-{index:03d}',
                defaults={
                    'first_name': fake.first_name(),
                    'last_name': fake.last_name(),
                    'joining_date': fake.date_between(start_date='-8y', end_date='-1y'),
                    'designation': 'Teacher' if index > 2 else 'Office Staff',
                    'device_user_id': str(100 + index),
                },
            )
            staff_members.append(staff)
        self.stdout.write(self.style.SUCCESS(f'{len(staff_members)} staff ready.'))
        return staff_members

    def _seed_punches(self, school, staff_members, today):
        """Two weeks of device punches for every teacher, with some late arrivals."""
        for offset in range(14, 0, -1):
            day = today - timedelta(days=offset)
            for staff in staff_members:
                if random.random() < 0.1:
                    continue
                arrival = time(8, random.randint(20, 59))
                departure = time(random.choice([14, 16, 17]), random.randint(0, 59))
                for moment in (arrival, departure):
                    record_device_punch(
                        school=school,
                        device_user_id=staff.device_user_id,
                        punch_at=datetime.combine(day, moment),
                        device_sn='SEED',
                    )
        self.stdout.write(self.style.SUCCESS(f'Recorded device punches for {PERSON_TEACHER}s.'))
