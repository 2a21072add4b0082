from django.contrib.auth import get_user_model
from django.test import RequestFactory, TestCase
from django.urls import reverse

from apps.core.schools.models import School

from .audit import log_audit_event
from .models import AuditLog


class UserModelTests(TestCase):
    def setUp(self):
        self.user_model = get_user_model()
        self.school = School.objects.create(name='Alpha School')

    def test_non_superadmin_requires_school(self):
        with self.assertRaises(ValueError):
            self.user_model.objects.create_user(username='orphan', password='pass12345', role='teacher')

    def test_superuser_is_detached_from_school(self):
        user = self.user_model.objects.create_superuser('root', 'root@example.com', 'pass12345')
        self.assertEqual(user.role, 'superadmin')
        self.assertIsNone(user.school)

    def test_accounting_roles(self):
        accountant = self.user_model.objects.create_user(
            username='acc1',
            password='pass12345',
            role='accountant',
            school=self.school,
        )
        teacher = self.user_model.objects.create_user(
            username='teacher1',
            password='pass12345',
            role='teacher',
            school=self.school,
        )
        self.assertTrue(accountant.can_manage_accounting)
        self.assertFalse(teacher.can_manage_accounting)


class RoleAccessTests(TestCase):
    def setUp(self):
        self.user_model = get_user_model()
        self.school = School.objects.create(name='Alpha School')
        self.teacher = self.user_model.objects.create_user(
            username='teacher1',
            password='pass12345',
            role='teacher',
            school=self.school,
        )
        self.accountant = self.user_model.objects.create_user(
            username='accountant1',
            password='pass12345',
            role='accountant',
            school=self.school,
        )

    def test_teacher_cannot_open_accounting_reports(self):
        self.client.login(username='teacher1', password='pass12345')
        response = self.client.get(reverse('accounting_report_income_expenditure'))
        self.assertEqual(response.status_code, 403)

    def test_accountant_can_open_accounting_reports(self):
        self.client.login(username='accountant1', password='pass12345')
        response = self.client.get(reverse('accounting_report_income_expenditure'))
        self.assertEqual(response.status_code, 200)

    def test_anonymous_user_is_redirected_to_login(self):
        response = self.client.get(reverse('accounting_report_income_expenditure'))
        self.assertEqual(response.status_code, 302)


class AuditTrailTests(TestCase):
    def setUp(self):
        self.user_model = get_user_model()
        self.school = School.objects.create(name='Audit School')
        self.user = self.user_model.objects.create_user(
            username='audited',
            password='pass12345',
            role='schooladmin',
            school=self.school,
        )

    def test_login_writes_audit_entry(self):
        self.client.login(username='audited', password='pass12345')
        self.assertTrue(AuditLog.objects.filter(user=self.user, action='user.login').exists())

    def test_log_audit_event_records_target_and_ip(self):
        request = RequestFactory().post('/attendance/mark-all/', REMOTE_ADDR='10.0.0.5')
        request.user = self.user
        log_audit_event(request, 'attendance.mark_all', target=self.school, details='3 records')

        entry = AuditLog.objects.get(action='attendance.mark_all')
        self.assertEqual(entry.school, self.school)
        self.assertEqual(entry.target_model, 'School')
        self.assertEqual(entry.ip_address, '10.0.0.5')
