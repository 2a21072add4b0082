from datetime import date

from django.db import IntegrityError
from django.test import TestCase

from apps.core.academic_sessions.models import AcademicSession
from apps.core.schools.models import School

from .services import activate_session, session_covering


class AcademicSessionLifecycleTests(TestCase):
    def setUp(self):
        self.school = School.objects.create(name='Session School', code='session_school')
        self.session_one = AcademicSession.objects.create(
            school=self.school,
            name='2025-26',
            start_date='2025-04-01',
            end_date='2026-03-31',
            is_active=True,
        )
        self.session_two = AcademicSession.objects.create(
            school=self.school,
            name='2026-27',
            start_date='2026-04-01',
            end_date='2027-03-31',
            is_active=False,
        )
        self.school.current_session = self.session_one
        self.school.save(update_fields=['current_session'])

    def test_activate_switches_active_and_current_session(self):
        activate_session(school=self.school, session=self.session_two)

        self.session_one.refresh_from_db()
        self.session_two.refresh_from_db()
        self.school.refresh_from_db()

        self.assertFalse(self.session_one.is_active)
        self.assertTrue(self.session_two.is_active)
        self.assertEqual(self.school.current_session_id, self.session_two.id)

    def test_only_one_active_session_per_school(self):
        with self.assertRaises(IntegrityError):
            AcademicSession.objects.create(
                school=self.school,
                name='2027-28',
                start_date='2027-04-01',
                end_date='2028-03-31',
                is_active=True,
            )

    def test_session_covering_prefers_date_range(self):
        self.assertEqual(session_covering(school=self.school, target_date=date(2026, 6, 1)), self.session_two)
        self.assertEqual(session_covering(school=self.school, target_date=date(2030, 1, 1)), self.session_one)
