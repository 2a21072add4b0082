from django.core.exceptions import ValidationError
from django.db import IntegrityError
from django.test import TestCase

from apps.core.academic_sessions.models import AcademicSession
from apps.core.schools.models import School

from .models import SchoolClass, Section


class AcademicsBaseTestCase(TestCase):
    def setUp(self):
        self.school = School.objects.create(name='Academics School', code='academics_school')
        self.other_school = School.objects.create(name='Other School', code='other_school')
        self.session = AcademicSession.objects.create(
            school=self.school,
            name='2024',
            start_date='2024-01-01',
            end_date='2024-12-31',
            is_active=True,
        )
        self.other_session = AcademicSession.objects.create(
            school=self.other_school,
            name='2024',
            start_date='2024-01-01',
            end_date='2024-12-31',
            is_active=True,
        )


class SchoolClassModelTests(AcademicsBaseTestCase):
    def test_classes_are_ordered_by_display_order(self):
        SchoolClass.objects.create(school=self.school, session=self.session, name='10th', display_order=10)
        SchoolClass.objects.create(school=self.school, session=self.session, name='2nd', display_order=2)

        names = list(SchoolClass.objects.for_school(self.school).values_list('name', flat=True))

        self.assertEqual(names, ['2nd', '10th'])

    def test_session_from_another_school_is_refused(self):
        school_class = SchoolClass(school=self.school, session=self.other_session, name='5th')

        with self.assertRaises(ValidationError):
            school_class.full_clean()

    def test_duplicate_section_name_is_refused(self):
        school_class = SchoolClass.objects.create(school=self.school, session=self.session, name='5th')
        Section.objects.create(school_class=school_class, name='A')

        with self.assertRaises(IntegrityError):
            Section.objects.create(school_class=school_class, name='A')

    def test_section_exposes_school(self):
        school_class = SchoolClass.objects.create(school=self.school, session=self.session, name='5th')
        section = Section.objects.create(school_class=school_class, name='B')

        self.assertEqual(section.school, self.school)
