from django.core.exceptions import ValidationError
from django.test import TestCase

from apps.core.academic_sessions.models import AcademicSession
from apps.core.academics.models import SchoolClass, Section
from apps.core.schools.models import School
from apps.core.utils.exceptions import UnknownPerson

from .models import Student
from .services import active_students, students_by_ids


class StudentsBaseTestCase(TestCase):
    def setUp(self):
        self.school = School.objects.create(name='Student School', code='student_school')
        self.session = AcademicSession.objects.create(
            school=self.school,
            name='2024',
            start_date='2024-01-01',
            end_date='2024-12-31',
            is_active=True,
        )
        self.class_six = SchoolClass.objects.create(
            school=self.school,
            session=self.session,
            name='6th',
            display_order=6,
        )
        self.class_five = SchoolClass.objects.create(
            school=self.school,
            session=self.session,
            name='5th',
            display_order=5,
        )
        self.section_a = Section.objects.create(school_class=self.class_six, name='A')
        self.section_b = Section.objects.create(school_class=self.class_six, name='B')

        self.rahim = self._student('STU-003', 'Rahim', self.class_six, self.section_a, '2')
        self.karim = self._student('STU-001', 'Karim', self.class_six, self.section_a, '1')
        self.jamal = self._student('STU-002', 'Jamal', self.class_five, None, '1')
        self.left = self._student('STU-004', 'Sumi', self.class_six, self.section_b, '3')
        self.left.status = Student.STATUS_TRANSFERRED
        self.left.is_active = False
        self.left.save()

    def _student(self, admission_number, first_name, school_class, section, roll_number):
        return Student.objects.create(
            school=self.school,
            session=self.session,
            admission_number=admission_number,
            first_name=first_name,
            current_class=school_class,
            current_section=section,
            roll_number=roll_number,
        )


class ActiveStudentsTests(StudentsBaseTestCase):
    def test_orders_by_class_then_roll(self):
        students = list(active_students(school=self.school))

        self.assertEqual(students, [self.jamal, self.karim, self.rahim])

    def test_filters_by_class_and_section(self):
        self.assertEqual(
            list(active_students(school=self.school, school_class=self.class_six, section=self.section_a)),
            [self.karim, self.rahim],
        )
        self.assertEqual(list(active_students(school=self.school, section=self.section_b)), [])


class StudentsByIdsTests(StudentsBaseTestCase):
    def test_keeps_requested_order(self):
        students = students_by_ids(school=self.school, student_ids=[self.rahim.id, str(self.jamal.id)])

        self.assertEqual(students, [self.rahim, self.jamal])

    def test_student_from_another_school_is_unknown(self):
        other_school = School.objects.create(name='Elsewhere', code='elsewhere')
        other_session = AcademicSession.objects.create(
            school=other_school,
            name='2024',
            start_date='2024-01-01',
            end_date='2024-12-31',
        )
        outsider = Student.objects.create(
            school=other_school,
            session=other_session,
            admission_number='OUT-1',
            first_name='Outsider',
        )

        with self.assertRaises(UnknownPerson) as raised:
            students_by_ids(school=self.school, student_ids=[self.karim.id, outsider.id])
        self.assertEqual(raised.exception.person_id, outsider.id)


class StudentModelTests(StudentsBaseTestCase):
    def test_section_must_match_class(self):
        self.karim.current_section = Section.objects.create(school_class=self.class_five, name='C')

        with self.assertRaises(ValidationError):
            self.karim.full_clean()

    def test_contact_phone_falls_back_to_father(self):
        self.karim.father_phone = '01800000000'
        self.assertEqual(self.karim.contact_phone, '01800000000')
        self.karim.phone = '01700000000'
        self.assertEqual(self.karim.contact_phone, '01700000000')
        self.assertEqual(Student(first_name='A').contact_phone, '-')
