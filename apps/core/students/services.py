from apps.core.utils.exceptions import UnknownPerson

from .models import Student


def active_students(*, school, school_class=None, section=None):
    queryset = Student.objects.for_school(school).filter(
        is_active=True,
        status=Student.STATUS_ACTIVE,
    ).select_related('current_class', 'current_section')

    if school_class:
        queryset = queryset.filter(current_class=school_class)
    if section:
        queryset = queryset.filter(current_section=section)

    return queryset.order_by('current_class__display_order', 'roll_number', 'admission_number')


def students_by_ids(*, school, student_ids):
    """Fetch students in the given order, failing on ids outside the school."""
    ids = [int(student_id) for student_id in student_ids]
    found = Student.objects.for_school(school).in_bulk(ids)
    for student_id in ids:
        if student_id not in found:
            raise UnknownPerson('student', student_id)
    return [found[student_id] for student_id in ids]
