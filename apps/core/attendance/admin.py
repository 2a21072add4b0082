from django.contrib import admin

from .models import AttendanceRule, Holiday, StudentAttendance, TeacherAttendance


@admin.register(AttendanceRule)
class AttendanceRuleAdmin(admin.ModelAdmin):
    list_display = (
        'school',
        'teacher_late_time',
        'student_late_time',
        'weekend_days',
        'auto_sync_enabled',
        'last_sync_at',
    )
    readonly_fields = ('last_sync_at', 'last_sync_status', 'total_synced')


@admin.register(Holiday)
class HolidayAdmin(admin.ModelAdmin):
    list_display = ('date', 'name', 'type', 'school', 'is_active')
    list_filter = ('school', 'type', 'is_active')
    search_fields = ('name',)


@admin.register(StudentAttendance)
class StudentAttendanceAdmin(admin.ModelAdmin):
    list_display = (
        'date',
        'student',
        'school_class',
        'section',
        'in_time',
        'out_time',
        'status',
        'is_manual',
    )
    list_filter = ('school', 'session', 'status', 'is_manual', 'date')
    search_fields = (
        'student__admission_number',
        'student__first_name',
        'student__last_name',
    )


@admin.register(TeacherAttendance)
class TeacherAttendanceAdmin(admin.ModelAdmin):
    list_display = ('date', 'staff', 'in_time', 'out_time', 'status', 'is_manual', 'device_sn')
    list_filter = ('school', 'status', 'is_manual', 'date')
    search_fields = ('staff__employee_id', 'staff__first_name', 'staff__last_name')
