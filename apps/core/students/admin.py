from django.contrib import admin

from .models import Student


@admin.register(Student)
class StudentAdmin(admin.ModelAdmin):
    list_display = (
        'admission_number',
        'full_name',
        'current_class',
        'current_section',
        'roll_number',
        'status',
        'is_active',
    )
    list_filter = ('school', 'session', 'status', 'is_active')
    search_fields = ('admission_number', 'first_name', 'last_name', 'device_user_id')
