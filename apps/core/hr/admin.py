from django.contrib import admin

from .models import ProvidentFundTransaction, Staff


@admin.register(Staff)
class StaffAdmin(admin.ModelAdmin):
    list_display = ('employee_id', 'full_name', 'designation', 'school', 'status', 'is_active')
    list_filter = ('school', 'status', 'is_active')
    search_fields = ('employee_id', 'first_name', 'last_name', 'device_user_id')


@admin.register(ProvidentFundTransaction)
class ProvidentFundTransactionAdmin(admin.ModelAdmin):
    list_display = (
        'staff',
        'type',
        'employee_contribution',
        'employer_contribution',
        'total_amount',
        'transaction_date',
    )
    list_filter = ('school', 'type', 'transaction_date')
    search_fields = ('staff__employee_id', 'staff__first_name', 'remarks')

    def has_delete_permission(self, request, obj=None):
        return False
