from django.contrib import admin

from .models import FeePayment, FeeRecord, FeeType


@admin.register(FeeType)
class FeeTypeAdmin(admin.ModelAdmin):
    list_display = ('name', 'default_amount', 'frequency', 'school', 'is_active')
    list_filter = ('school', 'frequency', 'is_active')
    search_fields = ('name',)


@admin.register(FeeRecord)
class FeeRecordAdmin(admin.ModelAdmin):
    list_display = (
        'student',
        'fee_type',
        'month',
        'year',
        'total_amount',
        'paid_amount',
        'due_amount',
        'status',
        'due_date',
    )
    list_filter = ('school', 'session', 'status', 'fee_type')
    search_fields = ('student__admission_number', 'student__first_name', 'receipt_number')
    readonly_fields = ('total_amount', 'due_amount', 'status')


@admin.register(FeePayment)
class FeePaymentAdmin(admin.ModelAdmin):
    list_display = ('receipt_number', 'fee_record', 'amount', 'payment_date', 'account', 'received_by')
    list_filter = ('school', 'payment_date', 'payment_method')
    search_fields = ('receipt_number', 'fee_record__student__admission_number')

    def has_delete_permission(self, request, obj=None):
        return False
