from django.contrib import admin

from .models import (
    Account,
    ExpenseCategory,
    FixedAsset,
    Fund,
    FundTransaction,
    IncomeCategory,
    PeriodClosing,
    StaffWelfareLoan,
    Transaction,
)


class NoDeleteAdmin(admin.ModelAdmin):
    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Account)
class AccountAdmin(admin.ModelAdmin):
    list_display = ('account_name', 'account_type', 'bank_name', 'opening_balance', 'school', 'status')
    list_filter = ('school', 'account_type', 'status')
    search_fields = ('account_name', 'account_number', 'bank_name')


@admin.register(IncomeCategory, ExpenseCategory)
class LedgerCategoryAdmin(admin.ModelAdmin):
    list_display = ('name', 'school', 'is_active')
    list_filter = ('school', 'is_active')
    search_fields = ('name',)


@admin.register(Fund)
class FundAdmin(admin.ModelAdmin):
    list_display = ('name', 'fund_code', 'investor_name', 'account', 'school', 'is_active')
    list_filter = ('school', 'is_active')
    search_fields = ('name', 'fund_code', 'investor_name')


@admin.register(FundTransaction)
class FundTransactionAdmin(NoDeleteAdmin):
    list_display = ('fund', 'transaction_type', 'amount', 'account', 'transaction_date')
    list_filter = ('school', 'transaction_type', 'transaction_date')
    search_fields = ('fund__name', 'description')


@admin.register(Transaction)
class TransactionAdmin(NoDeleteAdmin):
    list_display = ('transaction_date', 'type', 'account', 'category_name', 'amount', 'reference_number')
    list_filter = ('school', 'type', 'account', 'transaction_date')
    search_fields = ('reference_number', 'description')


@admin.register(FixedAsset)
class FixedAssetAdmin(admin.ModelAdmin):
    list_display = ('asset_name', 'asset_code', 'purchase_price', 'current_value', 'purchase_date', 'status')
    list_filter = ('school', 'status')
    search_fields = ('asset_name', 'asset_code')


@admin.register(StaffWelfareLoan)
class StaffWelfareLoanAdmin(admin.ModelAdmin):
    list_display = ('loan_number', 'staff', 'loan_amount', 'total_paid', 'loan_date', 'status')
    list_filter = ('school', 'status')
    search_fields = ('loan_number', 'staff__employee_id', 'staff__first_name')


@admin.register(PeriodClosing)
class PeriodClosingAdmin(NoDeleteAdmin):
    list_display = ('period_end', 'account', 'closing_balance', 'closed_by', 'closed_at')
    list_filter = ('school', 'period_end')
