from django.urls import path

from .views import (
    accounting_period_close,
    accounting_report_balance_sheet,
    accounting_report_bank,
    accounting_report_due,
    accounting_report_income_expenditure,
    accounting_report_receipt_payment,
)

urlpatterns = [
    path('reports/receipt-payment/', accounting_report_receipt_payment, name='accounting_report_receipt_payment'),
    path(
        'reports/income-expenditure/',
        accounting_report_income_expenditure,
        name='accounting_report_income_expenditure',
    ),
    path('reports/balance-sheet/', accounting_report_balance_sheet, name='accounting_report_balance_sheet'),
    path('reports/bank/', accounting_report_bank, name='accounting_report_bank'),
    path('reports/due/', accounting_report_due, name='accounting_report_due'),
    path('periods/close/', accounting_period_close, name='accounting_period_close'),
]
