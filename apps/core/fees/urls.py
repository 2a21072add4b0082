from django.urls import path

from .views import fee_payment_create, fee_receipt_download, fee_record_list

urlpatterns = [
    path('records/', fee_record_list, name='fee_record_list'),
    path('records/<int:record_id>/payments/', fee_payment_create, name='fee_payment_create'),
    path('receipts/<int:payment_id>/', fee_receipt_download, name='fee_receipt_download'),
]
