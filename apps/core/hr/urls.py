from django.urls import path

from .views import hr_pf_entry_create, hr_pf_ledger, hr_pf_summary

urlpatterns = [
    path('pf/', hr_pf_summary, name='hr_pf_summary'),
    path('pf/<int:staff_id>/', hr_pf_ledger, name='hr_pf_ledger'),
    path('pf/<int:staff_id>/entries/', hr_pf_entry_create, name='hr_pf_entry_create'),
]
