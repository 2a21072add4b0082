from django.urls import path

from .views import (
    attendance_calendar,
    attendance_daily,
    attendance_device_punch,
    attendance_holiday_list,
    attendance_mark,
    attendance_mark_all,
    attendance_monthly_summary,
    attendance_rule_settings,
)

urlpatterns = [
    path('daily/', attendance_daily, name='attendance_daily'),
    path('monthly/', attendance_monthly_summary, name='attendance_monthly_summary'),
    path('calendar/', attendance_calendar, name='attendance_calendar'),

    path('mark/', attendance_mark, name='attendance_mark'),
    path('mark-all/', attendance_mark_all, name='attendance_mark_all'),
    path('device/punch/', attendance_device_punch, name='attendance_device_punch'),

    path('rules/', attendance_rule_settings, name='attendance_rule_settings'),
    path('holidays/', attendance_holiday_list, name='attendance_holiday_list'),
]
