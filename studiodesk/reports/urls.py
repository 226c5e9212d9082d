from django.urls import path
from . import views

urlpatterns = [
    path('reports/dashboard/', views.dashboard, name='reports-dashboard'),
    path('reports/maintenance/', views.maintenance_report, name='reports-maintenance'),
    path('reports/equipment-utilization/', views.equipment_utilization, name='reports-equipment-utilization'),
    path('reports/checkouts/', views.checkout_summary, name='reports-checkouts'),
]
