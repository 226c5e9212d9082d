from django.urls import path
from . import views

urlpatterns = [
    # Checkout endpoints (before <int:pk> routes)
    path('equipment/checkout/request/', views.checkout_request, name='checkout-request'),
    path('equipment/checkout/history/', views.checkout_history, name='checkout-history'),
    path('equipment/checkout/pending/', views.checkout_pending, name='checkout-pending'),
    path('equipment/checkout/overdue/', views.checkout_overdue, name='checkout-overdue'),
    path('equipment/checkout/<int:pk>/', views.checkout_detail, name='checkout-detail'),
    path('equipment/checkout/<int:pk>/approve/', views.checkout_approve, name='checkout-approve'),
    path('equipment/checkout/<int:pk>/handoff/', views.checkout_handoff, name='checkout-handoff'),
    path('equipment/checkout/<int:pk>/cancel/', views.checkout_cancel, name='checkout-cancel'),
    path('equipment/checkout/<int:pk>/return/', views.checkout_return, name='checkout-return'),
    path('equipment/checkout/<int:pk>/extensions/', views.checkout_extension_request, name='checkout-extension-request'),
    path('equipment/checkout/<int:pk>/extensions/<int:extension_pk>/', views.checkout_extension_decide, name='checkout-extension-decide'),

    # Equipment endpoints
    path('equipment/', views.equipment_list_create, name='equipment-list-create'),
    path('equipment/<int:pk>/', views.equipment_detail, name='equipment-detail'),
    path('equipment/<int:pk>/history/', views.equipment_history, name='equipment-history'),
    path('equipment/<int:pk>/maintenance/', views.equipment_maintenance, name='equipment-maintenance'),
]
