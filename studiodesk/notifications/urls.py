from django.urls import path
from . import views

urlpatterns = [
    path('notifications/', views.notification_list, name='notification-list'),
    path('notifications/unread-count/', views.notification_unread_count, name='notification-unread-count'),
    path('notifications/read-all/', views.notification_mark_all_read, name='notification-read-all'),
    path('notifications/system/', views.notification_send_system, name='notification-system'),
    path('notifications/<int:pk>/', views.notification_delete, name='notification-delete'),
    path('notifications/<int:pk>/read/', views.notification_mark_read, name='notification-read'),
    path('notifications/<int:pk>/unread/', views.notification_mark_unread, name='notification-unread'),
]
