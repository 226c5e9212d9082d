"""
URL configuration for the studiodesk project.

Every app mounts its routes under /api/v1/.
"""
from django.contrib import admin
from django.urls import path, include

admin.site.site_header = "StudioDesk Admin Panel"
admin.site.site_title = "StudioDesk Admin Portal"
admin.site.index_title = "Studio equipment administration"

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/v1/', include('studiodesk.core.urls')),
    path('api/v1/', include('studiodesk.equipment.urls')),
    path('api/v1/', include('studiodesk.notifications.urls')),
    path('api/v1/', include('studiodesk.reports.urls')),
]
