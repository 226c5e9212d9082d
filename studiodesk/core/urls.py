from django.urls import path
from .views import (
    CustomTokenObtainPairView, CustomTokenRefreshView, user_me,
    user_list_create, user_detail,
    department_list_create, department_detail,
    activity_list, activity_detail, activity_summary,
)

urlpatterns = [
    # Auth endpoints
    path('auth/login/', CustomTokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('auth/refresh/', CustomTokenRefreshView.as_view(), name='token_refresh'),
    path('auth/me/', user_me, name='user-me'),

    # User endpoints
    path('users/', user_list_create, name='user-list-create'),
    path('users/<int:pk>/', user_detail, name='user-detail'),

    # Department endpoints
    path('departments/', department_list_create, name='department-list-create'),
    path('departments/<int:pk>/', department_detail, name='department-detail'),

    # Activity endpoints
    path('activities/', activity_list, name='activity-list'),
    path('activities/summary/', activity_summary, name='activity-summary'),
    path('activities/<int:pk>/', activity_detail, name='activity-detail'),
]
