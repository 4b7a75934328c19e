from django.urls import path
from .views import (
    CustomTokenObtainPairView, CustomTokenRefreshView, user_me, set_pin,
    user_list_create, user_detail,
    dairy_settings, audit_log_list, archive_data
)

urlpatterns = [
    # Auth endpoints
    path('auth/login/', CustomTokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('auth/refresh/', CustomTokenRefreshView.as_view(), name='token_refresh'),
    path('auth/me/', user_me, name='user-me'),
    path('auth/pin/', set_pin, name='set-pin'),

    # User endpoints
    path('users/', user_list_create, name='user-list-create'),
    path('users/<int:pk>/', user_detail, name='user-detail'),

    # Settings
    path('settings/', dairy_settings, name='dairy-settings'),

    # AuditLog endpoints
    path('audit-logs/', audit_log_list, name='audit-log-list'),

    # Archive / factory reset
    path('archive/', archive_data, name='archive-data'),
]
