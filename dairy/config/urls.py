"""
URL configuration for the dairy back-office project.

Every app exposes its API under ``api/v1/``.
"""
from django.contrib import admin
from django.urls import path, include

admin.site.site_header = "Dairy Back-Office Admin Panel"
admin.site.site_title = "Dairy Back-Office Admin Portal"
admin.site.index_title = "Welcome to the Dairy Admin Portal"

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/v1/', include('dairy.core.urls')),
    path('api/v1/', include('dairy.catalog.urls')),
    path('api/v1/', include('dairy.customers.urls')),
    path('api/v1/', include('dairy.deliveries.urls')),
    path('api/v1/', include('dairy.billing.urls')),
    path('api/v1/', include('dairy.procurement.urls')),
    path('api/v1/', include('dairy.expenses.urls')),
    path('api/v1/', include('dairy.reports.urls')),
]
