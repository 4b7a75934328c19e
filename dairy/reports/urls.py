from django.urls import path
from . import views

urlpatterns = [
    path('reports/integrity/', views.financial_integrity, name='report-integrity'),
    path('reports/integrity/repair/', views.financial_integrity_repair, name='report-integrity-repair'),
    path('reports/backup/', views.backup_export, name='report-backup'),
    path('reports/deliveries/', views.delivery_summary, name='report-delivery-summary'),
    path('reports/revenue/', views.revenue_summary, name='report-revenue-summary'),
]
