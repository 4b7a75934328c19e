from django.urls import path
from . import views

urlpatterns = [
    path('vendors/', views.vendor_list_create, name='vendor-list-create'),
    path('vendors/<int:pk>/', views.vendor_detail, name='vendor-detail'),
    path('procurements/', views.procurement_list_create, name='procurement-list-create'),
    path('procurements/<int:pk>/', views.procurement_detail, name='procurement-detail'),
    path('procurements/analytics/', views.procurement_analytics, name='procurement-analytics'),
    path('vendor-payments/', views.vendor_payment_list_create, name='vendor-payment-list-create'),
]
