from django.urls import path
from . import views

urlpatterns = [
    path('invoices/', views.invoice_list_create, name='invoice-list-create'),
    path('invoices/<int:pk>/', views.invoice_detail, name='invoice-detail'),
    path('invoices/<int:pk>/payments/', views.invoice_payment, name='invoice-payment'),
    path('invoices/generate-monthly/', views.generate_monthly, name='invoice-generate-monthly'),
    path('invoices/bulk-preview/', views.bulk_preview, name='invoice-bulk-preview'),
    path('invoices/bulk-generate/', views.bulk_generate, name='invoice-bulk-generate'),
    path('payments/', views.payment_list, name='payment-list'),
    path('payments/advance/', views.advance_payment, name='payment-advance'),
    path('billing/summary/', views.billing_summary, name='billing-summary'),
]
