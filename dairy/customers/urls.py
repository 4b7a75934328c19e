from django.urls import path
from . import views

urlpatterns = [
    path('customers/', views.customer_list_create, name='customer-list-create'),
    path('customers/<int:pk>/', views.customer_detail, name='customer-detail'),
    path('customers/<int:customer_pk>/subscriptions/', views.subscription_list_create, name='subscription-list-create'),
    path('customers/<int:customer_pk>/subscriptions/<int:pk>/', views.subscription_detail, name='subscription-detail'),
    path('customers/<int:customer_pk>/vacations/', views.vacation_list_create, name='vacation-list-create'),
    path('customers/<int:customer_pk>/vacations/<int:pk>/', views.vacation_detail, name='vacation-detail'),
    path('customers/<int:customer_pk>/ledger/', views.customer_ledger, name='customer-ledger'),
    path('customers/<int:customer_pk>/balance/', views.customer_balance, name='customer-balance'),
]
