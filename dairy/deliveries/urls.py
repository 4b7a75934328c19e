from django.urls import path
from . import views

urlpatterns = [
    path('deliveries/', views.delivery_list_create, name='delivery-list-create'),
    path('deliveries/<int:pk>/', views.delivery_detail, name='delivery-detail'),
    path('deliveries/<int:pk>/items/', views.delivery_items, name='delivery-items'),
    path('deliveries/bulk-mark-delivered/', views.bulk_mark_delivered, name='delivery-bulk-mark'),
    path('deliveries/schedule/', views.schedule_deliveries, name='delivery-schedule'),
    path('deliveries/auto-deliver/', views.auto_deliver, name='delivery-auto-deliver'),
    path('deliveries/addon/', views.addon_order, name='delivery-addon'),
]
