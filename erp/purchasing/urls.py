from django.urls import path
from .views import (
    purchase_order_list_create, purchase_order_detail,
    purchase_order_receive, purchase_order_cancel,
    purchase_return_list_create, purchase_return_detail,
)

urlpatterns = [
    path('purchase-orders/', purchase_order_list_create, name='purchase-order-list-create'),
    path('purchase-orders/<int:pk>/', purchase_order_detail, name='purchase-order-detail'),
    path('purchase-orders/<int:pk>/receive/', purchase_order_receive, name='purchase-order-receive'),
    path('purchase-orders/<int:pk>/cancel/', purchase_order_cancel, name='purchase-order-cancel'),
    path('purchase-returns/', purchase_return_list_create, name='purchase-return-list-create'),
    path('purchase-returns/<int:pk>/', purchase_return_detail, name='purchase-return-detail'),
]
