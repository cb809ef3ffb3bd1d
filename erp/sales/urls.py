from django.urls import path
from .views import (
    quotation_list_create, quotation_detail, quotation_convert,
    delivery_challan_list_create, delivery_challan_detail,
    sales_order_list_create, sales_order_detail, sales_order_convert, sales_order_cancel,
    sales_order_payments, sales_payment_delete, sales_order_print, sales_order_export,
    sales_return_list_create, sales_return_detail,
)

urlpatterns = [
    path('quotations/', quotation_list_create, name='quotation-list-create'),
    path('quotations/<int:pk>/', quotation_detail, name='quotation-detail'),
    path('quotations/<int:pk>/convert/', quotation_convert, name='quotation-convert'),
    path('delivery-challans/', delivery_challan_list_create, name='delivery-challan-list-create'),
    path('delivery-challans/<int:pk>/', delivery_challan_detail, name='delivery-challan-detail'),
    path('sales-orders/', sales_order_list_create, name='sales-order-list-create'),
    path('sales-orders/export/', sales_order_export, name='sales-order-export'),
    path('sales-orders/<int:pk>/', sales_order_detail, name='sales-order-detail'),
    path('sales-orders/<int:pk>/convert/', sales_order_convert, name='sales-order-convert'),
    path('sales-orders/<int:pk>/cancel/', sales_order_cancel, name='sales-order-cancel'),
    path('sales-orders/<int:pk>/payments/', sales_order_payments, name='sales-order-payments'),
    path('sales-orders/<int:pk>/payments/<int:payment_id>/', sales_payment_delete, name='sales-payment-delete'),
    path('sales-orders/<int:pk>/print/', sales_order_print, name='sales-order-print'),
    path('sales-returns/', sales_return_list_create, name='sales-return-list-create'),
    path('sales-returns/<int:pk>/', sales_return_detail, name='sales-return-detail'),
]
