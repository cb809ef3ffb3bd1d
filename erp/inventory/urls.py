from django.urls import path
from erp.catalog.views import product_low_stock
from .views import (
    stock_summary,
    stock_adjustment_list_create, stock_adjustment_detail,
)

urlpatterns = [
    path('stock/summary/', stock_summary, name='stock-summary'),
    path('stock/low/', product_low_stock, name='stock-low'),
    path('stock-adjustments/', stock_adjustment_list_create, name='stock-adjustment-list-create'),
    path('stock-adjustments/<int:pk>/', stock_adjustment_detail, name='stock-adjustment-detail'),
]
