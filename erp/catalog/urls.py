from django.urls import path
from .views import (
    category_list_create, category_detail,
    sub_category_list_create, sub_category_detail,
    brand_list_create, brand_detail,
    unit_list_create, unit_detail,
    tax_rate_list_create, tax_rate_detail,
    product_list_create, product_detail, product_services, product_low_stock,
    product_stock_history, product_import, product_export,
)

urlpatterns = [
    path('categories/', category_list_create, name='category-list-create'),
    path('categories/<int:pk>/', category_detail, name='category-detail'),
    path('sub-categories/', sub_category_list_create, name='sub-category-list-create'),
    path('sub-categories/<int:pk>/', sub_category_detail, name='sub-category-detail'),
    path('brands/', brand_list_create, name='brand-list-create'),
    path('brands/<int:pk>/', brand_detail, name='brand-detail'),
    path('units/', unit_list_create, name='unit-list-create'),
    path('units/<int:pk>/', unit_detail, name='unit-detail'),
    path('tax-rates/', tax_rate_list_create, name='tax-rate-list-create'),
    path('tax-rates/<int:pk>/', tax_rate_detail, name='tax-rate-detail'),
    path('products/', product_list_create, name='product-list-create'),
    path('products/services/', product_services, name='product-services'),
    path('products/low-stock/', product_low_stock, name='product-low-stock'),
    path('products/import/', product_import, name='product-import'),
    path('products/export/', product_export, name='product-export'),
    path('products/<int:pk>/', product_detail, name='product-detail'),
    path('products/<int:pk>/stock-history/', product_stock_history, name='product-stock-history'),
]
