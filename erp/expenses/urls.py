from django.urls import path
from .views import (
    expense_category_list_create, expense_category_detail,
    expense_list_create, expense_detail, expense_summary,
)

urlpatterns = [
    path('expense-categories/', expense_category_list_create, name='expense-category-list-create'),
    path('expense-categories/<int:pk>/', expense_category_detail, name='expense-category-detail'),
    path('expenses/', expense_list_create, name='expense-list-create'),
    path('expenses/summary/', expense_summary, name='expense-summary'),
    path('expenses/<int:pk>/', expense_detail, name='expense-detail'),
]
