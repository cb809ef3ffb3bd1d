from django.urls import path
from .views import (
    contact_list_create, contact_detail, contact_statement,
    contact_import, contact_export,
)

urlpatterns = [
    path('contacts/', contact_list_create, name='contact-list-create'),
    path('contacts/import/', contact_import, name='contact-import'),
    path('contacts/export/', contact_export, name='contact-export'),
    path('contacts/<int:pk>/', contact_detail, name='contact-detail'),
    path('contacts/<int:pk>/statement/', contact_statement, name='contact-statement'),
]
