"""
URL configuration for the erp project.

Every app mounts its API under /api/v1/.
"""
from django.contrib import admin
from django.urls import path, include, re_path
from django.conf import settings
from django.views.static import serve

admin.site.site_header = "ERP Admin Panel"
admin.site.site_title = "ERP Admin Portal"
admin.site.index_title = "Business administration"

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/v1/', include('erp.core.urls')),
    path('api/v1/', include('erp.locations.urls')),
    path('api/v1/', include('erp.catalog.urls')),
    path('api/v1/', include('erp.inventory.urls')),
    path('api/v1/', include('erp.parties.urls')),
    path('api/v1/', include('erp.purchasing.urls')),
    path('api/v1/', include('erp.sales.urls')),
    path('api/v1/', include('erp.staff.urls')),
    path('api/v1/', include('erp.crm.urls')),
    path('api/v1/', include('erp.expenses.urls')),
    path('api/v1/', include('erp.reports.urls')),
    re_path(r'^media/(?P<path>.*)$', serve, {'document_root': settings.MEDIA_ROOT}),
    re_path(r'^static/(?P<path>.*)$', serve, {'document_root': settings.STATIC_ROOT}),
]
