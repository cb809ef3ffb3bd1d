from django.urls import path
from . import views

urlpatterns = [
    path('dashboard/stats/', views.dashboard_stats, name='dashboard-stats'),
    path('dashboard/charts/', views.dashboard_charts, name='dashboard-charts'),
    path('reports/summary/', views.report_summary, name='report-summary'),
    path('reports/alerts/', views.alerts, name='report-alerts'),
    path('reports/profit-loss/', views.profit_loss, name='profit-loss'),
    path('reports/gst/', views.gst_report, name='gst-report'),
]
