from django.urls import path
from .views import (
    deal_list_create, deal_detail, deal_board, deal_move,
    booking_list_create, booking_detail, booking_convert,
)

urlpatterns = [
    path('deals/', deal_list_create, name='deal-list-create'),
    path('deals/board/', deal_board, name='deal-board'),
    path('deals/<int:pk>/', deal_detail, name='deal-detail'),
    path('deals/<int:pk>/move/', deal_move, name='deal-move'),
    path('bookings/', booking_list_create, name='booking-list-create'),
    path('bookings/<int:pk>/', booking_detail, name='booking-detail'),
    path('bookings/<int:pk>/convert/', booking_convert, name='booking-convert'),
]
