from django.urls import path
from .views import (
    employee_list_create, employee_detail, employee_performance,
    task_list_create, task_detail, task_status, task_complete, my_tasks,
    attendance_list_create, attendance_check_in, attendance_check_out, my_attendance,
)

urlpatterns = [
    path('employees/', employee_list_create, name='employee-list-create'),
    path('employees/<int:pk>/', employee_detail, name='employee-detail'),
    path('employees/<int:pk>/performance/', employee_performance, name='employee-performance'),
    path('tasks/', task_list_create, name='task-list-create'),
    path('tasks/mine/', my_tasks, name='my-tasks'),
    path('tasks/<int:pk>/', task_detail, name='task-detail'),
    path('tasks/<int:pk>/status/', task_status, name='task-status'),
    path('tasks/<int:pk>/complete/', task_complete, name='task-complete'),
    path('attendance/', attendance_list_create, name='attendance-list-create'),
    path('attendance/check-in/', attendance_check_in, name='attendance-check-in'),
    path('attendance/mine/', my_attendance, name='my-attendance'),
    path('attendance/<int:pk>/check-out/', attendance_check_out, name='attendance-check-out'),
]
