import logging
from decimal import Decimal
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.db.models import Count, ProtectedError, Sum
from django.shortcuts import get_object_or_404
from erp.core.pagination import paginated_response
from erp.core.utils import create_audit_log, generate_document_number, snapshot
from .filters import ExpenseFilter
from .models import ExpenseCategory, Expense
from .serializers import ExpenseCategorySerializer, ExpenseSerializer

logger = logging.getLogger(__name__)


# Expense category views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def expense_category_list_create(request):
    """List all expense categories or create a new one"""
    if request.method == 'GET':
        categories = ExpenseCategory.objects.all()
        return Response(ExpenseCategorySerializer(categories, many=True).data)

    serializer = ExpenseCategorySerializer(data=request.data)
    if serializer.is_valid():
        category = serializer.save()
        create_audit_log(request=request, action='create', model_name='ExpenseCategory',
                         object_id=category.pk, object_name=category.name)
        return Response(serializer.data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def expense_category_detail(request, pk):
    """Retrieve, update or delete an expense category"""
    category = get_object_or_404(ExpenseCategory, pk=pk)

    if request.method == 'GET':
        return Response(ExpenseCategorySerializer(category).data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = ExpenseCategorySerializer(category, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        try:
            category.delete()
        except ProtectedError:
            return Response({'error': 'Category has expenses and cannot be deleted'},
                            status=status.HTTP_400_BAD_REQUEST)
        create_audit_log(request=request, action='delete', model_name='ExpenseCategory',
                         object_id=pk, object_name=category.name)
        return Response(status=status.HTTP_204_NO_CONTENT)


# Expense views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def expense_list_create(request):
    """List expenses with filters or record a new expense"""
    if request.method == 'GET':
        queryset = Expense.objects.select_related('category', 'store')
        filterset = ExpenseFilter(request.query_params, queryset=queryset)
        if not filterset.is_valid():
            return Response(filterset.errors, status=status.HTTP_400_BAD_REQUEST)
        return paginated_response(request, filterset.qs.order_by('-expense_date', '-id'), ExpenseSerializer)

    serializer = ExpenseSerializer(data=request.data)
    if serializer.is_valid():
        reference_number = serializer.validated_data.get('reference_number') or \
            generate_document_number('EXP', Expense, 'reference_number')
        expense = serializer.save(created_by=request.user, reference_number=reference_number)
        create_audit_log(request=request, action='create', model_name='Expense', object_id=expense.pk,
                         object_name=expense.reference_number, changes={'new': snapshot(expense)})
        logger.info(f"Expense {expense.reference_number} of {expense.amount} recorded by {request.user.username}")
        return Response(ExpenseSerializer(expense).data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def expense_detail(request, pk):
    """Retrieve, update or delete an expense"""
    expense = get_object_or_404(Expense.objects.select_related('category', 'store'), pk=pk)

    if request.method == 'GET':
        return Response(ExpenseSerializer(expense).data)
    elif request.method in ('PUT', 'PATCH'):
        old = snapshot(expense)
        serializer = ExpenseSerializer(expense, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            if not serializer.validated_data.get('reference_number', expense.reference_number):
                serializer.validated_data.pop('reference_number', None)
            expense = serializer.save()
            create_audit_log(request=request, action='update', model_name='Expense', object_id=expense.pk,
                             object_name=expense.reference_number, changes={'old': old, 'new': snapshot(expense)})
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        create_audit_log(request=request, action='delete', model_name='Expense', object_id=expense.pk,
                         object_name=expense.reference_number, changes={'old': snapshot(expense)})
        expense.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def expense_summary(request):
    """Expense totals per category for the filtered range"""
    queryset = ExpenseFilter(request.query_params, queryset=Expense.objects.all()).qs
    rows = queryset.values('category_id', 'category__name') \
        .annotate(total=Sum('amount'), count=Count('id')) \
        .order_by('-total')
    categories = [
        {'category': row['category_id'], 'category_name': row['category__name'],
         'total': row['total'], 'count': row['count']}
        for row in rows
    ]
    return Response({
        'date_from': request.query_params.get('date_from'),
        'date_to': request.query_params.get('date_to'),
        'total': sum((c['total'] for c in categories), Decimal('0.00')),
        'count': sum(c['count'] for c in categories),
        'categories': categories,
    })
