import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated, AllowAny
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer, TokenRefreshSerializer
from rest_framework_simplejwt.exceptions import InvalidToken, TokenError, AuthenticationFailed
from django.contrib.auth import get_user_model
from django.core.exceptions import ObjectDoesNotExist
from django.shortcuts import get_object_or_404
from django.db.models import Q
from .models import Setting, AuditLog, BusinessProfile
from .pagination import paginated_response
from .permissions import IsAdmin
from .serializers import (
    UserSerializer, UserCreateSerializer, ProfileSerializer, ChangePasswordSerializer,
    SettingSerializer, AuditLogSerializer, BusinessProfileSerializer
)
from .utils import create_audit_log, date_param, is_admin_user, snapshot

User = get_user_model()
logger = logging.getLogger(__name__)


class CustomTokenObtainPairSerializer(TokenObtainPairSerializer):
    def validate(self, attrs):
        data = super().validate(attrs)
        if not self.user.is_active:
            raise AuthenticationFailed('User account is disabled.')
        return data

    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        token['username'] = user.username
        token['groups'] = list(user.groups.values_list('name', flat=True))
        return token


class CustomTokenObtainPairView(TokenObtainPairView):
    serializer_class = CustomTokenObtainPairSerializer

    def post(self, request, *args, **kwargs):
        response = super().post(request, *args, **kwargs)
        if response.status_code == status.HTTP_200_OK:
            user = User.objects.filter(username=request.data.get('username')).first()
            if user:
                create_audit_log(request=request, action='login', model_name='User',
                                 object_id=user.pk, object_name=user.username, user=user)
        return response


class CustomTokenRefreshSerializer(TokenRefreshSerializer):
    """Custom token refresh serializer that handles deleted users gracefully"""
    def validate(self, attrs):
        try:
            return super().validate(attrs)
        except (InvalidToken, TokenError):
            raise InvalidToken('Token is invalid or expired.')
        except ObjectDoesNotExist:
            raise InvalidToken('Token is invalid. User no longer exists.')


class CustomTokenRefreshView(TokenRefreshView):
    """Custom token refresh view that handles deleted users gracefully"""
    serializer_class = CustomTokenRefreshSerializer


def build_user_payload(user):
    """Current user with groups, store membership and access flags"""
    user_data = UserSerializer(user).data
    user_data['groups'] = list(user.groups.values_list('name', flat=True))

    employee = getattr(user, 'employee_profile', None)
    user_data['employee'] = None
    user_data['store'] = None
    if employee is not None:
        user_data['employee'] = {
            'id': employee.id,
            'role': employee.role,
            'full_name': employee.full_name,
        }
        if employee.store_id:
            user_data['store'] = {
                'id': employee.store.id,
                'name': employee.store.name,
                'onboarding_completed': employee.store.onboarding_completed,
            }

    is_admin = is_admin_user(user) or (employee is not None and employee.role == 'admin')
    user_data['is_admin'] = is_admin
    user_data['can_access_dashboard'] = is_admin
    user_data['can_access_reports'] = is_admin
    user_data['can_access_audit_logs'] = is_admin
    user_data['can_manage_employees'] = is_admin
    return user_data


@api_view(['POST'])
@permission_classes([AllowAny])
def register(request):
    """User registration endpoint"""
    serializer = UserCreateSerializer(data=request.data)
    if serializer.is_valid():
        user = serializer.save()
        token = CustomTokenObtainPairSerializer.get_token(user)
        create_audit_log(request=request, action='create', model_name='User',
                         object_id=user.pk, object_name=user.username, user=user)
        logger.info(f"Registered user {user.username}")
        return Response({
            'user': UserSerializer(user).data,
            'access': str(token.access_token),
            'refresh': str(token),
        }, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


# User views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsAdmin])
def user_list_create(request):
    """List all users or create a new user"""
    if request.method == 'GET':
        users = User.objects.all().order_by('username')
        serializer = UserSerializer(users, many=True)
        return Response(serializer.data)
    else:
        serializer = UserCreateSerializer(data=request.data)
        if serializer.is_valid():
            user = serializer.save()
            create_audit_log(request=request, action='create', model_name='User',
                             object_id=user.pk, object_name=user.username)
            return Response(UserSerializer(user).data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsAdmin])
def user_detail(request, pk):
    """Retrieve, update or delete a user"""
    user = get_object_or_404(User, pk=pk)

    if request.method == 'GET':
        serializer = UserSerializer(user)
        return Response(serializer.data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = UserSerializer(user, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        if user.pk == request.user.pk:
            return Response({'error': 'You cannot delete your own account'}, status=status.HTTP_400_BAD_REQUEST)
        create_audit_log(request=request, action='delete', model_name='User',
                         object_id=user.pk, object_name=user.username)
        user.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['GET', 'PATCH'])
@permission_classes([IsAuthenticated])
def user_me(request):
    """Get or update the current user"""
    if request.method == 'PATCH':
        serializer = ProfileSerializer(request.user, data=request.data, partial=True)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        serializer.save()
    return Response(build_user_payload(request.user))


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def change_password(request):
    """Change the current user's password"""
    serializer = ChangePasswordSerializer(data=request.data, context={'request': request})
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    request.user.set_password(serializer.validated_data['new_password'])
    request.user.save(update_fields=['password', 'updated_at'])
    create_audit_log(request=request, action='update', model_name='User',
                     object_id=request.user.pk, object_name=request.user.username,
                     changes={'password': 'changed'})
    return Response({'detail': 'Password updated'})


# Setting views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsAdmin])
def setting_list_create(request):
    """List all settings or create a new setting"""
    if request.method == 'GET':
        settings = Setting.objects.all().order_by('key')
        serializer = SettingSerializer(settings, many=True)
        return Response(serializer.data)
    else:
        serializer = SettingSerializer(data=request.data)
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsAdmin])
def setting_detail(request, pk):
    """Retrieve, update or delete a setting"""
    setting = get_object_or_404(Setting, pk=pk)

    if request.method == 'GET':
        serializer = SettingSerializer(setting)
        return Response(serializer.data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = SettingSerializer(setting, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        setting.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['GET', 'PUT', 'PATCH'])
@permission_classes([IsAuthenticated])
def business_profile(request):
    """
    Get or upsert the business profile.

    GET returns an empty profile when none was saved yet. PUT/PATCH create the
    row on first save and update it afterwards; there is only ever one row.
    """
    profile = BusinessProfile.load()

    if request.method == 'GET':
        if profile is None:
            return Response(BusinessProfileSerializer(BusinessProfile()).data)
        return Response(BusinessProfileSerializer(profile).data)

    if not is_admin_user(request.user):
        return Response({'error': 'Only admins can change the business profile'}, status=status.HTTP_403_FORBIDDEN)

    old = snapshot(profile) if profile else {}
    serializer = BusinessProfileSerializer(profile, data=request.data, partial=request.method == 'PATCH')
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    saved = serializer.save()
    create_audit_log(
        request=request,
        action='update' if profile else 'create',
        model_name='BusinessProfile',
        object_id=saved.pk,
        object_name=saved.business_name,
        changes={'old': old, 'new': snapshot(saved)},
    )
    return Response(BusinessProfileSerializer(saved).data)


def filter_audit_logs(request, queryset):
    """Apply the audit log query-string filters"""
    action_filter = request.query_params.get('action')
    if action_filter:
        queryset = queryset.filter(action=action_filter)

    model_filter = request.query_params.get('model')
    if model_filter:
        queryset = queryset.filter(model_name__iexact=model_filter)

    user_filter = request.query_params.get('user')
    if user_filter:
        queryset = queryset.filter(user_id=user_filter)

    date_from = date_param(request, 'date_from')
    date_to = date_param(request, 'date_to')
    if date_from:
        queryset = queryset.filter(created_at__date__gte=date_from)
    if date_to:
        queryset = queryset.filter(created_at__date__lte=date_to)

    search = request.query_params.get('search', '').strip()
    if search:
        queryset = queryset.filter(
            Q(object_name__icontains=search) |
            Q(object_reference__icontains=search) |
            Q(object_id=search)
        )
    return queryset


# AuditLog views (read-only)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def audit_log_list(request):
    """List audit logs with filtering, 100 per page by default"""
    queryset = AuditLog.objects.select_related('user')

    if not is_admin_user(request.user):
        queryset = queryset.filter(user=request.user)

    queryset = filter_audit_logs(request, queryset).order_by('-created_at', '-id')
    return paginated_response(request, queryset, AuditLogSerializer, default_limit=100)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def audit_log_detail(request, pk):
    """Retrieve an audit log"""
    audit_log = get_object_or_404(AuditLog, pk=pk)

    if not is_admin_user(request.user) and audit_log.user_id != request.user.pk:
        return Response({'error': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)

    serializer = AuditLogSerializer(audit_log)
    return Response(serializer.data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdmin])
def audit_log_history(request, model_name, object_id):
    """Full change history of one record, oldest first"""
    queryset = AuditLog.objects.select_related('user').filter(
        model_name__iexact=model_name,
        object_id=str(object_id),
    ).order_by('created_at', 'id')
    return Response(AuditLogSerializer(queryset, many=True).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def global_search(request):
    """Global search across products, contacts, documents, deals and employees"""
    query = request.query_params.get('q', '').strip()

    if not query:
        return Response({
            'products': [],
            'contacts': [],
            'sales_orders': [],
            'purchase_orders': [],
            'deals': [],
            'employees': [],
        })

    from erp.catalog.filters import ProductFilter
    from erp.catalog.models import Product
    from erp.catalog.serializers import ProductSerializer
    from erp.parties.models import Contact
    from erp.parties.serializers import ContactSerializer
    from erp.sales.models import SalesOrder
    from erp.sales.serializers import SalesOrderListSerializer
    from erp.purchasing.models import PurchaseOrder
    from erp.purchasing.serializers import PurchaseOrderListSerializer
    from erp.crm.models import Deal
    from erp.crm.serializers import DealSerializer
    from erp.staff.models import Employee
    from erp.staff.serializers import EmployeeSerializer

    results = {}

    products_filter = ProductFilter({'search': query}, queryset=Product.objects.select_related('category', 'brand', 'unit'))
    results['products'] = ProductSerializer(products_filter.qs[:20], many=True).data

    contacts = Contact.objects.filter(
        Q(name__icontains=query) |
        Q(phone__icontains=query) |
        Q(email__icontains=query) |
        Q(company__icontains=query) |
        Q(gstin__icontains=query)
    )[:20]
    results['contacts'] = ContactSerializer(contacts, many=True).data

    sales_orders = SalesOrder.objects.select_related('customer').filter(
        Q(order_number__icontains=query) | Q(customer__name__icontains=query)
    )[:20]
    results['sales_orders'] = SalesOrderListSerializer(sales_orders, many=True).data

    purchase_orders = PurchaseOrder.objects.select_related('supplier').filter(
        Q(order_number__icontains=query) | Q(bill_number__icontains=query) | Q(supplier__name__icontains=query)
    )[:20]
    results['purchase_orders'] = PurchaseOrderListSerializer(purchase_orders, many=True).data

    deals = Deal.objects.select_related('contact').filter(
        Q(title__icontains=query) | Q(contact__name__icontains=query)
    )[:20]
    results['deals'] = DealSerializer(deals, many=True).data

    employees = Employee.objects.filter(
        Q(full_name__icontains=query) | Q(phone__icontains=query) | Q(email__icontains=query)
    )[:20]
    results['employees'] = EmployeeSerializer(employees, many=True).data

    return Response(results)
