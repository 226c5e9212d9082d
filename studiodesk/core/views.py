from datetime import timedelta

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer, TokenRefreshSerializer
from rest_framework_simplejwt.exceptions import AuthenticationFailed, InvalidToken, TokenError
from django.contrib.auth import get_user_model
from django.core.exceptions import ObjectDoesNotExist
from django.db.models import Count, Max
from django.shortcuts import get_object_or_404
from django.utils import timezone
from .models import Department, ActivityLog
from .permissions import IsSuperAdmin, SuperAdminOrReadOnly, capabilities_for, is_admin
from .serializers import (
    UserSerializer, UserCreateSerializer, DepartmentSerializer, ActivityLogSerializer
)
from .utils import create_activity_log, paginated_response

User = get_user_model()


class CustomTokenObtainPairSerializer(TokenObtainPairSerializer):
    def validate(self, attrs):
        data = super().validate(attrs)
        if not self.user.is_active:
            raise AuthenticationFailed('User account is disabled.')
        data['user'] = UserSerializer(self.user).data
        return data

    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        token['username'] = user.username
        token['role'] = user.effective_role
        return token


class CustomTokenObtainPairView(TokenObtainPairView):
    serializer_class = CustomTokenObtainPairSerializer


class CustomTokenRefreshSerializer(TokenRefreshSerializer):
    """Token refresh that reports deleted users as an invalid token"""
    def validate(self, attrs):
        try:
            return super().validate(attrs)
        except (InvalidToken, TokenError):
            raise InvalidToken('Token is invalid or expired.')
        except (ObjectDoesNotExist, User.DoesNotExist):
            raise InvalidToken('Token is invalid. User no longer exists.')


class CustomTokenRefreshView(TokenRefreshView):
    serializer_class = CustomTokenRefreshSerializer


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def user_me(request):
    """Get current user with role capabilities"""
    user_data = UserSerializer(request.user).data
    user_data['role'] = request.user.effective_role
    user_data.update(capabilities_for(request.user))
    return Response(user_data)


# User views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsSuperAdmin])
def user_list_create(request):
    """List all users or create a new user"""
    if request.method == 'GET':
        users = User.objects.select_related('department').order_by('username')
        role = request.query_params.get('role')
        if role:
            users = users.filter(role=role)
        serializer = UserSerializer(users, many=True)
        return Response(serializer.data)
    else:
        serializer = UserCreateSerializer(data=request.data)
        if serializer.is_valid():
            user = serializer.save()
            create_activity_log(
                request=request,
                action='user_create',
                resource='user',
                resource_id=user.id,
                description=user.username,
                changes={'role': user.role},
            )
            return Response(UserSerializer(user).data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsSuperAdmin])
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
            create_activity_log(
                request=request,
                action='user_update',
                resource='user',
                resource_id=user.id,
                description=user.username,
                changes={key: str(value) for key, value in serializer.validated_data.items()},
            )
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        if user == request.user:
            return Response({'success': False, 'message': 'You cannot delete your own account'},
                            status=status.HTTP_400_BAD_REQUEST)
        # Deactivate instead of delete so checkout and maintenance history keep their owner
        user.is_active = False
        user.save(update_fields=['is_active', 'updated_at'])
        create_activity_log(
            request=request,
            action='user_delete',
            resource='user',
            resource_id=user.id,
            description=user.username,
        )
        return Response(status=status.HTTP_204_NO_CONTENT)


# Department views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, SuperAdminOrReadOnly])
def department_list_create(request):
    """List all departments or create a new department"""
    if request.method == 'GET':
        departments = Department.objects.all()
        if request.query_params.get('active') == 'true':
            departments = departments.filter(is_active=True)
        serializer = DepartmentSerializer(departments, many=True)
        return Response(serializer.data)
    else:
        serializer = DepartmentSerializer(data=request.data)
        if serializer.is_valid():
            department = serializer.save()
            create_activity_log(
                request=request,
                action='department_create',
                resource='department',
                resource_id=department.id,
                description=department.name,
            )
            return Response(serializer.data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, SuperAdminOrReadOnly])
def department_detail(request, pk):
    """Retrieve, update or delete a department"""
    department = get_object_or_404(Department, pk=pk)

    if request.method == 'GET':
        serializer = DepartmentSerializer(department)
        return Response(serializer.data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = DepartmentSerializer(department, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            create_activity_log(
                request=request,
                action='department_update',
                resource='department',
                resource_id=department.id,
                description=department.name,
            )
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        create_activity_log(
            request=request,
            action='department_delete',
            resource='department',
            resource_id=department.id,
            description=department.name,
        )
        department.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


# Activity views (read-only)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def activity_list(request):
    """List activity logs with filtering"""
    queryset = ActivityLog.objects.select_related('user')

    # Non-admins only ever see their own activity
    if not is_admin(request.user):
        queryset = queryset.filter(user=request.user)
    else:
        user_filter = request.query_params.get('user')
        if user_filter:
            queryset = queryset.filter(user_id=user_filter)

    action_filter = request.query_params.get('action')
    if action_filter:
        queryset = queryset.filter(action=action_filter)

    resource_filter = request.query_params.get('resource')
    if resource_filter:
        queryset = queryset.filter(resource=resource_filter)

    date_from = request.query_params.get('date_from')
    date_to = request.query_params.get('date_to')
    if date_from:
        queryset = queryset.filter(created_at__date__gte=date_from)
    if date_to:
        queryset = queryset.filter(created_at__date__lte=date_to)

    queryset = queryset.order_by('-created_at', '-id')
    return paginated_response(request, queryset, ActivityLogSerializer)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def activity_detail(request, pk):
    """Retrieve an activity log entry"""
    activity = get_object_or_404(ActivityLog.objects.select_related('user'), pk=pk)

    if not is_admin(request.user) and activity.user_id != request.user.id:
        return Response({'success': False, 'message': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)

    serializer = ActivityLogSerializer(activity)
    return Response(serializer.data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def activity_summary(request):
    """Per-action activity counts over the last `days` days"""
    try:
        days = max(int(request.query_params.get('days', 30)), 1)
    except (TypeError, ValueError):
        days = 30

    target_user_id = request.user.id
    if is_admin(request.user) and request.query_params.get('user'):
        try:
            target_user_id = int(request.query_params.get('user'))
        except ValueError:
            return Response({'success': False, 'message': 'Invalid user id'}, status=status.HTTP_400_BAD_REQUEST)

    since = timezone.now() - timedelta(days=days)
    summary = ActivityLog.objects.filter(
        user_id=target_user_id,
        created_at__gte=since,
    ).values('action').annotate(
        count=Count('id'),
        last_activity=Max('created_at'),
    ).order_by('-count', 'action')

    return Response({
        'user': target_user_id,
        'days': days,
        'actions': list(summary),
    })
