import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer, TokenRefreshSerializer
from rest_framework_simplejwt.exceptions import InvalidToken, TokenError, AuthenticationFailed
from django.contrib.auth import get_user_model
from django.core.exceptions import ObjectDoesNotExist
from django.shortcuts import get_object_or_404

from .archive import run_archive
from .exceptions import DairyError, error_response, forbidden_response
from .models import DairySetting, AuditLog
from .permissions import get_access_flags, is_super_admin, has_any_role, AUDITOR, SUPER_ADMIN
from .serializers import (
    UserSerializer, UserCreateSerializer, SetPinSerializer,
    DairySettingSerializer, AuditLogSerializer, ArchiveRequestSerializer
)
from .utils import create_audit_log

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


class CustomTokenRefreshSerializer(TokenRefreshSerializer):
    """Custom token refresh serializer that handles deleted users gracefully"""
    def validate(self, attrs):
        try:
            return super().validate(attrs)
        except (InvalidToken, TokenError):
            raise InvalidToken('Token is invalid or expired.')
        except (ObjectDoesNotExist, User.DoesNotExist):
            raise InvalidToken('Token is invalid. User no longer exists.')


class CustomTokenRefreshView(TokenRefreshView):
    """Custom token refresh view that handles deleted users gracefully"""
    serializer_class = CustomTokenRefreshSerializer


# User views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def user_list_create(request):
    """List all users or create a new user"""
    if not is_super_admin(request.user):
        return forbidden_response()
    if request.method == 'GET':
        users = User.objects.prefetch_related('groups').order_by('username')
        serializer = UserSerializer(users, many=True)
        return Response(serializer.data)
    else:
        serializer = UserCreateSerializer(data=request.data)
        if serializer.is_valid():
            user = serializer.save()
            create_audit_log(request=request, action='create', model_name='User',
                             object_id=user.id, object_name=user.username)
            return Response(UserSerializer(user).data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def user_detail(request, pk):
    """Retrieve, update or delete a user"""
    if not is_super_admin(request.user):
        return forbidden_response()
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
                         object_id=user.id, object_name=user.username)
        user.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def user_me(request):
    """Get current user with roles and capability flags"""
    user_data = UserSerializer(request.user).data
    user_data.update(get_access_flags(request.user))
    return Response(user_data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def set_pin(request):
    """Set or change the current user's 6-digit confirmation PIN"""
    serializer = SetPinSerializer(data=request.data, context={'request': request})
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    request.user.set_pin(serializer.validated_data['pin'])
    request.user.save(update_fields=['pin_hash', 'updated_at'])
    create_audit_log(request=request, action='update', model_name='User',
                     object_id=request.user.id, object_name=request.user.username,
                     changes={'pin': 'updated'})
    return Response({'message': 'PIN updated successfully'})


# Settings views
@api_view(['GET', 'PUT', 'PATCH'])
@permission_classes([IsAuthenticated])
def dairy_settings(request):
    """Retrieve or update the dairy settings"""
    setting = DairySetting.load()

    if request.method == 'GET':
        return Response(DairySettingSerializer(setting).data)

    if not is_super_admin(request.user):
        return forbidden_response('Only super admins can change settings')
    serializer = DairySettingSerializer(setting, data=request.data, partial=request.method == 'PATCH')
    if serializer.is_valid():
        serializer.save()
        create_audit_log(request=request, action='update', model_name='DairySetting',
                         object_id=setting.pk, object_name=setting.dairy_name,
                         changes={k: str(v) for k, v in serializer.validated_data.items()})
        return Response(serializer.data)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


# AuditLog views (read-only)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def audit_log_list(request):
    """List audit logs with filtering"""
    queryset = AuditLog.objects.select_related('user')

    # Only super admins and auditors see everyone's activity
    if not has_any_role(request.user, (SUPER_ADMIN, AUDITOR)):
        queryset = queryset.filter(user=request.user)

    action_filter = request.query_params.get('action', None)
    if action_filter:
        queryset = queryset.filter(action=action_filter)

    model_filter = request.query_params.get('model', None)
    if model_filter:
        queryset = queryset.filter(model_name=model_filter)

    date_from = request.query_params.get('date_from', None)
    date_to = request.query_params.get('date_to', None)
    if date_from:
        queryset = queryset.filter(created_at__date__gte=date_from)
    if date_to:
        queryset = queryset.filter(created_at__date__lte=date_to)

    try:
        limit = int(request.query_params.get('limit', 200))
    except ValueError:
        limit = 200

    queryset = queryset.order_by('-created_at')[:max(1, min(limit, 1000))]
    serializer = AuditLogSerializer(queryset, many=True)
    return Response(serializer.data)


# Archive view
@api_view(['POST'])
@permission_classes([IsAuthenticated])
def archive_data(request):
    """
    Preview, export or delete historical data.

    Body: ``{"mode": "preview|export|execute", "retention_years": 0|1|2|3|5, "pin": "123456"}``.
    ``retention_years=0`` is a factory reset.
    """
    if not is_super_admin(request.user):
        return forbidden_response('Only super admins can archive data')

    serializer = ArchiveRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    try:
        result = run_archive(
            data['mode'],
            data['retention_years'],
            request.user,
            pin=data.get('pin'),
            request=request,
        )
    except DairyError as e:
        logger.warning(f"Archive request rejected for {request.user.username}: {e.message}")
        return error_response(e)
    return Response(result)
