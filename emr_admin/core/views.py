from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer, TokenRefreshSerializer
from rest_framework_simplejwt.exceptions import AuthenticationFailed, InvalidToken, TokenError
from django.contrib.auth import get_user_model
from django.core.exceptions import ObjectDoesNotExist
from django.shortcuts import get_object_or_404
from .models import AuditLog
from .permissions import IsOrganizationAdmin
from .serializers import UserSerializer, UserCreateSerializer, AuditLogSerializer
from .utils import create_audit_log, paginate_queryset

User = get_user_model()


class CustomTokenObtainPairSerializer(TokenObtainPairSerializer):
    def validate(self, attrs):
        data = super().validate(attrs)
        if not self.user.is_active:
            raise AuthenticationFailed('User account is disabled.')
        organization = self.user.organization
        if organization is not None and organization.subscription_status in ('suspended', 'cancelled'):
            raise AuthenticationFailed('Organization access is suspended.')
        data['user'] = UserSerializer(self.user).data
        return data

    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        token['username'] = user.username
        token['role'] = user.role
        token['organization_id'] = user.organization_id
        token['is_saas_owner'] = user.is_saas_owner
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
        except ObjectDoesNotExist:
            raise InvalidToken('Token is invalid. User no longer exists.')


class CustomTokenRefreshView(TokenRefreshView):
    serializer_class = CustomTokenRefreshSerializer


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def user_me(request):
    """Get current user with tenant and console access flags"""
    user = request.user
    user_data = UserSerializer(user).data
    organization = user.organization
    if organization is not None:
        user_data['organization'] = {
            'id': organization.id,
            'name': organization.name,
            'subdomain': organization.subdomain,
            'region': organization.region,
            'subscription_status': organization.subscription_status,
        }
    user_data['can_access_saas'] = user.is_saas_owner
    user_data['can_manage_users'] = user.is_org_admin
    return Response(user_data)


# Organization user views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsOrganizationAdmin])
def user_list_create(request):
    """List or create users of the requesting admin's organization"""
    if request.method == 'GET':
        users = User.objects.filter(organization=request.user.organization).order_by('username')
        serializer = UserSerializer(users, many=True)
        return Response(serializer.data)
    else:
        serializer = UserCreateSerializer(data=request.data)
        if serializer.is_valid():
            user = serializer.save(organization=request.user.organization)
            create_audit_log(
                request=request,
                action='create',
                model_name='User',
                object_id=user.id,
                object_name=user.username,
                changes={'role': user.role, 'email': user.email}
            )
            return Response(UserSerializer(user).data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsOrganizationAdmin])
def user_detail(request, pk):
    """Retrieve, update or delete an organization user"""
    user = get_object_or_404(User, pk=pk, organization=request.user.organization)

    if request.method == 'GET':
        return Response(UserSerializer(user).data)
    elif request.method == 'PATCH':
        serializer = UserSerializer(user, data=request.data, partial=True)
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        if user.pk == request.user.pk:
            return Response({'error': 'You cannot delete your own account'}, status=status.HTTP_400_BAD_REQUEST)
        user_id = user.id
        username = user.username
        user.delete()
        create_audit_log(
            request=request,
            action='delete',
            model_name='User',
            object_id=user_id,
            object_name=username
        )
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def audit_log_list(request):
    """List audit logs of the user's organization (all logs for SaaS owners)"""
    queryset = AuditLog.objects.select_related('user')

    if not request.user.is_saas_owner:
        if not request.user.organization_id:
            return Response({'error': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)
        queryset = queryset.filter(organization_id=request.user.organization_id)

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

    queryset = queryset.order_by('-created_at')
    return Response(paginate_queryset(request, queryset, AuditLogSerializer, default_limit=25))
