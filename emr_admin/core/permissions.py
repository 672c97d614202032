from rest_framework.permissions import BasePermission


class IsSaaSOwner(BasePermission):
    """Only owners of the SaaS console"""
    message = 'SaaS owner access required.'

    def has_permission(self, request, view):
        user = request.user
        return bool(user and user.is_authenticated and user.is_saas_owner)


class HasOrganization(BasePermission):
    """Authenticated users that belong to a tenant organization"""
    message = 'User is not assigned to an organization.'

    def has_permission(self, request, view):
        user = request.user
        return bool(user and user.is_authenticated and user.organization_id)


class IsOrganizationAdmin(BasePermission):
    """Tenant administrators"""
    message = 'Organization admin access required.'

    def has_permission(self, request, view):
        user = request.user
        return bool(user and user.is_authenticated and user.organization_id and user.role == 'admin')


def get_request_organization(request):
    """Organization the request is scoped to"""
    return getattr(request.user, 'organization', None)
