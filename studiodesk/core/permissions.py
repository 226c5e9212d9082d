"""Role based access control shared by all apps"""
from rest_framework.permissions import SAFE_METHODS, BasePermission

SUPER_ADMIN = 'super_admin'
DEPARTMENT_ADMIN = 'department_admin'
RECEPTION = 'reception'
DEPARTMENT_STAFF = 'department_staff'
CLIENT = 'client'

EQUIPMENT_MANAGER_ROLES = (SUPER_ADMIN, DEPARTMENT_ADMIN)
CHECKOUT_APPROVER_ROLES = (SUPER_ADMIN, RECEPTION)
MAINTENANCE_ROLES = (SUPER_ADMIN, DEPARTMENT_ADMIN)
REPORT_ROLES = (SUPER_ADMIN, DEPARTMENT_ADMIN, RECEPTION)
ADMIN_ROLES = (SUPER_ADMIN,)


def user_has_role(user, roles):
    if not user or not user.is_authenticated:
        return False
    return getattr(user, 'effective_role', None) in roles


def can_manage_equipment(user):
    return user_has_role(user, EQUIPMENT_MANAGER_ROLES)


def can_approve_checkouts(user):
    return user_has_role(user, CHECKOUT_APPROVER_ROLES)


def can_add_maintenance(user):
    return user_has_role(user, MAINTENANCE_ROLES)


def can_view_reports(user):
    return user_has_role(user, REPORT_ROLES)


def is_admin(user):
    return user_has_role(user, ADMIN_ROLES)


def capabilities_for(user):
    """Capability flags returned by /auth/me/ for UI-level permission checks"""
    return {
        'is_admin': is_admin(user),
        'can_manage_equipment': can_manage_equipment(user),
        'can_approve_checkouts': can_approve_checkouts(user),
        'can_add_maintenance': can_add_maintenance(user),
        'can_view_reports': can_view_reports(user),
        'can_send_system_notifications': is_admin(user),
    }


class HasRole(BasePermission):
    allowed_roles = ()
    message = 'Access denied for your role.'

    def has_permission(self, request, view):
        return user_has_role(request.user, self.allowed_roles)


class ReadOnlyOrHasRole(HasRole):
    """Any authenticated user may read; writes need one of the allowed roles"""

    def has_permission(self, request, view):
        if request.method in SAFE_METHODS:
            return bool(request.user and request.user.is_authenticated)
        return super().has_permission(request, view)


class IsSuperAdmin(HasRole):
    allowed_roles = ADMIN_ROLES
    message = 'Access denied - Admin only'


class IsCheckoutApprover(HasRole):
    allowed_roles = CHECKOUT_APPROVER_ROLES
    message = 'Access denied - Reception/Admin only'


class CanViewReports(HasRole):
    allowed_roles = REPORT_ROLES


class EquipmentManagerOrReadOnly(ReadOnlyOrHasRole):
    allowed_roles = EQUIPMENT_MANAGER_ROLES
    message = 'Access denied - Admin only'


class MaintenanceRoleOrReadOnly(ReadOnlyOrHasRole):
    allowed_roles = MAINTENANCE_ROLES
    message = 'Only department heads and admins can add maintenance records'


class SuperAdminOrReadOnly(ReadOnlyOrHasRole):
    allowed_roles = ADMIN_ROLES
    message = 'Access denied - Admin only'
