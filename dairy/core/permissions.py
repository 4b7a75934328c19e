"""
Role checks based on Django groups.

A superuser/staff account that is not in any application group is treated
as a super admin, so a freshly created admin can use everything.
"""
from rest_framework.permissions import SAFE_METHODS

SUPER_ADMIN = 'SuperAdmin'
MANAGER = 'Manager'
ACCOUNTANT = 'Accountant'
DELIVERY_STAFF = 'DeliveryStaff'
FARM_WORKER = 'FarmWorker'
AUDITOR = 'Auditor'

APPLICATION_GROUPS = [SUPER_ADMIN, MANAGER, ACCOUNTANT, DELIVERY_STAFF, FARM_WORKER, AUDITOR]

BILLING_ROLES = (SUPER_ADMIN, MANAGER, ACCOUNTANT)
DELIVERY_ROLES = (SUPER_ADMIN, MANAGER, DELIVERY_STAFF)
PROCUREMENT_ROLES = (SUPER_ADMIN, MANAGER, ACCOUNTANT, FARM_WORKER)
EXPENSE_ROLES = (SUPER_ADMIN, MANAGER, ACCOUNTANT)
CUSTOMER_ROLES = (SUPER_ADMIN, MANAGER, ACCOUNTANT)


def get_user_roles(user):
    """Return the application groups of a user as a list of names"""
    if not user or not user.is_authenticated:
        return []
    user_group_names = list(user.groups.values_list('name', flat=True))
    roles = [name for name in user_group_names if name in APPLICATION_GROUPS]

    # Superuser/staff without any application group falls back to super admin
    if not roles and (user.is_superuser or user.is_staff):
        roles = [SUPER_ADMIN]
    return roles


def has_any_role(user, roles):
    return any(role in roles for role in get_user_roles(user))


def is_super_admin(user):
    return SUPER_ADMIN in get_user_roles(user)


def can_write(user, roles, method):
    """
    Check if user may perform ``method`` on a resource owned by ``roles``.

    Every authenticated user can read; writes need one of ``roles``.
    """
    if method in SAFE_METHODS:
        return True
    return has_any_role(user, roles)


def get_access_flags(user):
    """Capability flags returned to the frontend"""
    roles = get_user_roles(user)
    is_admin = SUPER_ADMIN in roles
    return {
        'roles': roles,
        'is_admin': is_admin,
        'can_manage_billing': any(r in BILLING_ROLES for r in roles),
        'can_manage_deliveries': any(r in DELIVERY_ROLES for r in roles),
        'can_manage_procurement': any(r in PROCUREMENT_ROLES for r in roles),
        'can_manage_expenses': any(r in EXPENSE_ROLES for r in roles),
        'can_manage_customers': any(r in CUSTOMER_ROLES for r in roles),
        'can_archive_data': is_admin,
        'is_auditor': AUDITOR in roles,
    }
