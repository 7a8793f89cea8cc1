"""User roles and the role groups that gate request and admin actions."""
from enum import Enum


class UserRole(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    STAFF = "staff"
    TENANT = "tenant"
    TREASURY = "treasury"
    PURCHASER = "purchaser"
    ACCTG = "acctg"
    VIEWER = "viewer"
    OWNER = "owner"
    STOCKROOM = "stockroom"
    MAINTENANCE = "maintenance"


def _values(*roles: UserRole) -> frozenset:
    return frozenset(role.value for role in roles)


ALL_ROLES = _values(*UserRole)

# Manage business units, departments, approvers and users; act on any request
ADMINISTRATORS = _values(UserRole.ADMIN, UserRole.MANAGER)

# Mark final-approved requests as posted
POSTERS = _values(UserRole.ADMIN, UserRole.MANAGER, UserRole.PURCHASER)

# MRS coordinator views: approved, posted and received requests
COORDINATORS = _values(
    UserRole.ADMIN,
    UserRole.MANAGER,
    UserRole.PURCHASER,
    UserRole.STOCKROOM,
)

# Roles that may be assigned as department approvers
APPROVER_ELIGIBLE = _values(
    UserRole.ADMIN,
    UserRole.MANAGER,
    UserRole.PURCHASER,
    UserRole.ACCTG,
    UserRole.TREASURY,
)
