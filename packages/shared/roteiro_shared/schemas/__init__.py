from .common import MembershipStatus, ROLE_LEVELS, SystemRole, TOP_ROLE, role_level  # noqa: F401
