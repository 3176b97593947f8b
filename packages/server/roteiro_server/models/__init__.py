# SQLModel definitions - imported here to ensure metadata is populated.
from .base import UUIDMixin, TimestampMixin  # noqa: F401
from .user import User  # noqa: F401
from .organization import Organization  # noqa: F401
from .membership import OrganizationMembership  # noqa: F401
from .invitation import OrganizationInvitation  # noqa: F401
from .role import Permission, Role, RolePermission, UserRole  # noqa: F401
