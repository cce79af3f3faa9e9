# SQLModel definitions - imported here to ensure metadata is populated for Alembic.
from .base import UUIDMixin, TimestampMixin  # noqa: F401
from .organization import Organization  # noqa: F401
from .organization_member import OrganizationMember  # noqa: F401
from .project import Project  # noqa: F401
from .custom_role import CustomRole  # noqa: F401
from .project_member import ProjectMember  # noqa: F401
from .invitation import Invitation  # noqa: F401
