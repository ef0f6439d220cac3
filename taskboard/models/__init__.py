# Import every model so Base.metadata knows all tables (create_all, alembic autogenerate).
from taskboard.models.base import Base  # noqa: F401
from taskboard.models.profile import Profile  # noqa: F401
from taskboard.models.workspace import Workspace, WorkspaceMember  # noqa: F401
from taskboard.models.project import Project, ProjectMember, ProjectStatus  # noqa: F401
from taskboard.models.task import Task, Subtask, TaskStatus, TaskPriority  # noqa: F401
from taskboard.models.comment import Comment, EntityType  # noqa: F401
from taskboard.models.attachment import Attachment  # noqa: F401
from taskboard.models.invitation import ProjectInvitation  # noqa: F401
from taskboard.models.activity_log import ActivityLog, ActivityAction  # noqa: F401
from taskboard.models.custom_permission import CustomPermission  # noqa: F401
