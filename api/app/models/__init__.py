from app.models.activity import ActivityLog
from app.models.automation import ActionKind, AutomationRule, TriggerType
from app.models.certificate import Certificate
from app.models.notification import Notification
from app.models.task import Task, TaskPriority, TaskStatus
from app.models.tenant import ADMIN_ROLES, MemberRole, OrgMember, Tenant

__all__ = [
    "ADMIN_ROLES",
    "ActionKind",
    "ActivityLog",
    "AutomationRule",
    "Certificate",
    "MemberRole",
    "Notification",
    "OrgMember",
    "Task",
    "TaskPriority",
    "TaskStatus",
    "Tenant",
    "TriggerType",
]
"""SQLAlchemy ORM models for the compliance automation API."""
