"""ORM model package."""

from inandout.models.entities import (
    AuditLog,
    Invitation,
    Membership,
    Organization,
    Project,
    ProjectCost,
    ProjectEmployee,
    Schedule,
    Shift,
    TimeEntry,
    User,
)

__all__ = [
    "AuditLog",
    "Invitation",
    "Membership",
    "Organization",
    "Project",
    "ProjectCost",
    "ProjectEmployee",
    "Schedule",
    "Shift",
    "TimeEntry",
    "User",
]
