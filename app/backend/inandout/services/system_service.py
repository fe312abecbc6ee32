"""System-wide administration views across all organizations."""

from __future__ import annotations

from sqlalchemy.orm import Session

from inandout.core.auth import RequestUserContext
from inandout.models.entities import Organization, Project, TimeEntry, User
from inandout.repositories.workforce_repository import WorkforceRepository


class SystemAdminService:
    def __init__(self, db: Session) -> None:
        self.db = db
        self.repo = WorkforceRepository(db)

    @staticmethod
    def verify(context: RequestUserContext) -> dict[str, object]:
        return {"authorized": True, "user_id": str(context.user_id), "email": context.email}

    def stats(self) -> dict[str, int]:
        return {
            "total_users": self.repo.count_rows(User),
            "total_organizations": self.repo.count_rows(Organization),
            "total_time_entries": self.repo.count_rows(TimeEntry),
            "total_projects": self.repo.count_rows(Project),
            "system_admins": self.repo.count_system_admins(),
        }

    def list_users(self, *, page: int, limit: int, search: str | None) -> dict[str, object]:
        users, total = self.repo.search_users(search=search, limit=limit, offset=(page - 1) * limit)
        user_ids = [user.id for user in users]
        memberships = self.repo.membership_counts_for_users(user_ids)
        entries = self.repo.time_entry_counts_for_users(user_ids)

        return {
            "users": [
                {
                    "id": str(user.id),
                    "email": user.email,
                    "name": user.name,
                    "system_admin": user.system_admin,
                    "created_at": user.created_at.isoformat(),
                    "last_login_at": user.last_login_at.isoformat() if user.last_login_at else None,
                    "membership_count": memberships.get(user.id, 0),
                    "time_entry_count": entries.get(user.id, 0),
                }
                for user in users
            ],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": (total + limit - 1) // limit,
            },
        }
