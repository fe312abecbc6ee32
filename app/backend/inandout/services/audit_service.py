"""Audit log browsing for organization administrators."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from inandout.core.auth import RequestUserContext
from inandout.core.clock import to_naive_utc
from inandout.models.entities import AuditLog
from inandout.repositories.workforce_repository import WorkforceRepository

DEFAULT_LIMIT = 50


@dataclass(slots=True)
class AuditLogQuery:
    organization_id: UUID | None = None
    user_id: UUID | None = None
    action: str | None = None
    entity_type: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    limit: int = DEFAULT_LIMIT
    offset: int = 0


class AuditService:
    def __init__(self, db: Session) -> None:
        self.db = db
        self.repo = WorkforceRepository(db)

    @staticmethod
    def serialize_log(log: AuditLog, user_labels: dict[UUID, dict[str, object]]) -> dict[str, object]:
        return {
            "id": str(log.id),
            "user_id": str(log.user_id) if log.user_id else None,
            "user": user_labels.get(log.user_id) if log.user_id else None,
            "organization_id": str(log.organization_id) if log.organization_id else None,
            "action": log.action,
            "entity_type": log.entity_type,
            "entity_id": log.entity_id,
            "entity_name": log.entity_name,
            "old_values": log.old_values,
            "new_values": log.new_values,
            "metadata": log.request_metadata,
            "created_at": log.created_at.isoformat(),
        }

    def list_logs(self, *, context: RequestUserContext, query: AuditLogQuery) -> dict[str, object]:
        """Return a newest-first page of audit logs the caller may inspect."""

        administered = list(context.admin_organization_ids)
        if not administered:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Admin access required to view audit logs.",
            )
        if query.organization_id is not None:
            if query.organization_id not in administered:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail="Admin access required for this organization.",
                )
            administered = [query.organization_id]

        logs, total = self.repo.query_audit_logs(
            organization_ids=administered,
            user_id=query.user_id,
            action=query.action,
            entity_type=query.entity_type,
            start=to_naive_utc(query.start_date) if query.start_date else None,
            end=to_naive_utc(query.end_date) if query.end_date else None,
            limit=query.limit,
            offset=query.offset,
        )
        users = self.repo.users_by_ids(list({log.user_id for log in logs if log.user_id is not None}))
        user_labels = {user_id: {"name": user.name, "email": user.email} for user_id, user in users.items()}

        return {
            "logs": [self.serialize_log(log, user_labels) for log in logs],
            "total": total,
            "has_more": query.offset + query.limit < total,
        }
