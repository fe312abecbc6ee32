"""Fire-and-forget audit trail writer."""

from __future__ import annotations

import enum
import logging
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from inandout.core.clock import utcnow
from inandout.models.entities import AuditLog

logger = logging.getLogger(__name__)


class AuditAction(str, enum.Enum):
    TIME_ENTRY_CREATED = "TIME_ENTRY_CREATED"
    TIME_ENTRY_UPDATED = "TIME_ENTRY_UPDATED"
    TIME_ENTRY_DELETED = "TIME_ENTRY_DELETED"
    TIME_CLOCK_IN = "TIME_CLOCK_IN"
    TIME_CLOCK_OUT = "TIME_CLOCK_OUT"

    USER_CREATED = "USER_CREATED"
    USER_UPDATED = "USER_UPDATED"
    USER_ROLE_CHANGED = "USER_ROLE_CHANGED"
    USER_RATE_CHANGED = "USER_RATE_CHANGED"
    USER_REMOVED_FROM_ORG = "USER_REMOVED_FROM_ORG"

    ORGANIZATION_CREATED = "ORGANIZATION_CREATED"
    ORGANIZATION_JOINED = "ORGANIZATION_JOINED"

    PROJECT_CREATED = "PROJECT_CREATED"
    PROJECT_UPDATED = "PROJECT_UPDATED"
    PROJECT_DELETED = "PROJECT_DELETED"
    PROJECT_MEMBER_ADDED = "PROJECT_MEMBER_ADDED"
    PROJECT_MEMBER_REMOVED = "PROJECT_MEMBER_REMOVED"
    PROJECT_MEMBER_RATE_CHANGED = "PROJECT_MEMBER_RATE_CHANGED"
    PROJECT_COST_ADDED = "PROJECT_COST_ADDED"

    SCHEDULE_CREATED = "SCHEDULE_CREATED"
    SCHEDULE_UPDATED = "SCHEDULE_UPDATED"
    SCHEDULE_DELETED = "SCHEDULE_DELETED"
    SHIFT_CREATED = "SHIFT_CREATED"
    SHIFT_UPDATED = "SHIFT_UPDATED"
    SHIFT_DELETED = "SHIFT_DELETED"

    INVITATION_CREATED = "INVITATION_CREATED"
    INVITATION_ACCEPTED = "INVITATION_ACCEPTED"
    INVITATION_REVOKED = "INVITATION_REVOKED"

    LOGIN_SUCCESS = "LOGIN_SUCCESS"
    LOGIN_FAILED = "LOGIN_FAILED"
    LOGOUT = "LOGOUT"

    DATA_EXPORTED = "DATA_EXPORTED"


def _jsonable(value: object) -> object:
    if isinstance(value, dict):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    return value


def request_metadata(request: Request | None) -> dict[str, object]:
    """Client details captured alongside each audit record."""

    if request is None:
        return {"ip_address": "unknown", "user_agent": "unknown", "timestamp": utcnow().isoformat()}

    forwarded = request.headers.get("x-forwarded-for")
    ip_address = forwarded.split(",")[0].strip() if forwarded else request.headers.get("x-real-ip")
    return {
        "ip_address": ip_address or "unknown",
        "user_agent": request.headers.get("user-agent") or "unknown",
        "referer": request.headers.get("referer"),
        "timestamp": utcnow().isoformat(),
    }


def record_audit(
    db: Session,
    *,
    action: AuditAction,
    user_id: UUID | None,
    organization_id: UUID | None = None,
    entity_type: str | None = None,
    entity_id: object | None = None,
    entity_name: str | None = None,
    old_values: dict[str, object] | None = None,
    new_values: dict[str, object] | None = None,
    request: Request | None = None,
) -> None:
    """Persist one audit record in its own commit.

    Call after the audited change has been committed. Failures are logged and
    the record is dropped so auditing never breaks the calling operation.
    """

    entry = AuditLog(
        user_id=user_id,
        organization_id=organization_id,
        action=action.value,
        entity_type=entity_type or "UNKNOWN",
        entity_id=str(entity_id) if entity_id is not None else None,
        entity_name=entity_name,
        old_values=_jsonable(old_values) if old_values is not None else None,
        new_values=_jsonable(new_values) if new_values is not None else None,
        request_metadata=request_metadata(request),
        created_at=utcnow(),
    )
    try:
        db.add(entry)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Dropped audit record %s for user %s", action.value, user_id)
