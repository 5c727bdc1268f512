# Overview: Append-only audit trail shared by every engine operation.

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from ..extensions import db
from ..models import AuditEvent
"""
Audit Trail Invariants

- Append-only log for cross-cutting domain events.
- No domain/business logic in the audit log itself.
- Events are written inside the same DB transaction as the change they record,
  so a rolled-back operation leaves no audit row behind.
"""


def append_audit_event(
    *,
    org_id: int,
    event_type: str,
    event_category: str,
    entity_type: str,
    entity_id: int,
    location_id: int | None = None,
    actor_user_id: int | None = None,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
    payload: Optional[dict[str, Any]] = None,
) -> AuditEvent:
    """
    Append one audit event.

    - No deletes/updates of existing events.
    - occurred_at defaults to now.
    """
    ev = AuditEvent(
        org_id=org_id,
        location_id=location_id,
        event_type=event_type,
        event_category=event_category,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_user_id=actor_user_id,
        note=(note[:255] if note else None),
        payload=payload,
    )
    if occurred_at is not None:
        ev.occurred_at = occurred_at
    db.session.add(ev)
    return ev


def list_audit_events(
    *,
    org_id: int,
    entity_type: str | None = None,
    entity_id: int | None = None,
    limit: int = 100,
) -> list[AuditEvent]:
    query = db.session.query(AuditEvent).filter_by(org_id=org_id)
    if entity_type:
        query = query.filter_by(entity_type=entity_type)
    if entity_id is not None:
        query = query.filter_by(entity_id=entity_id)
    return query.order_by(AuditEvent.occurred_at.desc(), AuditEvent.id.desc()).limit(limit).all()
