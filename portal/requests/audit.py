import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from portal.db import models

SYSTEM_ACTOR = "Sistema"


def append_entry(
    db: Session,
    request: models.ServiceRequest,
    action: str,
    actor: str,
    now: Optional[datetime] = None,
) -> models.RequestAuditEntry:
    entry = models.RequestAuditEntry(
        id=str(uuid.uuid4()),
        request_id=request.id,
        seq=len(request.audit_entries) + 1,
        action=action,
        actor=actor or SYSTEM_ACTOR,
        created_at=now or datetime.utcnow(),
    )
    request.audit_entries.append(entry)
    request.updated_at = entry.created_at
    db.add(entry)
    return entry


def entry_to_dict(entry: models.RequestAuditEntry) -> dict:
    return {
        "id": entry.id,
        "action": entry.action,
        "actor": entry.actor,
        "timestamp": entry.created_at,
    }
