"""Audit trail for data changes made through the console"""
import logging
from typing import Any, Dict, Optional
from sqlalchemy.orm import Session

from src.kita_fees.models.audit_log import AuditLog
from src.kita_fees.models.user import User
from src.kita_fees.schemas.child_import import ExecuteResult

logger = logging.getLogger(__name__)

CHILDREN_IMPORTED = "CHILDREN_IMPORTED"


def log_action(
    db: Session,
    actor: User,
    action: str,
    target_type: str,
    target_id: Optional[str] = None,
    meta: Optional[Dict[str, Any]] = None
) -> AuditLog:
    entry = AuditLog(
        actor_user_id=actor.id,
        actor_role_snapshot=actor.role.value,
        action=action,
        target_type=target_type,
        target_id=target_id,
        meta=meta or None,
    )
    db.add(entry)
    db.commit()
    return entry


def log_children_import(
    db: Session,
    actor: User,
    result: ExecuteResult,
    file_name: Optional[str] = None
) -> AuditLog:
    """One entry per executed import with the result counters."""
    meta: Dict[str, Any] = {
        "children_created": result.children_created,
        "children_updated": result.children_updated,
        "parents_created": result.parents_created,
        "parents_linked": result.parents_linked,
        "error_count": len(result.errors),
    }
    if file_name:
        meta["file_name"] = file_name
    logger.info(f"User {actor.id} imported children: {meta}")
    return log_action(db, actor, CHILDREN_IMPORTED, "child", meta=meta)
