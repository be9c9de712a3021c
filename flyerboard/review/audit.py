"""
Audit trail for operator actions.
"""

from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from flyerboard.models.enums import AuditAction
from flyerboard.models.tables import AuditLog

logger = structlog.get_logger(__name__)


async def record_audit(
    session: AsyncSession,
    entity_type: str,
    entity_id: str,
    action: AuditAction,
    changes: Optional[dict] = None,
) -> AuditLog:
    entry = AuditLog(
        entity_type=entity_type,
        entity_id=entity_id,
        action=action.value,
        changes=changes,
    )
    session.add(entry)
    await session.flush()
    logger.info("audit_recorded", entity_type=entity_type, entity_id=entity_id,
                action=action.value)
    return entry


async def get_audit_trail(
    session: AsyncSession, entity_type: str, entity_id: str
) -> list[AuditLog]:
    result = await session.execute(
        select(AuditLog)
        .where(AuditLog.entity_type == entity_type, AuditLog.entity_id == entity_id)
        .order_by(AuditLog.created_at)
    )
    return list(result.scalars().all())
