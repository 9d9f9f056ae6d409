"""Audit trail — append-only log of partner/request/quote mutations.

Entries are written through their own session so that an audit failure can
never roll back (or be rolled back by) the mutation it describes.  Logging is
best-effort: ``log`` returns False on failure and never raises.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import String, cast, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from parts_radar.domain.enums import AuditActionType, RequestMode
from parts_radar.domain.models import AuditLog
from parts_radar.domain.schemas import AuditQuery

logger = logging.getLogger(__name__)

_MAX_QUERY_LIMIT = 1000


def _json_list_contains(column, value: str):
    """Match a JSON array of strings holding *value* as a whole element."""
    escaped = value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return cast(column, String).like(f'%"{escaped}"%', escape="\\")


class AuditTrail:
    """Writes and queries AuditLog entries. No update or delete exists."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def log(
        self,
        action_type: AuditActionType,
        diff_summary: str,
        actor_id: str,
        *,
        actor_name: Optional[str] = None,
        mode: Optional[RequestMode] = None,
        vehicle_ids: Optional[list[str]] = None,
        partner_ids: Optional[list[str]] = None,
        request_id: Optional[str] = None,
        quote_id: Optional[str] = None,
        before_snapshot: Optional[dict] = None,
        after_snapshot: Optional[dict] = None,
    ) -> bool:
        """Append one entry. Returns False (and logs) if it could not be stored."""
        try:
            entry = AuditLog(
                id=str(uuid.uuid4()),
                actor_id=actor_id,
                actor_name=actor_name,
                ts=datetime.now(timezone.utc),
                action_type=AuditActionType(action_type).value,
                mode=RequestMode(mode).value if mode else None,
                vehicle_ids=list(vehicle_ids) if vehicle_ids else None,
                partner_ids=list(partner_ids) if partner_ids else None,
                request_id=request_id,
                quote_id=quote_id,
                diff_summary=diff_summary,
                before_snapshot=before_snapshot,
                after_snapshot=after_snapshot,
            )
            async with self._session_factory() as session:
                session.add(entry)
                await session.commit()
        except Exception:  # noqa: BLE001
            logger.exception(
                "Audit logging failed: action=%s request=%s quote=%s",
                action_type, request_id, quote_id,
            )
            return False
        return True

    async def query(self, filters: AuditQuery | None = None) -> list[AuditLog]:
        """Return matching entries, newest first."""
        filters = filters or AuditQuery()
        stmt = select(AuditLog)

        if filters.action_type is not None:
            stmt = stmt.where(AuditLog.action_type == filters.action_type.value)
        if filters.actor_id:
            stmt = stmt.where(AuditLog.actor_id == filters.actor_id)
        if filters.request_id:
            stmt = stmt.where(AuditLog.request_id == filters.request_id)
        if filters.partner_id:
            stmt = stmt.where(_json_list_contains(AuditLog.partner_ids, filters.partner_id))
        if filters.start_date is not None:
            stmt = stmt.where(AuditLog.ts >= filters.start_date)
        if filters.end_date is not None:
            stmt = stmt.where(AuditLog.ts <= filters.end_date)

        limit = max(1, min(filters.limit, _MAX_QUERY_LIMIT))
        stmt = stmt.order_by(AuditLog.ts.desc()).limit(limit)

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Convenience helpers
    # ------------------------------------------------------------------

    async def log_partner_create(self, actor_id: str, partner_id: str, partner_name: str) -> bool:
        return await self.log(
            AuditActionType.PARTNER_CREATE,
            f"Created partner: {partner_name}",
            actor_id,
            partner_ids=[partner_id],
        )

    async def log_partner_update(
        self, actor_id: str, partner_id: str, partner_name: str, changes: str,
        before: Optional[dict] = None, after: Optional[dict] = None,
    ) -> bool:
        return await self.log(
            AuditActionType.PARTNER_UPDATE,
            f"Updated partner {partner_name}: {changes}",
            actor_id,
            partner_ids=[partner_id],
            before_snapshot=before,
            after_snapshot=after,
        )

    async def log_partner_delete(self, actor_id: str, partner_id: str, partner_name: str) -> bool:
        return await self.log(
            AuditActionType.PARTNER_DELETE,
            f"Deactivated partner: {partner_name}",
            actor_id,
            partner_ids=[partner_id],
        )

    async def log_request_create(
        self, actor_id: str, request_id: str, mode: RequestMode, vehicle_ids: list[str],
    ) -> bool:
        return await self.log(
            AuditActionType.REQUEST_CREATE,
            f"Created {RequestMode(mode).value} parts request",
            actor_id,
            request_id=request_id,
            mode=mode,
            vehicle_ids=vehicle_ids,
        )

    async def log_request_status_change(
        self, actor_id: str, request_id: str, old_status: str, new_status: str,
        vehicle_ids: Optional[list[str]] = None,
    ) -> bool:
        return await self.log(
            AuditActionType.REQUEST_STATUS_CHANGE,
            f"Request status: {old_status} → {new_status}",
            actor_id,
            request_id=request_id,
            vehicle_ids=vehicle_ids,
        )

    async def log_quote_create(
        self, actor_id: str, quote_id: str, request_id: str, partner_id: str, grand_total: float,
    ) -> bool:
        return await self.log(
            AuditActionType.QUOTE_CREATE,
            f"Quote received: {grand_total:.2f}",
            actor_id,
            quote_id=quote_id,
            request_id=request_id,
            partner_ids=[partner_id],
        )

    async def log_quote_accept(
        self, actor_id: str, quote_id: str, request_id: str, partner_id: str,
    ) -> bool:
        return await self.log(
            AuditActionType.QUOTE_ACCEPT,
            "Accepted quote from partner",
            actor_id,
            quote_id=quote_id,
            request_id=request_id,
            partner_ids=[partner_id],
        )

    async def log_quote_reject(
        self, actor_id: str, quote_id: str, request_id: str, partner_id: str,
    ) -> bool:
        return await self.log(
            AuditActionType.QUOTE_REJECT,
            "Rejected quote from partner",
            actor_id,
            quote_id=quote_id,
            request_id=request_id,
            partner_ids=[partner_id],
        )
