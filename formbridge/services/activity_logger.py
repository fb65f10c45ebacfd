"""
Durable activity log for integration events.

Entries are append-only rows in integration_logs. Whether logging is on,
and how long entries are kept, is resolved through a preferences callable
on every call so an operator can toggle it without a restart.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from formbridge.core.config import get_settings
from formbridge.core.logging import get_logger
from formbridge.models.log import IntegrationLog, LogStatus

logger = get_logger(__name__)


@dataclass(slots=True)
class LoggingPreferences:
    enabled: bool = True
    retention_days: int = 30


@dataclass(slots=True)
class LogFilters:
    integration_id: Optional[str] = None
    form_id: Optional[int] = None
    status: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None


PreferencesProvider = Callable[[], Awaitable[LoggingPreferences]]


async def _config_preferences() -> LoggingPreferences:
    settings = get_settings()
    return LoggingPreferences(enabled=settings.enable_logging, retention_days=settings.log_retention_days)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ActivityLogger:
    """Append-only, queryable record of what adapters did."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        preferences: Optional[PreferencesProvider] = None,
    ):
        self._session_factory = session_factory
        self._preferences = preferences or _config_preferences

    async def log(self, level: str, message: str, context: Optional[Dict[str, Any]] = None) -> Optional[int]:
        context = dict(context or {})
        return await self.log_integration(
            integration_id=str(context.get("integration_id") or ""),
            form_id=int(context.get("form_id") or 0),
            status=level,
            message=message,
            data=context,
            submission_id=context.get("submission_id"),
        )

    async def info(self, message: str, context: Optional[Dict[str, Any]] = None) -> Optional[int]:
        return await self.log(LogStatus.INFO.value, message, context)

    async def success(self, message: str, context: Optional[Dict[str, Any]] = None) -> Optional[int]:
        return await self.log(LogStatus.SUCCESS.value, message, context)

    async def warning(self, message: str, context: Optional[Dict[str, Any]] = None) -> Optional[int]:
        return await self.log(LogStatus.WARNING.value, message, context)

    async def error(self, message: str, context: Optional[Dict[str, Any]] = None) -> Optional[int]:
        return await self.log(LogStatus.ERROR.value, message, context)

    async def log_integration(
        self,
        integration_id: str,
        form_id: int,
        status: str,
        message: str,
        data: Optional[Dict[str, Any]] = None,
        submission_id: Optional[int] = None,
    ) -> Optional[int]:
        """Insert one entry and return its id, or None when logging is switched off."""
        status = LogStatus(status).value
        preferences = await self._preferences()
        if not preferences.enabled:
            logger.debug("activity_log.skipped", integration_id=integration_id, status=status, message=message)
            return None

        entry = IntegrationLog(
            integration_id=integration_id,
            form_id=form_id,
            submission_id=int(submission_id) if submission_id is not None else None,
            status=status,
            message=message,
            data=_json_safe(data or {}),
            created_at=_utcnow(),
        )
        async with self._session_factory() as session:
            session.add(entry)
            await session.commit()
            return entry.id

    async def get_logs(
        self,
        filters: Optional[LogFilters] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Dict[str, Any]]:
        statement = select(IntegrationLog)
        for condition in _conditions(filters or LogFilters()):
            statement = statement.where(condition)
        statement = (
            statement.order_by(IntegrationLog.created_at.desc(), IntegrationLog.id.desc())
            .limit(max(0, limit))
            .offset(max(0, offset))
        )
        async with self._session_factory() as session:
            result = await session.execute(statement)
            return [_to_dict(row) for row in result.scalars().all()]

    async def get_stats(self, integration_id: Optional[str] = None, days: int = 30) -> Dict[str, Any]:
        """Counts grouped by status and by day for the trailing window."""
        filters = LogFilters(integration_id=integration_id or None)
        if days > 0:
            filters.date_from = _utcnow() - timedelta(days=days)

        statement = select(IntegrationLog.status, IntegrationLog.created_at)
        for condition in _conditions(filters):
            statement = statement.where(condition)
        async with self._session_factory() as session:
            rows = (await session.execute(statement)).all()

        by_status: Counter[str] = Counter()
        by_date: Counter[str] = Counter()
        for status, created_at in rows:
            by_status[status] += 1
            by_date[created_at.date().isoformat()] += 1
        return {
            "total": len(rows),
            "by_status": dict(by_status),
            "by_date": dict(sorted(by_date.items(), reverse=True)),
        }

    async def count(self, integration_id: Optional[str] = None) -> int:
        statement = select(func.count(IntegrationLog.id))
        if integration_id:
            statement = statement.where(IntegrationLog.integration_id == integration_id)
        async with self._session_factory() as session:
            return int((await session.execute(statement)).scalar_one())

    async def clear_old_logs(self, days: Optional[int] = None) -> int:
        if days is None:
            days = (await self._preferences()).retention_days
        cutoff = _as_utc(_utcnow() - timedelta(days=days))
        async with self._session_factory() as session:
            result = await session.execute(delete(IntegrationLog).where(IntegrationLog.created_at < cutoff))
            await session.commit()
        deleted = result.rowcount or 0
        logger.info("activity_log.pruned", retention_days=days, deleted=deleted)
        return deleted

    async def delete_logs(self, integration_id: str) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                delete(IntegrationLog).where(IntegrationLog.integration_id == integration_id)
            )
            await session.commit()
        return result.rowcount or 0


def _conditions(filters: LogFilters) -> list:
    conditions = []
    if filters.integration_id:
        conditions.append(IntegrationLog.integration_id == filters.integration_id)
    if filters.form_id:
        conditions.append(IntegrationLog.form_id == filters.form_id)
    if filters.status:
        conditions.append(IntegrationLog.status == filters.status)
    if filters.date_from is not None:
        conditions.append(IntegrationLog.created_at >= _as_utc(filters.date_from))
    if filters.date_to is not None:
        conditions.append(IntegrationLog.created_at <= _as_utc(filters.date_to))
    return conditions


def _to_dict(row: IntegrationLog) -> Dict[str, Any]:
    return {
        "id": row.id,
        "form_id": row.form_id,
        "submission_id": row.submission_id,
        "integration_id": row.integration_id,
        "status": row.status,
        "message": row.message,
        "data": row.data,
        "created_at": row.created_at,
    }


def _json_safe(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(key): _json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_json_safe(item) for item in value]
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)
