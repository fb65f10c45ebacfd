"""
Two-scope settings persistence for integrations.

Global settings are keyed by integration id. Form settings are keyed by
(form id, integration id). Every write goes through sanitize_settings()
exactly once, here, before it reaches a backend.
"""

from __future__ import annotations

import copy
import re
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Dict, Optional, Type

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from formbridge.core.errors import SettingsStoreError
from formbridge.core.logging import get_logger
from formbridge.models.settings import FormIntegrationSettings, IntegrationGlobalSettings

logger = get_logger(__name__)

# Reserved global record holding the live logging toggles.
GENERAL_SETTINGS_ID = "_core"

_NUMERIC_RE = re.compile(r"^\s*[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?\s*$")
_SCRIPT_STYLE_RE = re.compile(r"<(script|style)[^>]*?>.*?</\1>", re.IGNORECASE | re.DOTALL)
_TAG_RE = re.compile(r"<[^>]*>")
_WHITESPACE_RE = re.compile(r"[\r\n\t ]+")


class WriteStatus(str, Enum):
    """Outcome of a successful write. Failures raise SettingsStoreError instead."""
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


def sanitize_text(value: Any) -> str:
    text = "" if value is None else str(value)
    text = _SCRIPT_STYLE_RE.sub("", text)
    text = _TAG_RE.sub("", text)
    text = text.replace("<", "&lt;").replace(">", "&gt;")
    return _WHITESPACE_RE.sub(" ", text).strip()


def _coerce_scalar(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value
    text = sanitize_text(value)
    if isinstance(value, str) and _NUMERIC_RE.match(text):
        if any(marker in text for marker in (".", "e", "E")):
            return float(text)
        return int(text)
    return text


def sanitize_settings(settings: Any) -> Any:
    """
    Recursively sanitize a settings payload.

    Mappings and sequences recurse, booleans pass through, numeric-looking
    scalars become int or float, everything else becomes markup-free text.
    """
    if isinstance(settings, dict):
        return {str(key): sanitize_settings(value) for key, value in settings.items()}
    if isinstance(settings, (list, tuple)):
        return [sanitize_settings(item) for item in settings]
    return _coerce_scalar(settings)


def is_blank(value: Any) -> bool:
    """Emptiness as the settings layer understands it ("", "0", 0, None, empty containers)."""
    if value is None or value is False:
        return True
    if isinstance(value, str):
        return value.strip() in ("", "0")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value == 0
    if isinstance(value, (dict, list, tuple, set)):
        return len(value) == 0
    return False


_TRUE_STRINGS = ("1", "true", "yes", "on")


def is_enabled_flag(value: Any) -> bool:
    """Strict reading of an on/off toggle. Strings count only when they spell a true value."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return False


class SettingsStore(ABC):
    """Key-value persistence with a global scope and a per-form scope."""

    async def get_global(self, integration_id: str) -> Dict[str, Any]:
        return copy.deepcopy(await self._read_global(integration_id)) or {}

    async def set_global(self, integration_id: str, settings: Dict[str, Any]) -> WriteStatus:
        clean = sanitize_settings(dict(settings))
        status = await self._write_global(integration_id, clean)
        logger.debug("settings.global.written", integration_id=integration_id, status=status.value)
        return status

    async def get_for_entity(self, entity_id: int, integration_id: str) -> Dict[str, Any]:
        return copy.deepcopy(await self._read_entity(int(entity_id), integration_id)) or {}

    async def set_for_entity(self, entity_id: int, integration_id: str, settings: Dict[str, Any]) -> WriteStatus:
        clean = sanitize_settings(dict(settings))
        status = await self._write_entity(int(entity_id), integration_id, clean)
        logger.debug("settings.form.written", form_id=entity_id, integration_id=integration_id, status=status.value)
        return status

    @abstractmethod
    async def get_all_for_entity(self, entity_id: int) -> Dict[str, Dict[str, Any]]:
        """Every integration record stored for one form, keyed by integration id."""

    @abstractmethod
    async def delete_global(self, integration_id: str) -> bool:
        ...

    @abstractmethod
    async def delete_for_entity(self, entity_id: int, integration_id: Optional[str] = None) -> int:
        """Remove one or all integration records of a form. Returns the number removed."""

    @abstractmethod
    async def _read_global(self, integration_id: str) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    async def _write_global(self, integration_id: str, settings: Dict[str, Any]) -> WriteStatus:
        ...

    @abstractmethod
    async def _read_entity(self, entity_id: int, integration_id: str) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    async def _write_entity(self, entity_id: int, integration_id: str, settings: Dict[str, Any]) -> WriteStatus:
        ...


class InMemorySettingsStore(SettingsStore):
    """Process-local store. Values are deep-copied in and out."""

    def __init__(self) -> None:
        self._global: Dict[str, Dict[str, Any]] = {}
        self._entities: Dict[int, Dict[str, Dict[str, Any]]] = {}

    async def _read_global(self, integration_id: str) -> Optional[Dict[str, Any]]:
        return self._global.get(integration_id)

    async def _write_global(self, integration_id: str, settings: Dict[str, Any]) -> WriteStatus:
        previous = self._global.get(integration_id)
        self._global[integration_id] = copy.deepcopy(settings)
        return _status_for(previous, settings)

    async def _read_entity(self, entity_id: int, integration_id: str) -> Optional[Dict[str, Any]]:
        return self._entities.get(entity_id, {}).get(integration_id)

    async def _write_entity(self, entity_id: int, integration_id: str, settings: Dict[str, Any]) -> WriteStatus:
        records = self._entities.setdefault(entity_id, {})
        previous = records.get(integration_id)
        records[integration_id] = copy.deepcopy(settings)
        return _status_for(previous, settings)

    async def get_all_for_entity(self, entity_id: int) -> Dict[str, Dict[str, Any]]:
        return copy.deepcopy(self._entities.get(int(entity_id), {}))

    async def delete_global(self, integration_id: str) -> bool:
        return self._global.pop(integration_id, None) is not None

    async def delete_for_entity(self, entity_id: int, integration_id: Optional[str] = None) -> int:
        records = self._entities.get(int(entity_id))
        if not records:
            return 0
        if integration_id is None:
            removed = len(records)
            del self._entities[int(entity_id)]
            return removed
        return 1 if records.pop(integration_id, None) is not None else 0


class SqlSettingsStore(SettingsStore):
    """SQLAlchemy-backed store; one row per global record and per (form, integration) pair."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def _read_global(self, integration_id: str) -> Optional[Dict[str, Any]]:
        async with self._session_factory() as session:
            row = await session.get(IntegrationGlobalSettings, integration_id)
            return dict(row.settings) if row is not None else None

    async def _write_global(self, integration_id: str, settings: Dict[str, Any]) -> WriteStatus:
        try:
            return await self._upsert(
                IntegrationGlobalSettings,
                integration_id,
                lambda: IntegrationGlobalSettings(integration_id=integration_id, settings=settings),
                settings,
            )
        except SQLAlchemyError as exc:
            logger.error("settings.global.write_failed", integration_id=integration_id, error=str(exc))
            raise SettingsStoreError(f"Failed to save settings: {exc}", integration_id=integration_id) from exc

    async def _read_entity(self, entity_id: int, integration_id: str) -> Optional[Dict[str, Any]]:
        async with self._session_factory() as session:
            row = await session.get(FormIntegrationSettings, (entity_id, integration_id))
            return dict(row.settings) if row is not None else None

    async def _write_entity(self, entity_id: int, integration_id: str, settings: Dict[str, Any]) -> WriteStatus:
        try:
            return await self._upsert(
                FormIntegrationSettings,
                (entity_id, integration_id),
                lambda: FormIntegrationSettings(form_id=entity_id, integration_id=integration_id, settings=settings),
                settings,
            )
        except SQLAlchemyError as exc:
            logger.error("settings.form.write_failed", form_id=entity_id, integration_id=integration_id, error=str(exc))
            raise SettingsStoreError(f"Failed to save form settings: {exc}", integration_id=integration_id) from exc

    async def _upsert(
        self,
        model: Type[Any],
        key: Any,
        build_row: Callable[[], Any],
        settings: Dict[str, Any],
    ) -> WriteStatus:
        """
        Insert the record, or update it when it already exists.

        Two first writers can both see no row and both insert; the loser
        gets an IntegrityError and goes round once more as an update, so
        the last write wins.
        """
        try:
            return await self._write_row(model, key, build_row, settings)
        except IntegrityError:
            logger.debug("settings.write.conflict", table=model.__tablename__, key=str(key))
            return await self._write_row(model, key, build_row, settings)

    async def _write_row(
        self,
        model: Type[Any],
        key: Any,
        build_row: Callable[[], Any],
        settings: Dict[str, Any],
    ) -> WriteStatus:
        async with self._session_factory() as session:
            row = await session.get(model, key)
            if row is None:
                session.add(build_row())
                status = WriteStatus.CREATED
            else:
                status = _status_for(row.settings, settings)
                if status is WriteStatus.UPDATED:
                    row.settings = settings
            await session.commit()
            return status

    async def get_all_for_entity(self, entity_id: int) -> Dict[str, Dict[str, Any]]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(FormIntegrationSettings).where(FormIntegrationSettings.form_id == int(entity_id))
            )
            return {row.integration_id: dict(row.settings) for row in result.scalars().all()}

    async def delete_global(self, integration_id: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                delete(IntegrationGlobalSettings).where(IntegrationGlobalSettings.integration_id == integration_id)
            )
            await session.commit()
            return result.rowcount > 0

    async def delete_for_entity(self, entity_id: int, integration_id: Optional[str] = None) -> int:
        statement = delete(FormIntegrationSettings).where(FormIntegrationSettings.form_id == int(entity_id))
        if integration_id is not None:
            statement = statement.where(FormIntegrationSettings.integration_id == integration_id)
        async with self._session_factory() as session:
            result = await session.execute(statement)
            await session.commit()
            return result.rowcount or 0


def _status_for(previous: Optional[Dict[str, Any]], current: Dict[str, Any]) -> WriteStatus:
    if previous is None:
        return WriteStatus.CREATED
    if previous == current:
        return WriteStatus.UNCHANGED
    return WriteStatus.UPDATED
