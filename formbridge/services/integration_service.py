"""
Boundary operations called by the HTTP routes and the CLI.

Every operation returns a structured OperationResult. Only an unknown
integration id raises (NotFoundError), so the caller can answer 404.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from formbridge.core.errors import IntegrationError, NotFoundError
from formbridge.core.logging import get_logger
from formbridge.integrations.base import FieldMappable, FormConfigurable, IntegrationAdapter, RemoteFieldSource
from formbridge.integrations.registry import IntegrationRegistry
from formbridge.schemas.common import OperationResult
from formbridge.schemas.integration import DataType, SettingsType
from formbridge.services.activity_logger import ActivityLogger, LogFilters, LoggingPreferences
from formbridge.services.dispatcher import DispatchReport, SubmissionDispatcher
from formbridge.services.settings_store import GENERAL_SETTINGS_ID, SettingsStore

logger = get_logger(__name__)


class IntegrationService:
    def __init__(
        self,
        registry: IntegrationRegistry,
        settings_store: SettingsStore,
        activity_logger: ActivityLogger,
        dispatcher: SubmissionDispatcher,
    ):
        self.registry = registry
        self.settings_store = settings_store
        self.activity_logger = activity_logger
        self.dispatcher = dispatcher

    def require(self, integration_id: str) -> IntegrationAdapter:
        adapter = self.registry.get(integration_id)
        if adapter is None:
            raise NotFoundError(integration_id)
        return adapter

    async def list_integrations(self) -> List[Dict[str, Any]]:
        return await self.registry.to_list()

    async def get_integration(self, integration_id: str) -> Dict[str, Any]:
        return await self.require(integration_id).to_summary()

    async def test_connection(self, integration_id: str, credentials: Dict[str, Any]) -> OperationResult:
        adapter = self.require(integration_id)
        result = await adapter.test_connection(credentials)
        return OperationResult(success=result.success, message=result.message, error=result.error, data=result.data or None)

    async def save_settings(
        self,
        integration_id: str,
        settings_type: SettingsType,
        settings: Dict[str, Any],
        form_id: Optional[int] = None,
    ) -> OperationResult:
        """Validate, then persist. Nothing is written when validation fails."""
        adapter = self.require(integration_id)

        if settings_type is SettingsType.FORM:
            if not form_id:
                return OperationResult(success=False, error="Form ID is required", errors=["Form ID is required"])
            settings = {**adapter.get_default_settings(), **settings}
            errors = adapter.validate_settings(settings)
        else:
            errors = adapter.validate_global_settings(settings)

        if errors:
            logger.info("settings.rejected", integration_id=integration_id, settings_type=settings_type.value, errors=errors)
            return OperationResult(success=False, error=errors[0], errors=errors)

        if settings_type is SettingsType.FORM:
            saved = await adapter.save_form_settings(int(form_id), settings)
        else:
            saved = await adapter.save_global_settings(settings)

        if not saved:
            return OperationResult(success=False, error="Failed to save settings")
        return OperationResult(success=True, message="Settings saved successfully")

    async def get_integration_data(
        self,
        integration_id: str,
        data_type: DataType,
        action: Optional[str] = None,
        form_id: Optional[int] = None,
    ) -> OperationResult:
        adapter = self.require(integration_id)

        if data_type is DataType.AUTH_FIELDS:
            data: Any = [item.to_dict() for item in adapter.get_auth_fields()]
        elif data_type is DataType.SETTINGS_FIELDS:
            data = [item.to_dict() for item in adapter.get_settings_fields()]
        elif data_type is DataType.AVAILABLE_ACTIONS:
            data = [item.to_dict() for item in adapter.get_available_actions()]
        elif data_type is DataType.FIELD_MAPPING:
            data = adapter.get_field_mapping(action or adapter.get_default_settings()["action"])
        elif data_type is DataType.FORM_SETTINGS_FIELDS:
            if not isinstance(adapter, FormConfigurable):
                return OperationResult(success=False, error=f"{adapter.name} has no form settings")
            data = [item.to_dict() for item in adapter.get_form_settings_fields()]
        else:
            if not isinstance(adapter, RemoteFieldSource):
                return OperationResult(success=False, error=f"{adapter.name} cannot list remote fields")
            form_settings = await adapter.get_form_settings(form_id) if form_id else {}
            try:
                data = await adapter.fetch_remote_fields(await adapter.get_global_settings(), form_settings)
            except IntegrationError as exc:
                return OperationResult(success=False, error=exc.message)

        return OperationResult(success=True, data=data)

    async def suggest_field_mapping(self, integration_id: str, form_fields: List[Dict[str, Any]]) -> OperationResult:
        """Propose a field_mapping for a form from its field ids and labels."""
        adapter = self.require(integration_id)
        if not isinstance(adapter, FieldMappable):
            return OperationResult(success=False, error=f"{adapter.name} cannot suggest a field mapping")
        mapping = adapter.suggest_field_mapping(form_fields)
        logger.info("settings.field_mapping.suggested", integration_id=integration_id, matched=len(mapping))
        return OperationResult(success=True, data=mapping)

    async def get_logs(
        self,
        integration_id: Optional[str] = None,
        form_id: Optional[int] = None,
        status: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Dict[str, Any]]:
        filters = LogFilters(
            integration_id=integration_id,
            form_id=form_id,
            status=status,
            date_from=date_from,
            date_to=date_to,
        )
        return await self.activity_logger.get_logs(filters, limit=limit, offset=offset)

    async def get_stats(self, integration_id: Optional[str] = None, days: int = 30) -> Dict[str, Any]:
        return await self.activity_logger.get_stats(integration_id, days)

    async def handle_submission(self, submission_id: int, form_data: Dict[str, Any]) -> DispatchReport:
        return await self.dispatcher.dispatch(submission_id, form_data)

    async def save_logging_preferences(self, preferences: LoggingPreferences) -> OperationResult:
        current = await self.settings_store.get_global(GENERAL_SETTINGS_ID)
        current.update({"enable_logging": preferences.enabled, "log_retention_days": preferences.retention_days})
        await self.settings_store.set_global(GENERAL_SETTINGS_ID, current)
        logger.info(
            "settings.logging.saved",
            enable_logging=preferences.enabled,
            log_retention_days=preferences.retention_days,
        )
        return OperationResult(success=True, message="Logging preferences saved")
