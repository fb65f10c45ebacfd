"""
Integration Adapter Base Classes and Interfaces

Defines the contract every third-party integration implements, plus the
shared behavior (settings access, activity logging, field mapping and the
submission flow) that concrete adapters inherit.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from formbridge.core.errors import (
    ConfigurationError,
    RemoteApiError,
    SettingsStoreError,
    TransportError,
    ValidationError,
)
from formbridge.core.logging import get_logger
from formbridge.models.log import LogStatus
from formbridge.services.activity_logger import ActivityLogger
from formbridge.services.http_client import ApiResponse, HttpRequestClient
from formbridge.services.settings_store import SettingsStore, is_blank, is_enabled_flag

logger = get_logger(__name__)

_NON_WORD_RE = re.compile(r"[^a-z0-9]+")


class FieldType(str, Enum):
    """Input types a configuration field can render as."""
    TEXT = "text"
    PASSWORD = "password"
    TEXTAREA = "textarea"
    CHECKBOX = "checkbox"
    SELECT = "select"


@dataclass(frozen=True)
class IntegrationDescriptor:
    """Identity and display metadata of one adapter."""
    id: str
    name: str
    description: str = ""
    version: str = "1.0.0"
    icon: str = ""
    color: str = "#333333"


@dataclass
class ConfigField:
    """Declarative description of one credential or settings input."""
    id: str
    label: str
    type: FieldType = FieldType.TEXT
    required: bool = False
    default: Any = None
    description: str = ""
    options: Optional[Dict[str, str]] = None
    placeholder: str = ""

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["type"] = self.type.value
        return data


# Credentials and non-credential knobs share one shape.
AuthField = ConfigField
SettingsField = ConfigField


@dataclass
class IntegrationAction:
    """An operation an integration can perform for a submission."""
    id: str
    label: str
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ConnectionResult:
    """
    Outcome of a connection test. Failures always carry a non-empty error.

    status_code is set when the failure came from the wire: the HTTP status
    of a rejection, or 0 for a network failure. Local checks leave it None.
    """
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)
    status_code: Optional[int] = None

    @classmethod
    def ok(cls, message: str = "Connection successful!", data: Optional[Dict[str, Any]] = None) -> "ConnectionResult":
        return cls(success=True, message=message, data=data or {})

    @classmethod
    def failed(
        cls,
        error: str,
        data: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ) -> "ConnectionResult":
        return cls(success=False, error=error or "Connection failed", data=data or {}, status_code=status_code)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"success": self.success}
        if self.success:
            result["message"] = self.message
        else:
            result["error"] = self.error
        if self.data:
            result["data"] = self.data
        return result


@dataclass
class SubmissionResult:
    """Outcome of forwarding one submission."""
    success: bool
    message: str = ""
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class IntegrationAdapter(ABC):
    """
    Abstract base class for third-party integrations.

    Concrete adapters declare a class-level ``descriptor`` and implement the
    platform specific parts: credentials, the connection check and delivery.
    Everything else has a usable default here.
    """

    descriptor: IntegrationDescriptor

    def __init__(
        self,
        settings_store: SettingsStore,
        activity_logger: ActivityLogger,
        http_client: HttpRequestClient,
    ):
        self.settings_store = settings_store
        self.activity_logger = activity_logger
        self.http = http_client

    # Metadata

    @property
    def id(self) -> str:
        return self.descriptor.id

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def description(self) -> str:
        return self.descriptor.description

    @property
    def version(self) -> str:
        return self.descriptor.version

    @property
    def icon(self) -> str:
        return self.descriptor.icon

    @property
    def color(self) -> str:
        return self.descriptor.color

    # Declarations

    @abstractmethod
    def get_auth_fields(self) -> List[AuthField]:
        """Credentials this integration needs."""

    def get_settings_fields(self) -> List[SettingsField]:
        return []

    def get_available_actions(self) -> List[IntegrationAction]:
        return []

    def get_field_mapping(self, action: str) -> Dict[str, Dict[str, Any]]:
        """
        Target fields offered for an action, keyed by target field name.

        Each value describes the target (label, type, required). Targets
        marked required must be present after mapping.
        """
        return {}

    def get_default_settings(self) -> Dict[str, Any]:
        actions = self.get_available_actions()
        return {
            "enabled": False,
            "action": actions[0].id if actions else "subscribe",
        }

    # Configuration state

    async def get_global_settings(self) -> Dict[str, Any]:
        return await self.settings_store.get_global(self.id)

    async def get_form_settings(self, form_id: int) -> Dict[str, Any]:
        return await self.settings_store.get_for_entity(form_id, self.id)

    async def is_configured(self) -> bool:
        """True when every required credential has a non-empty stored value."""
        stored = await self.get_global_settings()
        return all(
            not is_blank(stored.get(auth_field.id))
            for auth_field in self.get_auth_fields()
            if auth_field.required
        )

    async def is_enabled(self, settings: Dict[str, Any]) -> bool:
        if not is_enabled_flag(settings.get("enabled")):
            return False
        return await self.is_configured()

    async def save_global_settings(self, settings: Dict[str, Any]) -> bool:
        try:
            await self.settings_store.set_global(self.id, settings)
        except SettingsStoreError as exc:
            logger.warning("settings.global.save_failed", integration_id=self.id, error=exc.message)
            return False
        saved = bool(await self.get_global_settings())
        logger.info("settings.global.saved", integration_id=self.id, verified=saved)
        return saved

    async def save_form_settings(self, form_id: int, settings: Dict[str, Any]) -> bool:
        try:
            await self.settings_store.set_for_entity(form_id, self.id, settings)
        except SettingsStoreError as exc:
            logger.warning("settings.form.save_failed", integration_id=self.id, form_id=form_id, error=exc.message)
            return False
        saved = bool(await self.get_form_settings(form_id))
        logger.info("settings.form.saved", integration_id=self.id, form_id=form_id, verified=saved)
        return saved

    # Validation and mapping

    def validate_settings(self, settings: Dict[str, Any]) -> List[str]:
        """Form level settings check. Subclasses extend the returned list."""
        errors: List[str] = []
        if is_blank(settings.get("action")):
            errors.append("Action is required")
        return errors

    def validate_global_settings(self, settings: Dict[str, Any]) -> List[str]:
        required = [auth_field.id for auth_field in self.get_auth_fields() if auth_field.required]
        return self.validate_required_fields(settings, required)

    @staticmethod
    def map_form_data(form_data: Dict[str, Any], field_mapping: Dict[str, str]) -> Dict[str, Any]:
        """Copy each mapped source value to its target name; absent sources are skipped."""
        mapped: Dict[str, Any] = {}
        for target_field, source_field in field_mapping.items():
            if source_field in form_data:
                mapped[target_field] = form_data[source_field]
        return mapped

    @staticmethod
    def validate_required_fields(data: Dict[str, Any], required_fields: List[str]) -> List[str]:
        return [f"Field {name} is required" for name in required_fields if is_blank(data.get(name))]

    # Operations

    async def test_connection(self, credentials: Dict[str, Any]) -> ConnectionResult:
        """
        Check candidate credentials against the live API.

        Never raises. Nothing is persisted.
        """
        try:
            result = await self.check_connection(dict(credentials or {}))
        except Exception as exc:
            result = ConnectionResult.failed(f"Connection test failed: {exc}")
            await self._connection_failed(str(exc) or type(exc).__name__, error_type=type(exc).__name__)
            return result

        if not result.success and result.status_code is not None:
            await self._connection_failed(result.error, status_code=result.status_code)
        else:
            logger.info("integration.test_connection", integration_id=self.id, success=result.success)
        return result

    @abstractmethod
    async def check_connection(self, credentials: Dict[str, Any]) -> ConnectionResult:
        """Make one lightweight authenticated call with the given credentials."""

    async def process_submission(
        self,
        submission_id: int,
        form_data: Dict[str, Any],
        settings: Optional[Dict[str, Any]] = None,
    ) -> SubmissionResult:
        """
        Forward one submission to the external platform.

        Returns a successful result when the integration is not enabled for
        the form, and a failed result when the platform rejects the call or
        cannot be reached. Only setup problems raise (ConfigurationError,
        ValidationError). Every failure is written to the activity log.
        """
        form_id = int(form_data.get("form_id") or 0)
        if settings is None:
            settings = await self.get_form_settings(form_id)
        context = {"integration_id": self.id, "form_id": form_id, "submission_id": submission_id}

        if not await self.is_enabled(settings):
            return SubmissionResult(success=True, message=f"{self.name} integration not enabled")

        problems = self.validate_settings(settings)
        if problems:
            await self._record(LogStatus.WARNING, "Integration settings are incomplete", context, errors=problems)
            raise ConfigurationError("; ".join(problems), integration_id=self.id)

        fields = form_data.get("fields") if isinstance(form_data.get("fields"), dict) else form_data
        mapped = self.map_form_data(fields, settings.get("field_mapping") or {})
        targets = self.get_field_mapping(str(settings.get("action")))
        missing = self.validate_required_fields(mapped, [name for name, target in targets.items() if target.get("required")])
        if missing:
            await self._record(LogStatus.WARNING, "Mapped data is missing required fields", context, errors=missing)
            raise ValidationError(missing, integration_id=self.id)

        credentials = await self.get_global_settings()
        try:
            result = await self.deliver(mapped, settings, credentials)
        except (RemoteApiError, TransportError) as exc:
            status_code = exc.status_code if isinstance(exc, RemoteApiError) else 0
            logger.error(
                "integration.submission.failed",
                integration_id=self.id,
                submission_id=submission_id,
                error=exc.message,
                status_code=status_code,
            )
            await self._record(LogStatus.ERROR, exc.message, context, error_code=exc.error_code, status_code=status_code)
            return SubmissionResult(
                success=False,
                message=exc.message,
                data={"error_code": exc.error_code, "status_code": status_code},
            )

        if not result.success:
            await self._record(LogStatus.ERROR, result.message or "Submission failed", context, response=result.data)
            return result

        await self._record(LogStatus.SUCCESS, result.message or "Submission delivered", context, response=result.data)
        return result

    @abstractmethod
    async def deliver(
        self,
        mapped: Dict[str, Any],
        settings: Dict[str, Any],
        credentials: Dict[str, Any],
    ) -> SubmissionResult:
        """Perform the platform create/update call for already mapped data."""

    async def to_summary(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "version": self.version,
            "icon": self.icon,
            "color": self.color,
            "configured": await self.is_configured(),
            "actions": [action.to_dict() for action in self.get_available_actions()],
        }

    # Helpers

    def raise_for_response(self, response: ApiResponse, prefix: str) -> None:
        """Turn a failed ApiResponse into the matching IntegrationError."""
        if response.success:
            return
        message = f"{prefix}: {response.error}" if prefix else str(response.error)
        if response.status_code == 0:
            raise TransportError(message, integration_id=self.id, error_code=response.error_code)
        raise RemoteApiError(
            message,
            status_code=response.status_code,
            response_data=response.data,
            integration_id=self.id,
            error_code=response.error_code,
        )

    async def _connection_failed(self, error: str, **context: Any) -> None:
        logger.error("integration.test_connection.failed", integration_id=self.id, error=error, **context)
        try:
            await self.activity_logger.log_integration(
                integration_id=self.id,
                form_id=0,
                status=LogStatus.ERROR.value,
                message=f"Connection test failed: {error}",
                data=context,
            )
        except Exception as exc:
            logger.error("integration.activity_log_failed", integration_id=self.id, error=str(exc))

    async def _record(self, status: LogStatus, message: str, context: Dict[str, Any], **data: Any) -> None:
        await self.activity_logger.log_integration(
            integration_id=self.id,
            form_id=context["form_id"],
            status=status.value,
            message=message,
            data={**context, **data},
            submission_id=context["submission_id"],
        )


class FormConfigurable(ABC):
    """Capability: the integration exposes extra per-form settings inputs."""

    @abstractmethod
    def get_form_settings_fields(self) -> List[SettingsField]:
        ...


class FieldMappable(ABC):
    """Capability: the integration can propose a field mapping from a form's fields."""

    @abstractmethod
    def get_auto_map_rules(self) -> List[Tuple[str, str]]:
        """(words, mapping target) pairs, most specific first."""

    def suggest_field_mapping(self, form_fields: Iterable[Dict[str, Any]]) -> Dict[str, str]:
        """
        Propose a ``field_mapping`` ({target: form field id}) for a form.

        A form field matches a rule when the rule's words appear in its label
        or its id. Each target goes to the first field that matches it, and
        each field is used for at most one target.
        """
        mapping: Dict[str, str] = {}
        for form_field in form_fields:
            source = str(form_field.get("id") or form_field.get("name") or "")
            if not source:
                continue
            text = _words(f"{form_field.get('label') or ''} {source}")
            for pattern, target in self.get_auto_map_rules():
                if target not in mapping and _words(pattern) in text:
                    mapping[target] = source
                    break
        return mapping


def _words(value: str) -> str:
    return " " + " ".join(_NON_WORD_RE.sub(" ", value.lower()).split()) + " "


class RemoteFieldSource(ABC):
    """Capability: the integration can list target fields from the live API."""

    @abstractmethod
    async def fetch_remote_fields(self, credentials: Dict[str, Any], settings: Dict[str, Any]) -> Dict[str, Any]:
        ...


__all__ = [
    "AuthField",
    "ConfigField",
    "ConnectionResult",
    "FieldMappable",
    "FieldType",
    "FormConfigurable",
    "IntegrationAction",
    "IntegrationAdapter",
    "IntegrationDescriptor",
    "RemoteFieldSource",
    "SettingsField",
    "SubmissionResult",
]
