"""
Integration error taxonomy.

Configuration and validation problems are raised to the caller. Transport
and remote API failures are raised inside an adapter, then caught by
process_submission, logged at error level and written to the activity log.
The caller receives them as a failed SubmissionResult.
"""

from typing import Any, Dict, List, Optional


class IntegrationError(Exception):
    """Base class for all integration layer errors."""

    def __init__(
        self,
        message: str,
        integration_id: Optional[str] = None,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.integration_id = integration_id
        self.error_code = error_code
        self.details = details or {}


class ConfigurationError(IntegrationError):
    """A required credential or setting is missing."""


class ValidationError(IntegrationError):
    """Settings or field mapping have an invalid shape."""

    def __init__(self, errors: List[str], integration_id: Optional[str] = None, **kwargs: Any):
        super().__init__("; ".join(errors) or "Validation failed", integration_id=integration_id, **kwargs)
        self.errors = list(errors)


class TransportError(IntegrationError):
    """Network, timeout or TLS failure talking to an external API."""


class RemoteApiError(IntegrationError):
    """The external API answered with a non-success status."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_data: Any = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.status_code = status_code
        self.response_data = response_data


class NotFoundError(IntegrationError):
    """No adapter is registered under the requested integration id."""

    def __init__(self, integration_id: str):
        super().__init__(f"Integration not found: {integration_id}", integration_id=integration_id, error_code="not_found")


class SettingsStoreError(IntegrationError):
    """The settings backend failed to persist a value."""
