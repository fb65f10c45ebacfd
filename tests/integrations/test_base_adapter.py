"""
Integration adapter contract tests

Exercised through the stub "crm" adapter defined in conftest.
"""

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from formbridge.core.errors import ConfigurationError, SettingsStoreError, ValidationError
from formbridge.integrations.base import (
    ConnectionResult,
    FieldMappable,
    FormConfigurable,
    RemoteFieldSource,
    SubmissionResult,
)
from formbridge.services.activity_logger import LogFilters
from formbridge.services.http_client import HttpRequestClient
from tests.conftest import CRM_VALID_KEY, CrmAdapter


ENABLED = {
    "enabled": True,
    "action": "create_contact",
    "field_mapping": {"contact_email": "email", "contact_name": "name"},
}


def refused(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("connection refused", request=request)


def offline_adapter(settings_store, activity_logger) -> CrmAdapter:
    client = HttpRequestClient(timeout=1, user_agent="t", transport=httpx.MockTransport(refused))
    return CrmAdapter(settings_store, activity_logger, client)


class TestAdapterMetadata:
    def test_descriptor_accessors(self, crm_adapter):
        assert crm_adapter.id == "crm"
        assert crm_adapter.name == "Test CRM"
        assert crm_adapter.version == "0.1.0"
        assert crm_adapter.icon == "crm"
        assert crm_adapter.color == "#123456"

    def test_defaults(self, crm_adapter):
        assert crm_adapter.get_settings_fields() == []
        assert crm_adapter.get_default_settings() == {"enabled": False, "action": "create_contact"}

    def test_capabilities_are_explicit(self, crm_adapter):
        assert not isinstance(crm_adapter, FormConfigurable)
        assert not isinstance(crm_adapter, RemoteFieldSource)
        assert not isinstance(crm_adapter, FieldMappable)

    @pytest.mark.asyncio
    async def test_summary(self, crm_adapter):
        summary = await crm_adapter.to_summary()

        assert summary["id"] == "crm"
        assert summary["configured"] is False
        assert summary["actions"] == [
            {"id": "create_contact", "label": "Create Contact", "description": "Create a CRM contact"}
        ]


class TestConfiguration:
    @pytest.mark.asyncio
    async def test_configured_once_required_credential_saved(self, crm_adapter):
        assert await crm_adapter.is_configured() is False

        assert await crm_adapter.save_global_settings({"api_key": CRM_VALID_KEY}) is True

        assert await crm_adapter.is_configured() is True

    @pytest.mark.asyncio
    async def test_blank_credential_is_not_configured(self, crm_adapter):
        await crm_adapter.save_global_settings({"api_key": ""})

        assert await crm_adapter.is_configured() is False

    @pytest.mark.asyncio
    async def test_enabled_requires_flag_and_configuration(self, crm_adapter):
        assert await crm_adapter.is_enabled({"enabled": True}) is False

        await crm_adapter.save_global_settings({"api_key": CRM_VALID_KEY})

        assert await crm_adapter.is_enabled({"enabled": True}) is True
        assert await crm_adapter.is_enabled({"enabled": False}) is False
        assert await crm_adapter.is_enabled({}) is False

    @pytest.mark.asyncio
    async def test_enabled_flag_strings_are_parsed_as_booleans(self, crm_adapter):
        await crm_adapter.save_global_settings({"api_key": CRM_VALID_KEY})

        assert await crm_adapter.is_enabled({"enabled": "false"}) is False
        assert await crm_adapter.is_enabled({"enabled": "0"}) is False
        assert await crm_adapter.is_enabled({"enabled": ""}) is False
        assert await crm_adapter.is_enabled({"enabled": "true"}) is True
        assert await crm_adapter.is_enabled({"enabled": "1"}) is True
        assert await crm_adapter.is_enabled({"enabled": 1}) is True

    @pytest.mark.asyncio
    async def test_save_round_trip_is_sanitized_and_idempotent(self, crm_adapter):
        raw = {"api_key": "<b>k1</b>", "retries": "3", "verbose": False}

        assert await crm_adapter.save_global_settings(raw) is True
        stored = await crm_adapter.get_global_settings()
        assert stored == {"api_key": "k1", "retries": 3, "verbose": False}

        assert await crm_adapter.save_global_settings(stored) is True
        assert await crm_adapter.get_global_settings() == stored

    @pytest.mark.asyncio
    async def test_save_reports_failure_when_store_fails(self, crm_adapter):
        crm_adapter.settings_store.set_global = AsyncMock(side_effect=SettingsStoreError("disk full"))

        assert await crm_adapter.save_global_settings({"api_key": "k1"}) is False

    @pytest.mark.asyncio
    async def test_save_empty_settings_is_not_verified(self, crm_adapter):
        assert await crm_adapter.save_form_settings(4, {}) is False

    @pytest.mark.asyncio
    async def test_form_settings_round_trip(self, crm_adapter):
        assert await crm_adapter.save_form_settings(4, ENABLED) is True
        assert await crm_adapter.get_form_settings(4) == ENABLED


class TestValidationAndMapping:
    def test_action_is_required(self, crm_adapter):
        assert crm_adapter.validate_settings({}) == ["Action is required"]
        assert crm_adapter.validate_settings({"action": "subscribe"}) == []

    def test_global_validation_checks_required_credentials(self, crm_adapter):
        assert crm_adapter.validate_global_settings({}) == ["Field api_key is required"]
        assert crm_adapter.validate_global_settings({"api_key": "k1"}) == []

    def test_mapping_copies_only_mapped_fields(self, crm_adapter):
        mapped = crm_adapter.map_form_data({"email": "a@b.com", "unused": "x"}, {"contact_email": "email"})

        assert mapped == {"contact_email": "a@b.com"}

    def test_mapping_skips_absent_sources(self, crm_adapter):
        mapped = crm_adapter.map_form_data({"email": "a@b.com"}, {"contact_email": "email", "phone": "tel"})

        assert mapped == {"contact_email": "a@b.com"}

    def test_required_fields(self, crm_adapter):
        errors = crm_adapter.validate_required_fields({"a": "1", "b": ""}, ["a", "b", "c"])

        assert errors == ["Field b is required", "Field c is required"]


class TestConnection:
    @pytest.mark.asyncio
    async def test_rejected_and_accepted_credentials(self, crm_adapter):
        await crm_adapter.save_global_settings({"api_key": CRM_VALID_KEY})
        assert await crm_adapter.is_configured() is True

        rejected = await crm_adapter.test_connection({"api_key": "bad"})
        accepted = await crm_adapter.test_connection({"api_key": CRM_VALID_KEY})

        assert rejected.success is False
        assert rejected.error == "Invalid API credentials"
        assert accepted.success is True
        assert accepted.to_dict() == {"success": True, "message": "Connection successful!", "data": {"account": "acme"}}

    @pytest.mark.asyncio
    async def test_candidate_credentials_are_not_persisted(self, crm_adapter):
        await crm_adapter.test_connection({"api_key": CRM_VALID_KEY})

        assert await crm_adapter.get_global_settings() == {}

    @pytest.mark.asyncio
    async def test_unreachable_network_returns_failure(self, settings_store, activity_logger):
        adapter = offline_adapter(settings_store, activity_logger)

        with patch("formbridge.integrations.base.logger") as log:
            result = await adapter.test_connection({"api_key": CRM_VALID_KEY})

        assert result.success is False
        assert result.status_code == 0
        assert "connection refused" in result.error
        log.error.assert_called_once()
        assert log.error.call_args.args[0] == "integration.test_connection.failed"
        assert log.error.call_args.kwargs["status_code"] == 0

        entries = await activity_logger.get_logs(LogFilters(integration_id="crm", status="error"))
        assert len(entries) == 1
        assert entries[0]["message"].startswith("Connection test failed: ")
        assert entries[0]["data"]["status_code"] == 0

    @pytest.mark.asyncio
    async def test_rejected_credentials_are_logged_as_errors(self, crm_adapter, activity_logger):
        with patch("formbridge.integrations.base.logger") as log:
            result = await crm_adapter.test_connection({"api_key": "bad"})

        assert result.status_code == 401
        log.error.assert_called_once()
        entries = await activity_logger.get_logs(LogFilters(integration_id="crm", status="error"))
        assert entries[0]["message"] == "Connection test failed: Invalid API credentials"
        assert entries[0]["data"] == {"status_code": 401}

    @pytest.mark.asyncio
    async def test_successful_test_writes_no_activity_entry(self, crm_adapter, activity_logger):
        await crm_adapter.test_connection({"api_key": CRM_VALID_KEY})

        assert await activity_logger.get_logs(LogFilters(integration_id="crm")) == []

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_converted(self, crm_adapter):
        crm_adapter.check_connection = AsyncMock(side_effect=RuntimeError("boom"))

        result = await crm_adapter.test_connection({"api_key": "x"})

        assert isinstance(result, ConnectionResult)
        assert result.success is False
        assert "boom" in result.error
        entries = await crm_adapter.activity_logger.get_logs(LogFilters(integration_id="crm", status="error"))
        assert entries[0]["message"] == "Connection test failed: boom"
        assert entries[0]["data"] == {"error_type": "RuntimeError"}


class TestProcessSubmission:
    @pytest.mark.asyncio
    async def test_not_enabled_is_a_successful_no_op(self, crm_adapter, crm_api):
        result = await crm_adapter.process_submission(1, {"form_id": 4, "email": "a@b.com"}, {"enabled": False})

        assert result.success is True
        assert "not enabled" in result.message
        assert crm_api.requests == []

    @pytest.mark.asyncio
    async def test_delivers_mapped_data_and_logs_success(self, crm_adapter, crm_api, activity_logger):
        await crm_adapter.save_global_settings({"api_key": CRM_VALID_KEY})

        result = await crm_adapter.process_submission(
            21, {"form_id": 4, "email": "a@b.com", "name": "Ann", "secret": "x"}, ENABLED
        )

        assert isinstance(result, SubmissionResult)
        assert result.success is True
        assert result.data["properties"] == {"contact_email": "a@b.com", "contact_name": "Ann"}
        entries = await activity_logger.get_logs(LogFilters(integration_id="crm"))
        assert entries[0]["status"] == "success"
        assert entries[0]["form_id"] == 4
        assert entries[0]["submission_id"] == 21

    @pytest.mark.asyncio
    async def test_reads_stored_form_settings_when_none_given(self, crm_adapter):
        await crm_adapter.save_global_settings({"api_key": CRM_VALID_KEY})
        await crm_adapter.save_form_settings(4, ENABLED)

        result = await crm_adapter.process_submission(22, {"form_id": 4, "email": "a@b.com"})

        assert result.success is True

    @pytest.mark.asyncio
    async def test_nested_fields_are_mapped(self, crm_adapter):
        await crm_adapter.save_global_settings({"api_key": CRM_VALID_KEY})

        result = await crm_adapter.process_submission(23, {"form_id": 4, "fields": {"email": "n@b.com"}}, ENABLED)

        assert result.data["properties"] == {"contact_email": "n@b.com"}

    @pytest.mark.asyncio
    async def test_missing_required_target_raises_validation_error(self, crm_adapter, crm_api, activity_logger):
        await crm_adapter.save_global_settings({"api_key": CRM_VALID_KEY})

        with pytest.raises(ValidationError) as exc_info:
            await crm_adapter.process_submission(24, {"form_id": 4, "name": "Ann"}, ENABLED)

        assert exc_info.value.errors == ["Field contact_email is required"]
        assert crm_api.requests == []
        entries = await activity_logger.get_logs(LogFilters(integration_id="crm"))
        assert entries[0]["status"] == "warning"

    @pytest.mark.asyncio
    async def test_invalid_settings_raise_configuration_error(self, crm_adapter):
        await crm_adapter.save_global_settings({"api_key": CRM_VALID_KEY})

        with pytest.raises(ConfigurationError):
            await crm_adapter.process_submission(25, {"form_id": 4, "email": "a@b.com"}, {"enabled": True})

    @pytest.mark.asyncio
    async def test_remote_rejection_returns_failed_result(self, crm_adapter, activity_logger):
        await crm_adapter.save_global_settings({"api_key": "revoked"})

        with patch("formbridge.integrations.base.logger") as log:
            result = await crm_adapter.process_submission(26, {"form_id": 4, "email": "a@b.com"}, ENABLED)

        assert isinstance(result, SubmissionResult)
        assert result.success is False
        assert result.message == "Contact creation failed: Invalid API credentials"
        assert result.data["status_code"] == 401
        assert log.error.call_args.args[0] == "integration.submission.failed"
        entries = await activity_logger.get_logs(LogFilters(integration_id="crm", status="error"))
        assert entries[0]["submission_id"] == 26
        assert entries[0]["data"]["status_code"] == 401

    @pytest.mark.asyncio
    async def test_unreachable_network_returns_failed_result(self, settings_store, activity_logger):
        adapter = offline_adapter(settings_store, activity_logger)
        await adapter.save_global_settings({"api_key": CRM_VALID_KEY})

        result = await adapter.process_submission(27, {"form_id": 4, "email": "a@b.com"}, ENABLED)

        assert result.success is False
        assert result.message.startswith("Contact creation failed: ")
        assert result.data == {"error_code": "ConnectError", "status_code": 0}
        entries = await activity_logger.get_logs(LogFilters(integration_id="crm", status="error"))
        assert entries[0]["submission_id"] == 27
        assert entries[0]["data"]["status_code"] == 0
