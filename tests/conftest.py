"""
Shared test configuration and fixtures for the integrations test suite.
"""

import json
from typing import Any, Dict, List

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from formbridge.db.session import init_models
from formbridge.integrations.base import (
    ConfigField,
    ConnectionResult,
    FieldType,
    IntegrationAction,
    IntegrationAdapter,
    IntegrationDescriptor,
    SubmissionResult,
)
from formbridge.services.activity_logger import ActivityLogger, LoggingPreferences
from formbridge.services.http_client import HttpRequestClient
from formbridge.services.settings_store import InMemorySettingsStore


CRM_VALID_KEY = "k1"
CRM_BASE_URL = "https://crm.example.test"


class CrmAdapter(IntegrationAdapter):
    """Minimal adapter against a stub CRM that only accepts CRM_VALID_KEY."""

    descriptor = IntegrationDescriptor(
        id="crm",
        name="Test CRM",
        description="Stub CRM used by the test suite",
        version="0.1.0",
        icon="crm",
        color="#123456",
    )

    def get_auth_fields(self):
        return [ConfigField(id="api_key", label="API Key", type=FieldType.PASSWORD, required=True)]

    def get_available_actions(self):
        return [IntegrationAction("create_contact", "Create Contact", "Create a CRM contact")]

    def get_field_mapping(self, action: str):
        return {
            "contact_email": {"label": "Email", "required": True, "type": "email"},
            "contact_name": {"label": "Name", "required": False, "type": "text"},
        }

    async def check_connection(self, credentials: Dict[str, Any]) -> ConnectionResult:
        response = await self.http.get(
            f"{CRM_BASE_URL}/me",
            headers=self.http.bearer_header(str(credentials.get("api_key", ""))),
        )
        if response.success:
            return ConnectionResult.ok(data=response.data)
        return ConnectionResult.failed(response.error, status_code=response.status_code)

    async def deliver(self, mapped, settings, credentials) -> SubmissionResult:
        response = await self.http.post(
            f"{CRM_BASE_URL}/contacts",
            mapped,
            headers=self.http.bearer_header(str(credentials["api_key"])),
        )
        self.raise_for_response(response, "Contact creation failed")
        return SubmissionResult(success=True, message="Contact created", data=response.data)


class RecordingHandler:
    """Stub CRM API. Keeps every request it receives."""

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.headers.get("Authorization") != f"Bearer {CRM_VALID_KEY}":
            return httpx.Response(401, json={"message": "Invalid API credentials"})
        if request.url.path == "/me":
            return httpx.Response(200, json={"account": "acme"})
        if request.url.path == "/contacts" and request.method == "POST":
            body = json.loads(request.content)
            return httpx.Response(201, json={"id": "c-1", "properties": body})
        return httpx.Response(404, json={"message": "Unknown endpoint"})


async def _logging_enabled() -> LoggingPreferences:
    return LoggingPreferences(enabled=True, retention_days=30)


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    await init_models(engine)
    yield async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    await engine.dispose()


@pytest.fixture
def settings_store():
    return InMemorySettingsStore()


@pytest.fixture
def activity_logger(session_factory):
    return ActivityLogger(session_factory, preferences=_logging_enabled)


@pytest.fixture
def crm_api():
    return RecordingHandler()


@pytest.fixture
def http_client(crm_api):
    return HttpRequestClient(timeout=5, user_agent="FormBridge-Tests/1.0", transport=httpx.MockTransport(crm_api))


@pytest.fixture
def crm_adapter(settings_store, activity_logger, http_client):
    return CrmAdapter(settings_store, activity_logger, http_client)
