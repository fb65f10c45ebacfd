"""Startup wiring: every collaborator is built once here and passed down explicitly."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Type

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from formbridge.core.config import Settings, get_settings
from formbridge.integrations import BUILTIN_ADAPTERS, IntegrationAdapter, IntegrationRegistry
from formbridge.services.activity_logger import ActivityLogger, LoggingPreferences, PreferencesProvider
from formbridge.services.dispatcher import SubmissionDispatcher
from formbridge.services.http_client import HttpRequestClient
from formbridge.services.integration_service import IntegrationService
from formbridge.services.settings_store import (
    GENERAL_SETTINGS_ID,
    SettingsStore,
    SqlSettingsStore,
    is_blank,
    is_enabled_flag,
)


@dataclass
class Container:
    settings_store: SettingsStore
    activity_logger: ActivityLogger
    http_client: HttpRequestClient
    registry: IntegrationRegistry
    dispatcher: SubmissionDispatcher
    service: IntegrationService


def stored_preferences(store: SettingsStore, settings: Settings) -> PreferencesProvider:
    """Read the live logging toggles on every call, falling back to configuration."""

    async def provider() -> LoggingPreferences:
        general = await store.get_global(GENERAL_SETTINGS_ID)
        enabled = general.get("enable_logging", settings.enable_logging)
        retention = general.get("log_retention_days")
        return LoggingPreferences(
            enabled=is_enabled_flag(enabled),
            retention_days=int(retention) if not is_blank(retention) else settings.log_retention_days,
        )

    return provider


def build_container(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    settings_store: Optional[SettingsStore] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    adapters: Iterable[Type[IntegrationAdapter]] = BUILTIN_ADAPTERS,
    settings: Optional[Settings] = None,
) -> Container:
    settings = settings or get_settings()
    store = settings_store or SqlSettingsStore(session_factory)
    activity_logger = ActivityLogger(session_factory, preferences=stored_preferences(store, settings))
    http_client = HttpRequestClient(
        timeout=settings.http_timeout_seconds,
        user_agent=settings.http_user_agent,
        transport=transport,
    )

    registry = IntegrationRegistry()
    registry.register_many(adapter_class(store, activity_logger, http_client) for adapter_class in adapters)

    dispatcher = SubmissionDispatcher(
        registry,
        store,
        activity_logger,
        timeout=settings.dispatch_timeout_seconds,
        concurrent=settings.dispatch_concurrently,
    )
    service = IntegrationService(registry, store, activity_logger, dispatcher)
    return Container(
        settings_store=store,
        activity_logger=activity_logger,
        http_client=http_client,
        registry=registry,
        dispatcher=dispatcher,
        service=service,
    )
