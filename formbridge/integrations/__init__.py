"""
Integration Package

Adapters that forward form submissions to third-party platforms, the
contract they share and the registry that holds them.
"""

from typing import Tuple, Type

from .base import (
    AuthField,
    ConfigField,
    ConnectionResult,
    FieldMappable,
    FieldType,
    FormConfigurable,
    IntegrationAction,
    IntegrationAdapter,
    IntegrationDescriptor,
    RemoteFieldSource,
    SettingsField,
    SubmissionResult,
)
from .hubspot_adapter import HubspotAdapter
from .mailchimp_adapter import MailchimpAdapter
from .registry import IntegrationRegistry

# Adapters registered at startup, in listing order
BUILTIN_ADAPTERS: Tuple[Type[IntegrationAdapter], ...] = (
    MailchimpAdapter,
    HubspotAdapter,
)

__all__ = [
    "AuthField",
    "BUILTIN_ADAPTERS",
    "ConfigField",
    "ConnectionResult",
    "FieldMappable",
    "FieldType",
    "FormConfigurable",
    "HubspotAdapter",
    "IntegrationAction",
    "IntegrationAdapter",
    "IntegrationDescriptor",
    "IntegrationRegistry",
    "MailchimpAdapter",
    "RemoteFieldSource",
    "SettingsField",
    "SubmissionResult",
]
