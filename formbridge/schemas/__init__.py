from formbridge.schemas.common import OperationResult, ORMModel
from formbridge.schemas.integration import (
    DataType,
    FieldMappingSuggestionRequest,
    FormFieldDescriptor,
    IntegrationSummary,
    LogEntryRead,
    LogStats,
    SaveSettingsRequest,
    SettingsType,
    SubmissionEvent,
    ConnectionTestRequest,
)

__all__ = [
    "DataType",
    "FieldMappingSuggestionRequest",
    "FormFieldDescriptor",
    "IntegrationSummary",
    "LogEntryRead",
    "LogStats",
    "OperationResult",
    "ORMModel",
    "SaveSettingsRequest",
    "SettingsType",
    "SubmissionEvent",
    "ConnectionTestRequest",
]
