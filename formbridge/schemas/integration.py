from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from formbridge.models.log import LogStatus
from formbridge.schemas.common import ORMModel


class SettingsType(str, Enum):
    GLOBAL = "global"
    FORM = "form"


class DataType(str, Enum):
    AUTH_FIELDS = "auth_fields"
    SETTINGS_FIELDS = "settings_fields"
    AVAILABLE_ACTIONS = "available_actions"
    FIELD_MAPPING = "field_mapping"
    FORM_SETTINGS_FIELDS = "form_settings_fields"
    REMOTE_FIELDS = "remote_fields"


class IntegrationActionRead(BaseModel):
    id: str
    label: str
    description: str = ""


class IntegrationSummary(BaseModel):
    id: str
    name: str
    description: str
    version: str
    icon: str
    color: str
    configured: bool
    actions: List[IntegrationActionRead] = Field(default_factory=list)


class ConnectionTestRequest(BaseModel):
    credentials: Dict[str, Any] = Field(default_factory=dict)


class SaveSettingsRequest(BaseModel):
    settings_type: SettingsType = SettingsType.GLOBAL
    form_id: Optional[int] = Field(default=None, gt=0)
    settings: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def require_form_id(self) -> "SaveSettingsRequest":
        if self.settings_type is SettingsType.FORM and self.form_id is None:
            raise ValueError("form_id is required for form settings")
        return self


class FormFieldDescriptor(BaseModel):
    id: str = Field(min_length=1)
    label: str = ""
    type: str = "text"


class FieldMappingSuggestionRequest(BaseModel):
    form_fields: List[FormFieldDescriptor] = Field(default_factory=list)


class SubmissionEvent(BaseModel):
    submission_id: int = Field(ge=0)
    form_data: Dict[str, Any]

    @model_validator(mode="after")
    def require_form_id(self) -> "SubmissionEvent":
        if not self.form_data.get("form_id"):
            raise ValueError("form_data.form_id is required")
        return self


class LogEntryRead(ORMModel):
    id: int
    form_id: int
    submission_id: Optional[int]
    integration_id: str
    status: LogStatus
    message: Optional[str]
    data: Dict[str, Any]
    created_at: datetime


class LogStats(BaseModel):
    total: int
    by_status: Dict[str, int]
    by_date: Dict[str, int]
