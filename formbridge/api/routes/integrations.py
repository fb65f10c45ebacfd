from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse

from formbridge.api.dependencies.container import get_integration_service
from formbridge.models.log import LogStatus
from formbridge.schemas.common import OperationResult
from formbridge.schemas.integration import (
    ConnectionTestRequest,
    DataType,
    FieldMappingSuggestionRequest,
    IntegrationSummary,
    LogEntryRead,
    LogStats,
    SaveSettingsRequest,
    SubmissionEvent,
)
from formbridge.services.integration_service import IntegrationService


router = APIRouter(prefix="/integrations", tags=["integrations"])


@router.get("", response_model=list[IntegrationSummary])
async def list_integrations_endpoint(
    service: IntegrationService = Depends(get_integration_service),
) -> list[IntegrationSummary]:
    return [IntegrationSummary.model_validate(item) for item in await service.list_integrations()]


@router.get("/logs", response_model=list[LogEntryRead])
async def list_logs_endpoint(
    integration_id: Optional[str] = None,
    form_id: Optional[int] = None,
    log_status: Optional[LogStatus] = Query(default=None, alias="status"),
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    service: IntegrationService = Depends(get_integration_service),
) -> list[LogEntryRead]:
    entries = await service.get_logs(
        integration_id=integration_id,
        form_id=form_id,
        status=log_status.value if log_status else None,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
        offset=offset,
    )
    return [LogEntryRead.model_validate(entry) for entry in entries]


@router.get("/logs/stats", response_model=LogStats)
async def log_stats_endpoint(
    integration_id: Optional[str] = None,
    days: int = Query(default=30),
    service: IntegrationService = Depends(get_integration_service),
) -> LogStats:
    return LogStats.model_validate(await service.get_stats(integration_id, days))


@router.post("/submissions", status_code=status.HTTP_202_ACCEPTED)
async def dispatch_submission_endpoint(
    payload: SubmissionEvent,
    service: IntegrationService = Depends(get_integration_service),
) -> dict[str, Any]:
    report = await service.handle_submission(payload.submission_id, payload.form_data)
    return report.to_dict()


@router.get("/{integration_id}", response_model=IntegrationSummary)
async def get_integration_endpoint(
    integration_id: str,
    service: IntegrationService = Depends(get_integration_service),
) -> IntegrationSummary:
    return IntegrationSummary.model_validate(await service.get_integration(integration_id))


@router.post("/{integration_id}/test-connection", response_model=OperationResult)
async def test_connection_endpoint(
    integration_id: str,
    payload: ConnectionTestRequest,
    service: IntegrationService = Depends(get_integration_service),
) -> OperationResult:
    return await service.test_connection(integration_id, payload.credentials)


@router.post("/{integration_id}/settings", response_model=OperationResult)
async def save_settings_endpoint(
    integration_id: str,
    payload: SaveSettingsRequest,
    service: IntegrationService = Depends(get_integration_service),
) -> OperationResult | JSONResponse:
    result = await service.save_settings(
        integration_id,
        payload.settings_type,
        payload.settings,
        form_id=payload.form_id,
    )
    if result.errors:
        return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=result.model_dump())
    return result


@router.get("/{integration_id}/data/{data_type}", response_model=OperationResult)
async def get_integration_data_endpoint(
    integration_id: str,
    data_type: DataType,
    action: Optional[str] = None,
    form_id: Optional[int] = None,
    service: IntegrationService = Depends(get_integration_service),
) -> OperationResult:
    return await service.get_integration_data(integration_id, data_type, action=action, form_id=form_id)


@router.post("/{integration_id}/field-mapping/suggest", response_model=OperationResult)
async def suggest_field_mapping_endpoint(
    integration_id: str,
    payload: FieldMappingSuggestionRequest,
    service: IntegrationService = Depends(get_integration_service),
) -> OperationResult:
    form_fields = [form_field.model_dump() for form_field in payload.form_fields]
    return await service.suggest_field_mapping(integration_id, form_fields)
