"""Routes one form submission to every enabled integration of that form."""

from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from formbridge.core.config import get_settings
from formbridge.core.errors import IntegrationError
from formbridge.core.logging import get_logger
from formbridge.integrations.registry import IntegrationRegistry
from formbridge.services.activity_logger import ActivityLogger
from formbridge.services.settings_store import SettingsStore

logger = get_logger(__name__)


class DispatchStatus(str, Enum):
    DELIVERED = "delivered"
    NOT_FOUND = "not_found"
    DISABLED = "disabled"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass
class DispatchOutcome:
    integration_id: str
    status: DispatchStatus
    message: str = ""
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class DispatchReport:
    """Per-integration outcomes of one dispatch, so a caller can requeue failures."""
    submission_id: int
    form_id: int
    outcomes: List[DispatchOutcome] = field(default_factory=list)

    @property
    def delivered(self) -> List[str]:
        return [o.integration_id for o in self.outcomes if o.status is DispatchStatus.DELIVERED]

    @property
    def failed(self) -> List[str]:
        return [
            o.integration_id
            for o in self.outcomes
            if o.status in (DispatchStatus.FAILED, DispatchStatus.TIMED_OUT)
        ]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "submission_id": self.submission_id,
            "form_id": self.form_id,
            "outcomes": [{**asdict(o), "status": o.status.value} for o in self.outcomes],
        }


class SubmissionDispatcher:
    """
    Forward a submission to each enabled integration, isolating failures.

    A missing or disabled adapter is skipped and reported. An adapter
    that raises or runs past the timeout is recorded as failed and the
    remaining adapters still run. dispatch() itself never raises for adapter failures.
    """

    def __init__(
        self,
        registry: IntegrationRegistry,
        settings_store: SettingsStore,
        activity_logger: Optional[ActivityLogger] = None,
        timeout: Optional[float] = None,
        concurrent: Optional[bool] = None,
    ):
        settings = get_settings()
        self.registry = registry
        self.settings_store = settings_store
        self.activity_logger = activity_logger
        self.timeout = settings.dispatch_timeout_seconds if timeout is None else timeout
        self.concurrent = settings.dispatch_concurrently if concurrent is None else concurrent

    async def dispatch(self, submission_id: int, form_data: Dict[str, Any]) -> DispatchReport:
        form_id = int(form_data.get("form_id") or 0)
        report = DispatchReport(submission_id=submission_id, form_id=form_id)
        if not form_id:
            logger.warning("dispatch.missing_form_id", submission_id=submission_id)
            return report

        form_settings = await self.settings_store.get_all_for_entity(form_id)
        jobs = [
            self._run_one(integration_id, settings, submission_id, form_data)
            for integration_id, settings in form_settings.items()
        ]
        if self.concurrent:
            report.outcomes = list(await asyncio.gather(*jobs))
        else:
            for job in jobs:
                report.outcomes.append(await job)

        logger.info(
            "dispatch.completed",
            submission_id=submission_id,
            form_id=form_id,
            delivered=len(report.delivered),
            failed=len(report.failed),
        )
        return report

    async def _run_one(
        self,
        integration_id: str,
        settings: Dict[str, Any],
        submission_id: int,
        form_data: Dict[str, Any],
    ) -> DispatchOutcome:
        adapter = self.registry.get(integration_id)
        if adapter is None:
            logger.info("dispatch.adapter_missing", integration_id=integration_id, submission_id=submission_id)
            return DispatchOutcome(integration_id, DispatchStatus.NOT_FOUND, f"Integration not found: {integration_id}")

        try:
            if not await adapter.is_enabled(settings):
                return DispatchOutcome(integration_id, DispatchStatus.DISABLED, "Integration not enabled")
            submission = adapter.process_submission(submission_id, form_data, settings)
            if self.timeout:
                result = await asyncio.wait_for(submission, timeout=self.timeout)
            else:
                result = await submission
        except asyncio.TimeoutError:
            message = f"Timed out after {self.timeout:g}s"
            logger.warning("dispatch.adapter_timeout", integration_id=integration_id, submission_id=submission_id)
            await self._record_failure(integration_id, form_data, submission_id, message)
            return DispatchOutcome(integration_id, DispatchStatus.TIMED_OUT, message)
        except IntegrationError as exc:
            # Adapters write their own activity entry before raising these.
            logger.warning(
                "dispatch.adapter_failed",
                integration_id=integration_id,
                submission_id=submission_id,
                error=exc.message,
                error_type=type(exc).__name__,
            )
            return DispatchOutcome(integration_id, DispatchStatus.FAILED, exc.message)
        except Exception as exc:
            logger.warning(
                "dispatch.adapter_crashed",
                integration_id=integration_id,
                submission_id=submission_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            await self._record_failure(integration_id, form_data, submission_id, str(exc))
            return DispatchOutcome(integration_id, DispatchStatus.FAILED, str(exc) or type(exc).__name__)

        if not result.success:
            logger.warning(
                "dispatch.adapter_failed",
                integration_id=integration_id,
                submission_id=submission_id,
                error=result.message,
            )
            return DispatchOutcome(integration_id, DispatchStatus.FAILED, result.message, result.data)
        return DispatchOutcome(integration_id, DispatchStatus.DELIVERED, result.message, result.data)

    async def _record_failure(
        self,
        integration_id: str,
        form_data: Dict[str, Any],
        submission_id: int,
        message: str,
    ) -> None:
        if self.activity_logger is None:
            return
        try:
            await self.activity_logger.log_integration(
                integration_id=integration_id,
                form_id=int(form_data.get("form_id") or 0),
                status="error",
                message=f"Submission processing failed: {message}",
                submission_id=submission_id,
            )
        except Exception as exc:
            logger.error("dispatch.activity_log_failed", integration_id=integration_id, error=str(exc))
