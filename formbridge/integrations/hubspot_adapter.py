"""
HubSpot Adapter

Creates or updates CRM contacts through the HubSpot CRM v3 API using a
private app access token. A submission can also create a deal for the
contact, associate the contact with a company and enroll it in a workflow.
"""

from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

from formbridge.core.logging import get_logger
from formbridge.services.http_client import ApiResponse
from formbridge.services.settings_store import is_enabled_flag

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

logger = get_logger(__name__)

API_BASE_URL = "https://api.hubapi.com"

CONTACT_PROPERTIES = (
    ("email", "Email Address", "email", True),
    ("firstname", "First Name", "text", False),
    ("lastname", "Last Name", "text", False),
    ("phone", "Phone Number", "phone", False),
    ("company", "Company", "text", False),
    ("website", "Website", "url", False),
    ("address", "Address", "text", False),
    ("city", "City", "text", False),
    ("state", "State/Province", "text", False),
    ("zip", "ZIP/Postal Code", "text", False),
    ("country", "Country", "text", False),
)

# Mapped keys that describe the deal rather than the contact
DEAL_KEYS = ("dealname", "amount")

# v3 default association type for deal -> contact
DEAL_TO_CONTACT_ASSOCIATION = 3

# v3 default association type for contact -> company
CONTACT_TO_COMPANY_ASSOCIATION = 1

AUTO_MAP_RULES = [
    ("email", "email"),
    ("first name", "firstname"),
    ("last name", "lastname"),
    ("phone", "phone"),
    ("company", "company"),
    ("website", "website"),
    ("address", "address"),
    ("city", "city"),
    ("state", "state"),
    ("zip", "zip"),
    ("postal code", "zip"),
    ("country", "country"),
]


class HubspotAdapter(IntegrationAdapter, FormConfigurable, RemoteFieldSource, FieldMappable):
    """HubSpot CRM adapter."""

    descriptor = IntegrationDescriptor(
        id="hubspot",
        name="HubSpot",
        description="Create contacts and deals in HubSpot CRM",
        version="2.0.0",
        icon="hubspot",
        color="#FF7A59",
    )

    def get_auth_fields(self) -> List[AuthField]:
        return [
            ConfigField(
                id="access_token",
                label="Private App Access Token",
                type=FieldType.PASSWORD,
                required=True,
                description="Create one in HubSpot Settings > Integrations > Private Apps.",
            ),
            ConfigField(
                id="portal_id",
                label="Portal ID",
                type=FieldType.TEXT,
                required=True,
                description="Your HubSpot Portal ID. Found in your HubSpot account settings.",
            ),
        ]

    def get_available_actions(self) -> List[IntegrationAction]:
        return [
            IntegrationAction("create_contact", "Create Contact", "Create a new contact in HubSpot CRM"),
            IntegrationAction("update_contact", "Update Contact", "Update existing contact information"),
            IntegrationAction("create_deal", "Create Deal", "Create a new deal and associate with contact"),
            IntegrationAction("associate_company", "Associate Company", "Associate contact with existing company"),
            IntegrationAction("enroll_workflow", "Enroll in Workflow", "Enroll contact in HubSpot workflow"),
        ]

    def get_form_settings_fields(self) -> List[SettingsField]:
        return [
            ConfigField(
                id="deal_pipeline",
                label="Deal Pipeline",
                type=FieldType.SELECT,
                description="Pipeline new deals are created in",
            ),
            ConfigField(
                id="deal_stage",
                label="Deal Stage",
                type=FieldType.SELECT,
                description="Stage new deals start in",
            ),
            ConfigField(
                id="company_enabled",
                label="Associate Company",
                type=FieldType.CHECKBOX,
                default=False,
                description="Associate contact with company",
            ),
            ConfigField(
                id="company_id",
                label="Company",
                type=FieldType.SELECT,
                description="Company the contact is associated with",
            ),
            ConfigField(
                id="workflow_enabled",
                label="Enroll in Workflow",
                type=FieldType.CHECKBOX,
                default=False,
                description="Enroll contact in HubSpot workflow",
            ),
            ConfigField(
                id="workflow_id",
                label="Workflow",
                type=FieldType.SELECT,
                description="Workflow to enroll the contact in",
            ),
        ]

    def get_field_mapping(self, action: str) -> Dict[str, Dict[str, Any]]:
        mapping = {
            name: {"label": label, "required": required, "type": field_type, "hubspot_property": name}
            for name, label, field_type, required in CONTACT_PROPERTIES
        }
        if action == "create_deal":
            mapping["dealname"] = {"label": "Deal Name", "required": False, "type": "text", "hubspot_property": "dealname"}
            mapping["amount"] = {"label": "Deal Amount", "required": False, "type": "number", "hubspot_property": "amount"}
        return mapping

    def validate_settings(self, settings: Dict[str, Any]) -> List[str]:
        errors = super().validate_settings(settings)
        if settings.get("action") == "create_deal":
            if not settings.get("deal_pipeline"):
                errors.append("Deal pipeline is required")
            if not settings.get("deal_stage"):
                errors.append("Deal stage is required")
        if self._associates_company(settings) and not settings.get("company_id"):
            errors.append("Company is required")
        if self._enrolls_in_workflow(settings) and not settings.get("workflow_id"):
            errors.append("Workflow is required")
        return errors

    def get_auto_map_rules(self) -> List[Tuple[str, str]]:
        return AUTO_MAP_RULES

    async def check_connection(self, credentials: Dict[str, Any]) -> ConnectionResult:
        access_token = str(credentials.get("access_token") or "").strip()
        portal_id = str(credentials.get("portal_id") or "").strip()
        if not access_token or not portal_id:
            return ConnectionResult.failed("Access token and Portal ID are required")

        response = await self._request("GET", "/crm/v3/objects/contacts", access_token, params={"limit": 1})
        if response.success:
            return ConnectionResult.ok(data={"portal_id": portal_id, "api_version": "v3"})
        if response.status_code == 401:
            return ConnectionResult.failed(
                "Invalid access token. Please check your Private App Access Token.", status_code=response.status_code
            )
        if response.status_code == 403:
            return ConnectionResult.failed(
                "Access denied. Please check your Private App permissions.", status_code=response.status_code
            )
        if response.status_code == 0:
            return ConnectionResult.failed(response.error, status_code=0)
        return ConnectionResult.failed(
            f"API Error ({response.status_code}): {response.error}", status_code=response.status_code
        )

    async def deliver(
        self,
        mapped: Dict[str, Any],
        settings: Dict[str, Any],
        credentials: Dict[str, Any],
    ) -> SubmissionResult:
        access_token = str(credentials.get("access_token") or "")
        properties = {
            key: value for key, value in mapped.items() if key not in DEAL_KEYS and value not in (None, "")
        }

        existing_id = await self._find_contact(access_token, str(properties["email"]))
        if existing_id:
            response = await self._request(
                "PATCH", f"/crm/v3/objects/contacts/{existing_id}", access_token, {"properties": properties}
            )
        else:
            response = await self._request("POST", "/crm/v3/objects/contacts", access_token, {"properties": properties})
        self.raise_for_response(response, "Contact creation failed")

        contact = response.data if isinstance(response.data, dict) else {}
        contact_id = contact.get("id") or existing_id
        result_data: Dict[str, Any] = {"contact_id": contact_id, "updated": existing_id is not None}
        logger.info("hubspot.contact.upserted", contact_id=contact_id)

        message = "Contact created/updated successfully"
        if settings.get("action") == "create_deal":
            result_data["deal_id"] = await self._create_deal(access_token, contact_id, mapped, settings)
            message = "Contact and deal created successfully"
        if self._associates_company(settings):
            await self._associate_company(access_token, contact_id, str(settings["company_id"]))
            result_data["company_id"] = str(settings["company_id"])
        if self._enrolls_in_workflow(settings):
            await self._enroll_in_workflow(access_token, str(settings["workflow_id"]), str(properties["email"]))
            result_data["workflow_id"] = str(settings["workflow_id"])
        return SubmissionResult(success=True, message=message, data=result_data)

    async def _create_deal(
        self,
        access_token: str,
        contact_id: str,
        mapped: Dict[str, Any],
        settings: Dict[str, Any],
    ) -> Optional[str]:
        deal = {
            "properties": {
                "dealname": mapped.get("dealname") or "Form Submission Deal",
                "amount": mapped.get("amount") or "0",
                "pipeline": settings["deal_pipeline"],
                "dealstage": settings["deal_stage"],
            },
            "associations": [
                {
                    "to": {"id": contact_id},
                    "types": [
                        {"associationCategory": "HUBSPOT_DEFINED", "associationTypeId": DEAL_TO_CONTACT_ASSOCIATION}
                    ],
                }
            ],
        }
        response = await self._request("POST", "/crm/v3/objects/deals", access_token, deal)
        self.raise_for_response(response, "Deal creation failed")
        deal_id = response.data.get("id") if isinstance(response.data, dict) else None
        logger.info("hubspot.deal.created", contact_id=contact_id, deal_id=deal_id)
        return deal_id

    async def _associate_company(self, access_token: str, contact_id: str, company_id: str) -> None:
        association = {
            "types": [{"associationCategory": "HUBSPOT_DEFINED", "associationTypeId": CONTACT_TO_COMPANY_ASSOCIATION}]
        }
        response = await self._request(
            "PUT",
            f"/crm/v3/objects/contacts/{contact_id}/associations/companies/{company_id}",
            access_token,
            association,
        )
        self.raise_for_response(response, "Failed to associate contact with company")
        logger.info("hubspot.company.associated", contact_id=contact_id, company_id=company_id)

    async def _enroll_in_workflow(self, access_token: str, workflow_id: str, email: str) -> None:
        response = await self._request(
            "POST", f"/automation/v2/workflows/{workflow_id}/enrollments/contacts/{quote(email)}", access_token
        )
        self.raise_for_response(response, "Workflow enrollment failed")
        logger.info("hubspot.workflow.enrolled", workflow_id=workflow_id)

    @staticmethod
    def _associates_company(settings: Dict[str, Any]) -> bool:
        return settings.get("action") == "associate_company" or is_enabled_flag(settings.get("company_enabled"))

    @staticmethod
    def _enrolls_in_workflow(settings: Dict[str, Any]) -> bool:
        return settings.get("action") == "enroll_workflow" or is_enabled_flag(settings.get("workflow_enabled"))

    async def fetch_remote_fields(self, credentials: Dict[str, Any], settings: Dict[str, Any]) -> Dict[str, Any]:
        """Contact properties, deal pipelines, companies and workflows available in the portal."""
        access_token = str(credentials.get("access_token") or "")

        properties = await self._request("GET", "/crm/v3/properties/contacts", access_token)
        self.raise_for_response(properties, "Failed to load contact properties")
        pipelines = await self._request("GET", "/crm/v3/pipelines/deals", access_token)
        self.raise_for_response(pipelines, "Failed to load deal pipelines")
        companies = await self._request(
            "GET", "/crm/v3/objects/companies", access_token, params={"limit": 100, "properties": "name,domain"}
        )
        self.raise_for_response(companies, "Failed to load companies")
        workflows = await self._request("GET", "/automation/v3/workflows", access_token)
        self.raise_for_response(workflows, "Failed to load workflows")

        return {
            "properties": [
                {"name": entry.get("name"), "label": entry.get("label"), "type": entry.get("type")}
                for entry in (properties.data or {}).get("results", [])
                if not entry.get("hidden")
            ],
            "pipelines": [
                {
                    "id": pipeline.get("id"),
                    "label": pipeline.get("label"),
                    "stages": [
                        {"id": stage.get("id"), "label": stage.get("label")}
                        for stage in pipeline.get("stages", [])
                    ],
                }
                for pipeline in (pipelines.data or {}).get("results", [])
            ],
            "companies": [
                {
                    "id": company.get("id"),
                    "name": (company.get("properties") or {}).get("name") or "",
                    "domain": (company.get("properties") or {}).get("domain") or "",
                }
                for company in (companies.data or {}).get("results", [])
            ],
            "workflows": [
                {"id": workflow.get("id"), "name": workflow.get("name"), "enabled": bool(workflow.get("enabled"))}
                for workflow in (workflows.data or {}).get("workflows", [])
            ],
        }

    async def _find_contact(self, access_token: str, email: str) -> Optional[str]:
        search = {
            "filterGroups": [{"filters": [{"propertyName": "email", "operator": "EQ", "value": email}]}],
            "properties": ["email", "firstname", "lastname", "phone"],
        }
        response = await self._request("POST", "/crm/v3/objects/contacts/search", access_token, search)
        if not response.success or not isinstance(response.data, dict):
            return None
        results = response.data.get("results") or []
        return results[0].get("id") if results else None

    async def _request(
        self,
        method: str,
        path: str,
        access_token: str,
        data: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> ApiResponse:
        headers = self.http.bearer_header(access_token)
        return await self.http.request(method, f"{API_BASE_URL}{path}", headers=headers, json=data, params=params)
