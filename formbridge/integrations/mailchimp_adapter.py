"""
Mailchimp Adapter

Adds, updates or unsubscribes audience members through the Mailchimp
Marketing API v3. The datacenter is encoded in the API key suffix.
"""

import hashlib
import re
from typing import Any, Dict, List, Optional, Tuple

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

API_KEY_PATTERN = re.compile(r"^[a-f0-9]{32}-[a-z0-9]+$")

# Mapping target -> Mailchimp merge tag
MERGE_TAGS = {
    "email": "EMAIL",
    "first_name": "FNAME",
    "last_name": "LNAME",
}

AUTO_MAP_RULES = [
    ("email", "email"),
    ("first name", "first_name"),
    ("fname", "first_name"),
    ("last name", "last_name"),
    ("lname", "last_name"),
]

CONNECTION_ERRORS = {
    401: "Invalid API key. Please check your Mailchimp API key.",
    403: "API key does not have sufficient permissions.",
    404: "Mailchimp API endpoint not found. Check your datacenter.",
}


def extract_datacenter(api_key: str) -> Optional[str]:
    if "-" not in api_key:
        return None
    return api_key.rsplit("-", 1)[1] or None


def subscriber_hash(email: str) -> str:
    return hashlib.md5(email.strip().lower().encode("utf-8")).hexdigest()


class MailchimpAdapter(IntegrationAdapter, FormConfigurable, RemoteFieldSource, FieldMappable):
    """Mailchimp email marketing adapter."""

    descriptor = IntegrationDescriptor(
        id="mailchimp",
        name="Mailchimp",
        description="Add form submitters to Mailchimp audiences",
        version="2.0.0",
        icon="mailchimp",
        color="#FFE01B",
    )

    def get_auth_fields(self) -> List[AuthField]:
        return [
            ConfigField(
                id="api_key",
                label="API Key",
                type=FieldType.PASSWORD,
                required=True,
                description="Your Mailchimp API key. Find it under Account > Extras > API keys.",
                placeholder="Enter your Mailchimp API key...",
            )
        ]

    def get_available_actions(self) -> List[IntegrationAction]:
        return [
            IntegrationAction("subscribe", "Subscribe to Audience", "Add contact to a Mailchimp audience/list"),
            IntegrationAction("update_subscriber", "Update Subscriber", "Update existing subscriber information"),
            IntegrationAction("unsubscribe", "Unsubscribe", "Remove subscriber from audience"),
        ]

    def get_form_settings_fields(self) -> List[SettingsField]:
        return [
            ConfigField(
                id="audience_id",
                label="Audience",
                type=FieldType.SELECT,
                required=True,
                description="Select the Mailchimp audience to add subscribers to",
            ),
            ConfigField(
                id="double_optin",
                label="Double Opt-in",
                type=FieldType.CHECKBOX,
                default=True,
                description="Require subscribers to confirm their email address",
            ),
            ConfigField(
                id="update_existing",
                label="Update Existing",
                type=FieldType.CHECKBOX,
                default=False,
                description="Update existing subscribers instead of creating duplicates",
            ),
            ConfigField(
                id="tags",
                label="Tags",
                type=FieldType.TEXT,
                description="Comma-separated list of tags to add to subscribers",
                placeholder="tag1, tag2, tag3",
            ),
        ]

    def get_field_mapping(self, action: str) -> Dict[str, Dict[str, Any]]:
        return {
            "email": {"label": "Email Address", "required": True, "type": "email", "merge_field": "EMAIL"},
            "first_name": {"label": "First Name", "required": False, "type": "text", "merge_field": "FNAME"},
            "last_name": {"label": "Last Name", "required": False, "type": "text", "merge_field": "LNAME"},
        }

    def get_default_settings(self) -> Dict[str, Any]:
        defaults = super().get_default_settings()
        defaults.update({"double_optin": True, "update_existing": False, "tags": ""})
        return defaults

    def validate_settings(self, settings: Dict[str, Any]) -> List[str]:
        errors = super().validate_settings(settings)
        if not settings.get("audience_id"):
            errors.append("Audience ID is required")
        return errors

    def get_auto_map_rules(self) -> List[Tuple[str, str]]:
        return AUTO_MAP_RULES

    async def check_connection(self, credentials: Dict[str, Any]) -> ConnectionResult:
        api_key = str(credentials.get("api_key") or "").strip()
        if not api_key:
            return ConnectionResult.failed("API key is required")
        if not API_KEY_PATTERN.match(api_key):
            return ConnectionResult.failed(
                "Invalid API key format. Expected format: xxxxxxxxxxxxxxxxxxxxxxxxxxxxxxxx-xxx"
            )
        datacenter = extract_datacenter(api_key)

        ping = await self._request("GET", "/ping", api_key)
        if not ping.success:
            return ConnectionResult.failed(
                CONNECTION_ERRORS.get(ping.status_code, ping.error), status_code=ping.status_code
            )

        account = await self._request("GET", "/", api_key)
        if not account.success:
            return ConnectionResult.failed(
                account.error or "Failed to get account information", status_code=account.status_code
            )
        body = account.data if isinstance(account.data, dict) else {}
        return ConnectionResult.ok(
            data={
                "account_name": body.get("account_name", ""),
                "email": body.get("email", ""),
                "total_subscribers": body.get("total_subscribers", 0),
                "datacenter": datacenter,
            }
        )

    async def deliver(
        self,
        mapped: Dict[str, Any],
        settings: Dict[str, Any],
        credentials: Dict[str, Any],
    ) -> SubmissionResult:
        api_key = str(credentials.get("api_key") or "")
        audience_id = settings["audience_id"]
        email = str(mapped.get("email") or "").strip()
        action = settings.get("action") or "subscribe"

        member: Dict[str, Any] = {"email_address": email, "status_if_new": self._member_status(action, settings)}
        # Existing members keep their status unless asked otherwise.
        if action == "unsubscribe" or (action == "subscribe" and is_enabled_flag(settings.get("update_existing"))):
            member["status"] = member["status_if_new"]

        merge_fields = {
            MERGE_TAGS.get(target, target.upper()): value
            for target, value in mapped.items()
            if target != "email" and value not in (None, "")
        }
        if merge_fields:
            member["merge_fields"] = merge_fields

        tags = [tag.strip() for tag in str(settings.get("tags") or "").split(",") if tag.strip()]
        if tags:
            member["tags"] = tags

        member_hash = subscriber_hash(email)
        response = await self._request("PUT", f"/lists/{audience_id}/members/{member_hash}", api_key, member)
        self.raise_for_response(response, "Subscription failed")

        body = response.data if isinstance(response.data, dict) else {}
        logger.info("mailchimp.member.upserted", audience_id=audience_id, member_id=body.get("id"), action=action)
        return SubmissionResult(
            success=True,
            message="Successfully subscribed to Mailchimp!" if action == "subscribe" else "Mailchimp member updated",
            data={"member_id": body.get("id"), "status": body.get("status"), "audience_id": audience_id},
        )

    async def fetch_remote_fields(self, credentials: Dict[str, Any], settings: Dict[str, Any]) -> Dict[str, Any]:
        """Audiences for the account and, when an audience is chosen, its merge fields."""
        api_key = str(credentials.get("api_key") or "")
        if not extract_datacenter(api_key):
            return {"audiences": [], "merge_fields": []}

        lists = await self._request("GET", "/lists", api_key, params={"count": 100})
        self.raise_for_response(lists, "Failed to load audiences")
        audiences = [
            {
                "id": entry.get("id"),
                "name": entry.get("name"),
                "member_count": (entry.get("stats") or {}).get("member_count", 0),
            }
            for entry in (lists.data or {}).get("lists", [])
        ]

        merge_fields: List[Dict[str, Any]] = []
        audience_id = settings.get("audience_id")
        if audience_id:
            fields = await self._request("GET", f"/lists/{audience_id}/merge-fields", api_key, params={"count": 100})
            self.raise_for_response(fields, "Failed to load merge fields")
            merge_fields = [
                {
                    "tag": entry.get("tag"),
                    "name": entry.get("name"),
                    "type": entry.get("type"),
                    "required": bool(entry.get("required")),
                }
                for entry in (fields.data or {}).get("merge_fields", [])
            ]
        return {"audiences": audiences, "merge_fields": merge_fields}

    @staticmethod
    def _member_status(action: str, settings: Dict[str, Any]) -> str:
        if action == "unsubscribe":
            return "unsubscribed"
        return "pending" if is_enabled_flag(settings.get("double_optin", True)) else "subscribed"

    async def _request(
        self,
        method: str,
        endpoint: str,
        api_key: str,
        data: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> ApiResponse:
        url = f"https://{extract_datacenter(api_key)}.api.mailchimp.com/3.0{endpoint}"
        headers = self.http.basic_auth_header("user", api_key)
        return await self.http.request(method, url, headers=headers, json=data, params=params)
