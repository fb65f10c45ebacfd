"""
Outbound HTTP client shared by every integration adapter.

Every call returns an ApiResponse. Non-2xx answers and network failures
are reported through the same shape and are never raised to the caller.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

import httpx

from formbridge.core.config import get_settings
from formbridge.core.logging import get_logger

logger = get_logger(__name__)

SUPPORTED_METHODS = frozenset({"GET", "POST", "PUT", "PATCH", "DELETE"})

STATUS_MESSAGES: Dict[int, str] = {
    400: "Bad Request - Invalid parameters",
    401: "Unauthorized - Invalid credentials",
    403: "Forbidden - Access denied",
    404: "Not Found - Resource not found",
    405: "Method Not Allowed",
    422: "Unprocessable Entity - Validation failed",
    429: "Too Many Requests - Rate limit exceeded",
    500: "Internal Server Error",
    502: "Bad Gateway",
    503: "Service Unavailable",
    504: "Gateway Timeout",
}


@dataclass
class ApiResponse:
    """Normalized result of one outbound request."""
    success: bool
    status_code: int = 0
    data: Any = None
    headers: Dict[str, str] = field(default_factory=dict)
    error: Optional[str] = None
    error_code: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "success": self.success,
            "status_code": self.status_code,
            "data": self.data,
        }
        if self.error is not None:
            result["error"] = self.error
            result["error_code"] = self.error_code
        return result


def extract_error_message(status_code: int, body: Any) -> str:
    """Best-effort human readable error for a failed response."""
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, str) and error:
            return error
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        for key in ("message", "detail", "title"):
            if body.get(key):
                return str(body[key])
    return STATUS_MESSAGES.get(status_code, f"HTTP Error {status_code}")


def _describe_transport_error(exc: httpx.HTTPError) -> str:
    text = str(exc) or exc.__class__.__name__
    if isinstance(exc, httpx.TimeoutException):
        return f"Connection timeout: {text}"
    if isinstance(exc, httpx.ConnectError):
        lowered = text.lower()
        if "ssl" in lowered or "certificate" in lowered:
            return f"SSL certificate verification failed: {text}"
        if "resolve" in lowered or "name or service" in lowered:
            return f"DNS resolution failed: {text}"
        return f"Connection failed: {text}"
    return f"Request failed: {text}"


class HttpRequestClient:
    """Thin wrapper around httpx that normalizes success and error shapes."""

    def __init__(
        self,
        timeout: Optional[float] = None,
        user_agent: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.timeout = timeout if timeout is not None else settings.http_timeout_seconds
        self.user_agent = user_agent or settings.http_user_agent
        self._transport = transport

    def set_timeout(self, timeout: float) -> None:
        self.timeout = timeout

    def set_user_agent(self, user_agent: str) -> None:
        self.user_agent = user_agent

    @staticmethod
    def basic_auth_header(username: str, password: str) -> Dict[str, str]:
        token = base64.b64encode(f"{username}:{password}".encode()).decode()
        return {"Authorization": f"Basic {token}"}

    @staticmethod
    def bearer_header(token: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {token}"}

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        json: Any = None,
        params: Optional[Mapping[str, Any]] = None,
        content: Optional[str | bytes] = None,
        timeout: Optional[float] = None,
    ) -> ApiResponse:
        method = method.upper()
        if method not in SUPPORTED_METHODS:
            return ApiResponse(success=False, error=f"Unsupported HTTP method: {method}", error_code="unsupported_method")

        request_headers = {
            "User-Agent": self.user_agent,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if headers:
            request_headers.update(headers)

        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=timeout or self.timeout) as client:
                response = await client.request(
                    method,
                    url,
                    headers=request_headers,
                    json=json,
                    params=params,
                    content=content,
                )
        except httpx.HTTPError as exc:
            message = _describe_transport_error(exc)
            logger.warning("http.request.transport_error", method=method, url=url, error=message)
            return ApiResponse(success=False, status_code=0, error=message, error_code=exc.__class__.__name__)

        return self._handle_response(response, method, url)

    def _handle_response(self, response: httpx.Response, method: str, url: str) -> ApiResponse:
        try:
            body: Any = response.json()
        except ValueError:
            body = response.text

        result = ApiResponse(
            success=200 <= response.status_code < 300,
            status_code=response.status_code,
            data=body,
            headers=dict(response.headers),
        )
        if not result.success:
            result.error = extract_error_message(response.status_code, body)
            result.error_code = str(response.status_code)
            logger.info("http.request.failed", method=method, url=url, status_code=response.status_code)
        return result

    async def get(self, url: str, **kwargs: Any) -> ApiResponse:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, data: Optional[Dict[str, Any]] = None, **kwargs: Any) -> ApiResponse:
        return await self.request("POST", url, json=data or None, **kwargs)

    async def put(self, url: str, data: Optional[Dict[str, Any]] = None, **kwargs: Any) -> ApiResponse:
        return await self.request("PUT", url, json=data or None, **kwargs)

    async def patch(self, url: str, data: Optional[Dict[str, Any]] = None, **kwargs: Any) -> ApiResponse:
        return await self.request("PATCH", url, json=data or None, **kwargs)

    async def delete(self, url: str, **kwargs: Any) -> ApiResponse:
        return await self.request("DELETE", url, **kwargs)
