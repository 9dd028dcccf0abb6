# ABOUTME: Read-only ArgoCD API client with retry logic and error handling
# ABOUTME: Lists registered clusters and reads application sync/health status

"""
ArgoCD API client with retry logic and structured error handling.

=============================================================================
WHAT IS THIS FILE?
=============================================================================

This module talks to the ArgoCD controller running on the HUB cluster. The
linter only ever READS from it:

    GET /api/v1/clusters               - Clusters registered as deploy targets
    GET /api/v1/applications/{name}    - One application's sync/health status

There is deliberately no method that writes. Registering a spoke, syncing or
deleting applications stay with the argocd CLI and the deployment pipeline.

Authentication is via Bearer token in the Authorization header:
    Authorization: Bearer <token>

Errors come back as JSON:
    {"message": "error description", "error": "additional details"}

=============================================================================
CONTEXT MANAGER
=============================================================================

    async with ArgocdClient(controller) as client:
        clusters = await client.list_clusters()

__aenter__ creates the httpx connection pool, __aexit__ closes it even when
the body raises.

=============================================================================
TIMEOUTS AND RETRIES
=============================================================================

Every request is bounded by the httpx timeout. A request that times out is
retried (tenacity, exponential backoff, 3 attempts) before the
httpx.TimeoutException reaches the caller. Everything above this layer
(polling a cluster until it connects, the caller's deadline) is the prober's
job, not the client's.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

if TYPE_CHECKING:
    from hubspoke_lint.config import ControllerInstance

logger = structlog.get_logger(__name__)

# =============================================================================
# SECRET MASKING
# =============================================================================
#
# Cluster listings embed credentials in "config" (bearerToken, TLS keys,
# exec-provider arguments). They must never end up in a report or a log line.

SECRET_PATTERNS = [
    (re.compile(r"(token[\"']?\s*[:=]\s*[\"']?)[^\"'\s,}]+", re.I), r"\1***MASKED***"),
    (re.compile(r"(password[\"']?\s*[:=]\s*[\"']?)[^\"'\s,}]+", re.I), r"\1***MASKED***"),
    (re.compile(r"(secret[\"']?\s*[:=]\s*[\"']?)[^\"'\s,}]+", re.I), r"\1***MASKED***"),
    (re.compile(r"(bearer\s+)[^\s\"']+", re.I), r"\1***MASKED***"),
]

SENSITIVE_KEYS = frozenset(
    [
        "token",
        "bearertoken",
        "password",
        "secret",
        "authorization",
        "keydata",
        "certdata",
        "cadata",
        "credentials",
    ]
)


# =============================================================================
# ERRORS
# =============================================================================


class ArgocdError(Exception):
    """
    Structured ArgoCD API error.

    Keeps the HTTP status so callers can tell "not found" (404) from
    "controller broken" (5xx) or "token rejected" (401/403).
    """

    def __init__(self, code: int, message: str, details: str | None = None) -> None:
        self.code = code
        self.message = message
        self.details = details
        super().__init__(str(self))

    def __str__(self) -> str:
        base = f"ArgoCD API error ({self.code}): {self.message}"
        if self.details:
            base += f" - {self.details}"
        return base

    @property
    def is_not_found(self) -> bool:
        return self.code == 404


# =============================================================================
# RESPONSE MODELS
# =============================================================================


@dataclass
class RegisteredCluster:
    """
    A cluster registered with ArgoCD.

    ArgoCD reports the connection state in two places depending on version:

        {"name": "...", "server": "...", "connectionState": {"status": "Successful"}}
        {"name": "...", "server": "...", "info": {"connectionState": {"status": "Failed"}}}

    Status values: "Successful", "Failed", "Unknown". A cluster ArgoCD has not
    tried to reach yet (no application targets it) often has no state at all.
    """

    name: str
    server: str
    connection_status: str = "Unknown"
    connection_message: str = ""

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> RegisteredCluster:
        state = data.get("connectionState") or data.get("info", {}).get("connectionState") or {}
        return cls(
            name=data.get("name", ""),
            server=data.get("server", ""),
            connection_status=state.get("status") or "Unknown",
            connection_message=state.get("message", ""),
        )


@dataclass
class ApplicationStatus:
    """Sync and health status of a deployed Application."""

    name: str
    destination_server: str
    destination_name: str
    sync_status: str
    health_status: str
    conditions: list[dict[str, Any]] | None = None

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> ApplicationStatus:
        metadata = data.get("metadata", {})
        destination = data.get("spec", {}).get("destination", {})
        status = data.get("status", {})
        return cls(
            name=metadata.get("name", ""),
            destination_server=destination.get("server", ""),
            destination_name=destination.get("name", ""),
            sync_status=status.get("sync", {}).get("status", "Unknown"),
            health_status=status.get("health", {}).get("status", "Unknown"),
            conditions=status.get("conditions"),
        )


# =============================================================================
# CLIENT
# =============================================================================


class ArgocdClient:
    """
    Async, read-only ArgoCD API client.

    LIFECYCLE:
    ----------
    1. Create client: client = ArgocdClient(controller)
    2. Enter context: async with client: ...
    3. Use client: await client.list_clusters()
    4. Exit context: HTTP connections cleaned up
    """

    def __init__(
        self,
        instance: ControllerInstance,
        timeout: float = 30.0,
        mask_secrets: bool = True,
    ) -> None:
        """
        Initialize ArgoCD client.

        Args:
            instance: Controller configuration (URL, token, TLS)
            timeout: HTTP request timeout in seconds
            mask_secrets: Whether to mask sensitive data in responses
        """
        self._instance = instance
        self._timeout = timeout
        self._mask_secrets = mask_secrets
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> ArgocdClient:
        self._client = httpx.AsyncClient(
            base_url=f"{self._instance.url}/api/v1",
            headers={
                "Authorization": f"Bearer {self._instance.token.get_secret_value()}",
                "Content-Type": "application/json",
            },
            timeout=self._timeout,
            verify=not self._instance.insecure,
        )
        return self

    async def __aexit__(self, *args: object) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    def _mask_response(self, data: Any) -> Any:
        """
        Mask sensitive values in response data.

        Walks dicts and lists recursively; keys in SENSITIVE_KEYS are replaced
        wholesale, strings are scrubbed with SECRET_PATTERNS.
        """
        if not self._mask_secrets:
            return data

        if isinstance(data, str):
            masked_str = data
            for pattern, replacement in SECRET_PATTERNS:
                masked_str = pattern.sub(replacement, masked_str)
            return masked_str

        if isinstance(data, dict):
            masked_dict: dict[str, Any] = {}
            for k, v in data.items():
                if k.lower() in SENSITIVE_KEYS:
                    masked_dict[k] = "***MASKED***"
                else:
                    masked_dict[k] = self._mask_response(v)
            return masked_dict

        if isinstance(data, list):
            return [self._mask_response(item) for item in data]

        return data

    @retry(
        retry=retry_if_exception_type(httpx.TimeoutException),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Make HTTP request to ArgoCD API.

        Only timeouts are retried; a 404 or 500 is an answer, not a hiccup.
        reraise=True hands the original httpx.TimeoutException to the caller
        once attempts are exhausted, instead of tenacity's RetryError.

        Raises:
            ArgocdError: On API error (4xx, 5xx)
            httpx.TimeoutException: On request timeout (after retries)
            httpx.TransportError: On connection failure
            RuntimeError: If client not initialized (forgot async with)
        """
        if not self._client:
            raise RuntimeError("Client not initialized. Use 'async with' context manager.")

        log = logger.bind(method=method, path=path, instance=self._instance.name)
        log.debug("Making ArgoCD API request")

        response = await self._client.request(method, path, params=params)

        if response.status_code >= 400:
            error_body = response.text
            log.warning("ArgoCD API error", status=response.status_code, body=error_body[:200])

            message = f"HTTP {response.status_code}"
            details = None
            try:
                error_json = response.json()
                message = error_json.get("message", message)
                details = error_json.get("error")
            except ValueError:
                details = error_body[:200] if error_body else None

            raise ArgocdError(
                code=response.status_code,
                message=message,
                details=details,
            )

        result = response.json() if response.content else {}
        masked = self._mask_response(result)
        return masked if isinstance(masked, dict) else {}

    async def list_clusters(self) -> list[RegisteredCluster]:
        """
        List registered clusters.

        ArgoCD API: GET /api/v1/clusters

        The hub itself appears as "in-cluster" with server
        https://kubernetes.default.svc; every spoke appears under the name it
        was registered with.
        """
        data = await self._request("GET", "/clusters")
        items = data.get("items") or []
        return [RegisteredCluster.from_api_response(item) for item in items]

    async def get_application(self, name: str) -> ApplicationStatus:
        """
        Get application status by name.

        ArgoCD API: GET /api/v1/applications/{name}

        Raises:
            ArgocdError: If application not found (404)
        """
        data = await self._request("GET", f"/applications/{name}")
        return ApplicationStatus.from_api_response(data)
