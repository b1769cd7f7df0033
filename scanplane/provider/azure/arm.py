"""Minimal async Azure Resource Manager REST client.

Covers what the scanner lifecycle needs: authenticated GET/PUT/PATCH/DELETE/
POST against management.azure.com, nextLink paging, single-request checks
of long-running operations, and classification of request failures into
provider errors.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Protocol

import httpx

from scanplane.consts import (
    AZURE_HTTP_TIMEOUT,
    AZURE_IMDS_API_VERSION,
    AZURE_IMDS_TOKEN_URL,
    AZURE_LRO_POLL_INTERVAL,
    AZURE_MANAGEMENT_RESOURCE,
    AZURE_MANAGEMENT_URL,
)
from scanplane.errors import FatalError, ProviderError, ResourceNotFoundError

logger = logging.getLogger(__name__)

# Refresh tokens this many seconds before they expire
TOKEN_REFRESH_MARGIN_SECONDS = 300


def classify_request_error(err: Exception, action: str) -> ProviderError:
    """Classify a failed Azure request.

    - HTTP 404: ResourceNotFoundError (the ensure steps treat it as control flow)
    - other 4xx: FatalError, retrying the same request will never help
    - 5xx and transport failures: plain ProviderError, retry with backoff
    - anything else: FatalError

    Args:
        err: Exception raised while sending the request
        action: What was being done, e.g. "getting snapshot snapshot-123"

    Returns:
        Provider error to raise in place of err
    """
    if isinstance(err, httpx.HTTPStatusError):
        status = err.response.status_code
        details = {"status_code": status, "body": err.response.text[:500]}
        if status == 404:
            return ResourceNotFoundError(f"not found while {action}", details=details)
        if 400 <= status < 500:
            return FatalError(
                f"error from azure while {action}: HTTP {status}", details=details
            )
        return ProviderError(
            f"retriable error from azure while {action}: HTTP {status}", details=details
        )
    if isinstance(err, httpx.TransportError):
        return ProviderError(f"retriable error from azure while {action}: {err}")
    return FatalError(f"unexpected error from azure while {action}: {err}")


@dataclass
class LongRunningOperation:
    """State of an ARM long-running operation after one request."""

    done: bool
    result: dict[str, Any] = field(default_factory=dict)
    location: str | None = None
    retry_after: float = AZURE_LRO_POLL_INTERVAL


def retry_after_seconds(value: str | None, default: float) -> float:
    """Parse a Retry-After header given as delay seconds or as an HTTP-date."""
    if not value:
        return default
    try:
        return max(float(value), 0.0)
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        logger.debug(f"Ignoring unparseable Retry-After header: {value}")
        return default
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max((when - datetime.now(timezone.utc)).total_seconds(), 0.0)


class TokenCredential(Protocol):
    """Source of bearer tokens for an Azure resource (audience)."""

    async def get_token(self, resource: str) -> str: ...


class ManagedIdentityCredential:
    """Fetches tokens from the instance metadata service (IMDS).

    Tokens are cached per resource until shortly before they expire.
    """

    def __init__(
        self,
        client_id: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        """Initialize ManagedIdentityCredential.

        Args:
            client_id: Client id of a user-assigned identity (default: system identity)
            http_client: HTTP client to use (default: a dedicated client)
        """
        self.client_id = client_id
        self._client = http_client
        self._tokens: dict[str, tuple[str, float]] = {}

    async def get_token(self, resource: str = AZURE_MANAGEMENT_RESOURCE) -> str:
        cached = self._tokens.get(resource)
        if cached and cached[1] - TOKEN_REFRESH_MARGIN_SECONDS > time.time():
            return cached[0]

        params = {"api-version": AZURE_IMDS_API_VERSION, "resource": resource}
        if self.client_id:
            params["client_id"] = self.client_id

        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(AZURE_HTTP_TIMEOUT))
        try:
            response = await self._client.get(
                AZURE_IMDS_TOKEN_URL, params=params, headers={"Metadata": "true"}
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            action = f"getting managed identity token for {resource}"
            raise classify_request_error(e, action) from e

        data = response.json()
        token = data["access_token"]
        expires_on = float(data.get("expires_on", time.time() + 3600))
        self._tokens[resource] = (token, expires_on)
        logger.debug(f"Acquired managed identity token for {resource}")
        return token

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()


class ArmClient:
    """Authenticated client for one subscription."""

    def __init__(
        self,
        subscription_id: str,
        credential: TokenCredential,
        base_url: str = AZURE_MANAGEMENT_URL,
        http_client: httpx.AsyncClient | None = None,
        lro_poll_interval: float = AZURE_LRO_POLL_INTERVAL,
    ):
        self.subscription_id = subscription_id
        self.credential = credential
        self.base_url = base_url.rstrip("/")
        self.lro_poll_interval = lro_poll_interval
        self._client = http_client

    @property
    def subscription_path(self) -> str:
        return f"/subscriptions/{self.subscription_id}"

    def resource_group_path(self, resource_group: str) -> str:
        return f"{self.subscription_path}/resourceGroups/{resource_group}"

    def resource_path(
        self, resource_group: str, provider: str, resource_type: str, name: str
    ) -> str:
        """ARM path of a resource, e.g. .../providers/Microsoft.Compute/disks/{name}."""
        return (
            f"{self.resource_group_path(resource_group)}/providers/"
            f"{provider}/{resource_type}/{name}"
        )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(AZURE_HTTP_TIMEOUT),
                headers={"Accept": "application/json"},
            )
        return self._client

    def _url(self, path: str) -> str:
        return path if path.startswith("http") else f"{self.base_url}{path}"

    async def send(
        self,
        method: str,
        path: str,
        api_version: str | None = None,
        json: dict[str, Any] | None = None,
        action: str | None = None,
    ) -> httpx.Response:
        """Send a request and return the raw response.

        Args:
            method: HTTP method
            path: ARM path or absolute URL (nextLink, operation URLs)
            api_version: api-version query parameter; omitted for absolute URLs
                that already carry one
            json: Request body
            action: Description used in error messages

        Raises:
            ProviderError: Classified request failure
        """
        client = await self._get_client()
        token = await self.credential.get_token(AZURE_MANAGEMENT_RESOURCE)
        params = {"api-version": api_version} if api_version else None
        action = action or f"{method} {path}"

        logger.debug(f"ARM {method} {path}")
        try:
            response = await client.request(
                method,
                self._url(path),
                params=params,
                json=json,
                headers={"Authorization": f"Bearer {token}"},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise classify_request_error(e, action) from e
        return response

    async def request(
        self,
        method: str,
        path: str,
        api_version: str | None = None,
        json: dict[str, Any] | None = None,
        action: str | None = None,
    ) -> dict[str, Any]:
        """Send a request and return the decoded JSON body ({} when empty)."""
        response = await self.send(method, path, api_version, json=json, action=action)
        if not response.content:
            return {}
        return response.json()

    async def get(self, path: str, api_version: str, action: str | None = None) -> dict[str, Any]:
        return await self.request("GET", path, api_version, action=action)

    async def put(
        self, path: str, api_version: str, body: dict[str, Any], action: str | None = None
    ) -> dict[str, Any]:
        return await self.request("PUT", path, api_version, json=body, action=action)

    async def patch(
        self, path: str, api_version: str, body: dict[str, Any], action: str | None = None
    ) -> dict[str, Any]:
        return await self.request("PATCH", path, api_version, json=body, action=action)

    async def delete(self, path: str, api_version: str, action: str | None = None) -> None:
        await self.send("DELETE", path, api_version, action=action)

    async def list_all(
        self, path: str, api_version: str, action: str | None = None
    ) -> list[dict[str, Any]]:
        """GET a collection, following nextLink until exhausted."""
        items: list[dict[str, Any]] = []
        page = await self.get(path, api_version, action=action)
        items.extend(page.get("value", []))
        while page.get("nextLink"):
            page = await self.request("GET", page["nextLink"], action=action)
            items.extend(page.get("value", []))
        logger.debug(f"Listed {len(items)} items from {path}")
        return items

    async def begin_post(
        self,
        path: str,
        api_version: str,
        body: dict[str, Any] | None = None,
        action: str | None = None,
    ) -> LongRunningOperation:
        """POST a long-running operation without waiting for it to finish.

        A 202 with a Location header is returned as a pending operation;
        check it later with poll_operation.
        """
        response = await self.send("POST", path, api_version, json=body, action=action)
        return self._operation(response)

    async def poll_operation(
        self, location: str, action: str | None = None
    ) -> LongRunningOperation:
        """Check a pending long-running operation once."""
        response = await self.send("GET", location, action=action)
        return self._operation(response, location)

    def _operation(
        self, response: httpx.Response, location: str | None = None
    ) -> LongRunningOperation:
        if response.status_code == 202:
            location = response.headers.get("Location") or location
            if location:
                return LongRunningOperation(
                    done=False,
                    location=location,
                    retry_after=retry_after_seconds(
                        response.headers.get("Retry-After"), self.lro_poll_interval
                    ),
                )
        return LongRunningOperation(done=True, result=response.json() if response.content else {})

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client is not None:
            await self._client.aclose()
