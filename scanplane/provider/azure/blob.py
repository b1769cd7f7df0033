"""Azure Blob storage operations used to copy snapshots across regions."""

import logging
from typing import TYPE_CHECKING

import httpx

from scanplane.consts import (
    AZURE_BLOB_COPY_STATUS_PENDING,
    AZURE_BLOB_COPY_STATUS_SUCCESS,
    AZURE_HTTP_TIMEOUT,
    AZURE_STORAGE_API_VERSION,
    AZURE_STORAGE_RESOURCE,
    BLOB_DELETE_ESTIMATE_TIME,
    SNAPSHOT_BLOB_SUFFIX,
    SNAPSHOT_COPY_ESTIMATE_TIME,
)
from scanplane.errors import FatalError, ResourceNotFoundError, RetryableError
from scanplane.models.model_azure import Snapshot
from scanplane.models.model_scan import ScanJobConfig
from scanplane.provider.azure.arm import TokenCredential, classify_request_error
from scanplane.provider.azure.snapshot import grant_snapshot_access, revoke_snapshot_access
from scanplane.provider.lifecycle import ensure_deleted

if TYPE_CHECKING:
    from scanplane.provider.azure.client import AzureClient

logger = logging.getLogger(__name__)


def blob_name(config: ScanJobConfig) -> str:
    return f"{config.scan_result_id}{SNAPSHOT_BLOB_SUFFIX}"


class BlobClient:
    """REST client for blobs in the scanner storage container."""

    def __init__(
        self,
        credential: TokenCredential,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.credential = credential
        self._client = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(AZURE_HTTP_TIMEOUT))
        return self._client

    async def _send(
        self,
        method: str,
        url: str,
        action: str,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        client = await self._get_client()
        token = await self.credential.get_token(AZURE_STORAGE_RESOURCE)
        request_headers = {
            "Authorization": f"Bearer {token}",
            "x-ms-version": AZURE_STORAGE_API_VERSION,
        }
        request_headers.update(headers or {})

        logger.debug(f"Blob {method} {url}")
        try:
            response = await client.request(method, url, headers=request_headers)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise classify_request_error(e, action) from e
        return response

    async def get_properties(self, url: str) -> dict[str, str]:
        """Blob properties (response headers), e.g. x-ms-copy-status.

        Raises:
            ResourceNotFoundError: Blob does not exist
        """
        response = await self._send("HEAD", url, f"getting blob {url}")
        return dict(response.headers)

    async def start_copy_from_url(self, url: str, source_url: str) -> None:
        """Start an asynchronous server-side copy into the blob."""
        await self._send(
            "PUT",
            url,
            f"starting copy to blob {url}",
            headers={"x-ms-copy-source": source_url},
        )
        logger.info(f"Started blob copy to {url}")

    async def delete(self, url: str) -> None:
        await self._send(
            "DELETE",
            url,
            f"deleting blob {url}",
            headers={"x-ms-delete-snapshots": "include"},
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()


def blob_url(client: "AzureClient", config: ScanJobConfig) -> str:
    return f"{client.config.blob_base_url}/{blob_name(config)}"


async def ensure_snapshot_copied_to_blob(
    client: "AzureClient", config: ScanJobConfig, snapshot: Snapshot
) -> None:
    """Ensure the snapshot has been copied to a blob in the scanner storage account.

    First call grants read access on the snapshot and starts the copy; later
    calls check the copy status and revoke the access once the copy succeeded.

    Raises:
        RetryableError: Access grant or copy still in progress
        FatalError: Copy failed or was aborted
    """
    url = blob_url(client, config)

    try:
        properties = await client.blobs.get_properties(url)
    except ResourceNotFoundError:
        properties = None

    if properties is None:
        # Granting again is harmless if an earlier attempt already did
        sas_url = await grant_snapshot_access(client, snapshot.name)
        await client.blobs.start_copy_from_url(url, sas_url)
        raise RetryableError("blob copy from url started", after=SNAPSHOT_COPY_ESTIMATE_TIME)

    copy_status = properties.get("x-ms-copy-status")
    if copy_status == AZURE_BLOB_COPY_STATUS_PENDING:
        logger.info(f"Blob {url} is still copying")
        raise RetryableError(
            f"blob is still copying, status: {copy_status}",
            after=SNAPSHOT_COPY_ESTIMATE_TIME,
        )
    if copy_status != AZURE_BLOB_COPY_STATUS_SUCCESS:
        raise FatalError(
            f"blob copy did not succeed, status: {copy_status}",
            details={
                "blob_url": url,
                "copy_status": copy_status,
                "copy_status_description": properties.get("x-ms-copy-status-description"),
            },
        )
    await revoke_snapshot_access(client, snapshot.name)


async def ensure_blob_deleted(client: "AzureClient", config: ScanJobConfig) -> None:
    url = blob_url(client, config)
    await ensure_deleted(
        "snapshot copy blob",
        get=lambda: client.blobs.get_properties(url),
        delete=lambda: client.blobs.delete(url),
        estimate=BLOB_DELETE_ESTIMATE_TIME,
    )
