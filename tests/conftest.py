"""Pytest configuration and fixtures."""

import json
from typing import Any

import httpx
import pytest

from scanplane.models.model_families import FamiliesConfig, FamilyType
from scanplane.models.model_scan import CloudProvider, ScanJobConfig, VMInfo
from scanplane.provider.azure.arm import ArmClient
from scanplane.provider.azure.blob import BlobClient
from scanplane.provider.azure.client import AzureClient
from scanplane.provider.azure.config import AzureConfig

SUBSCRIPTION_ID = "sub-123"
SCANNER_RG = "scanner-rg"
TARGET_RG = "prod-rg"
TARGET_VM_ID = (
    f"/subscriptions/{SUBSCRIPTION_ID}/resourceGroups/{TARGET_RG}"
    "/providers/Microsoft.Compute/virtualMachines/web-1"
)
TARGET_OS_DISK_ID = (
    f"/subscriptions/{SUBSCRIPTION_ID}/resourceGroups/{TARGET_RG}"
    "/providers/Microsoft.Compute/disks/web-1-osdisk"
)
OPERATIONS_URL = (
    f"https://management.azure.com/subscriptions/{SUBSCRIPTION_ID}"
    "/providers/Microsoft.Compute/locations/westus/operations"
)


def enabled_config(*family_types: FamilyType) -> FamiliesConfig:
    """FamiliesConfig with exactly the given families enabled."""
    return FamiliesConfig.model_validate({ft.value: {"enabled": True} for ft in family_types})


class FakeCredential:
    """Token credential that never talks to IMDS."""

    def __init__(self) -> None:
        self.resources: list[str] = []

    async def get_token(self, resource: str) -> str:
        self.resources.append(resource)
        return "fake-token"


class FakeAzure:
    """In-memory Azure Resource Manager and Blob storage.

    Resources are keyed by ARM path. PUT stores the body with provisioning
    state `put_state`; DELETE removes immediately. Blob copies start with
    `blob_copy_status`. Snapshot access grants answer 202 for the first
    `access_grant_polls` checks; revokes are always accepted with a 202.
    """

    def __init__(
        self,
        put_state: str = "Succeeded",
        blob_copy_status: str = "pending",
        access_grant_polls: int = 0,
    ):
        self.put_state = put_state
        self.blob_copy_status = blob_copy_status
        self.blob_copy_description = ""
        self.access_grant_polls = access_grant_polls
        self.resources: dict[str, dict[str, Any]] = {}
        self.blobs: dict[str, dict[str, str]] = {}
        self.requests: list[tuple[str, str]] = []
        self.deleted: list[str] = []

    def add_resource(self, path: str, body: dict[str, Any]) -> None:
        resource = {"id": path, "name": path.rsplit("/", 1)[-1], **body}
        self.resources[path.lower()] = resource

    def add_target_vm(self, location: str = "eastus", tags: dict[str, str] | None = None) -> None:
        self.add_resource(
            TARGET_VM_ID,
            {
                "type": "Microsoft.Compute/virtualMachines",
                "location": location,
                "tags": tags or {},
                "properties": {
                    "provisioningState": "Succeeded",
                    "hardwareProfile": {"vmSize": "Standard_B2s"},
                    "storageProfile": {
                        "imageReference": {
                            "publisher": "Canonical",
                            "offer": "ubuntu",
                            "sku": "22_04",
                            "version": "latest",
                        },
                        "osDisk": {
                            "name": "web-1-osdisk",
                            "osType": "Linux",
                            "managedDisk": {"id": TARGET_OS_DISK_ID},
                        },
                    },
                },
            },
        )

    def put_paths(self) -> list[str]:
        return [path for method, path in self.requests if method == "PUT"]

    def get(self, path: str) -> dict[str, Any] | None:
        return self.resources.get(path.lower())

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.host.endswith(".blob.core.windows.net"):
            return self._handle_blob(request)
        return self._handle_arm(request)

    def _handle_blob(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append((request.method, url))
        if request.method == "HEAD":
            blob = self.blobs.get(url)
            if blob is None:
                return httpx.Response(404)
            headers = {"x-ms-copy-status": blob["status"]}
            if blob.get("description"):
                headers["x-ms-copy-status-description"] = blob["description"]
            return httpx.Response(200, headers=headers)
        if request.method == "PUT":
            self.blobs[url] = {
                "status": self.blob_copy_status,
                "description": self.blob_copy_description,
                "source": request.headers["x-ms-copy-source"],
            }
            return httpx.Response(202)
        if request.method == "DELETE":
            if self.blobs.pop(url, None) is None:
                return httpx.Response(404)
            self.deleted.append(url)
            return httpx.Response(202)
        return httpx.Response(405)

    def _access_grant_response(self) -> httpx.Response:
        if self.access_grant_polls > 0:
            self.access_grant_polls -= 1
            return httpx.Response(
                202, headers={"Location": f"{OPERATIONS_URL}/grant-1", "Retry-After": "5"}
            )
        return httpx.Response(200, json={"accessSAS": "https://md-abc.blob/snap?sig=x"})

    def _handle_arm(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        key = path.lower()
        self.requests.append((request.method, path))

        if request.method == "GET":
            if "/operations/" in key:
                return self._access_grant_response()
            if key.endswith("/resourcegroups"):
                groups = {
                    p.split("/")[4]
                    for p in self.resources
                    if p.startswith(f"/subscriptions/{SUBSCRIPTION_ID}/resourcegroups/".lower())
                }
                return httpx.Response(200, json={"value": [{"name": g} for g in sorted(groups)]})
            if key.endswith("/providers/microsoft.compute/virtualmachines"):
                prefix = key.replace("/providers/microsoft.compute/virtualmachines", "")
                vms = [
                    r
                    for p, r in self.resources.items()
                    if p.startswith(prefix) and "/virtualmachines/" in p
                ]
                return httpx.Response(200, json={"value": vms})
            resource = self.resources.get(key)
            if resource is None:
                return httpx.Response(404, json={"error": {"code": "ResourceNotFound"}})
            return httpx.Response(200, json=resource)

        if request.method == "PUT":
            body = json.loads(request.content)
            body.setdefault("properties", {})["provisioningState"] = self.put_state
            self.add_resource(path, body)
            return httpx.Response(201, json=self.resources[key])

        if request.method == "PATCH":
            resource = self.resources.get(key)
            if resource is None:
                return httpx.Response(404)
            body = json.loads(request.content)
            data_disks = body["properties"]["storageProfile"]["dataDisks"]
            storage = resource["properties"].setdefault("storageProfile", {})
            storage["dataDisks"] = data_disks
            for data_disk in data_disks:
                disk = self.get(data_disk["managedDisk"]["id"])
                if disk is not None:
                    disk["properties"]["diskState"] = "Attached"
            return httpx.Response(200, json=resource)

        if request.method == "DELETE":
            if self.resources.pop(key, None) is None:
                return httpx.Response(204)
            self.deleted.append(path)
            return httpx.Response(202)

        if request.method == "POST":
            if key.endswith("/begingetaccess"):
                return self._access_grant_response()
            return httpx.Response(202, headers={"Location": f"{OPERATIONS_URL}/revoke-1"})

        return httpx.Response(405)


@pytest.fixture
def azure_config() -> AzureConfig:
    """Complete Azure configuration for the scanner resource group."""
    return AzureConfig(
        subscription_id=SUBSCRIPTION_ID,
        scanner_location="eastus",
        scanner_resource_group=SCANNER_RG,
        scanner_subnet_id="/subscriptions/sub-123/resourceGroups/scanner-rg/subnets/scan",
        scanner_public_key="ssh-ed25519 AAAA test",
        scanner_security_group="/subscriptions/sub-123/resourceGroups/scanner-rg/nsg/scan",
        scanner_storage_account_name="scannerstore",
        scanner_storage_container_name="snapshots",
    )


@pytest.fixture
def fake_azure() -> FakeAzure:
    """Fake Azure with the target VM in the scanner's region."""
    fake = FakeAzure()
    fake.add_target_vm(location="eastus")
    return fake


@pytest.fixture
def azure_client(azure_config: AzureConfig, fake_azure: FakeAzure) -> AzureClient:
    """AzureClient whose HTTP traffic goes to fake_azure."""
    credential = FakeCredential()
    transport = httpx.MockTransport(fake_azure.handler)
    arm = ArmClient(
        SUBSCRIPTION_ID,
        credential,
        http_client=httpx.AsyncClient(transport=transport),
        lro_poll_interval=0,
    )
    blobs = BlobClient(credential, http_client=httpx.AsyncClient(transport=transport))
    return AzureClient(azure_config, arm=arm, blobs=blobs, credential=credential)


@pytest.fixture
def target_info() -> VMInfo:
    """Target VM as discovered by the provider."""
    return VMInfo(
        instance_id=TARGET_VM_ID,
        instance_provider=CloudProvider.AZURE,
        location="eastus",
    )


@pytest.fixture
def scan_job(target_info: VMInfo) -> ScanJobConfig:
    """Scan job with SBOM and vulnerabilities enabled."""
    families = enabled_config(FamilyType.SBOM, FamilyType.VULNERABILITIES)
    return ScanJobConfig(
        scan_id="scan-1",
        scan_result_id="result-42",
        target_id="target-7",
        target_info=target_info,
        families=families,
        server_address="http://control-plane:8888/api",
    )


@pytest.fixture
def make_families_config():
    """Factory for a FamiliesConfig with the given families enabled."""
    return enabled_config
