from pathlib import Path

DEFAULT_DATA_DIR = (Path(__file__).parent.parent.resolve() / "data").absolute().resolve()

# Scan job defaults
DEFAULT_SCAN_TIMEOUT_SECONDS = 3600  # 1 hour for a whole target scan
DEFAULT_FAMILY_TOOL_TIMEOUT = 600  # 10 minutes per scanner invocation
TOOL_STDERR_LOG_LIMIT = 1000  # Truncate tool stderr in error messages

# Scanner resource naming (all keyed by the scan result id)
SCANNER_VM_NAME_PREFIX = "scanplane-scanner"
SCANNER_NIC_NAME_PREFIX = "scanner-nic"
SNAPSHOT_NAME_PREFIX = "snapshot"
TARGET_VOLUME_NAME_PREFIX = "targetvolume"
SNAPSHOT_BLOB_SUFFIX = ".vhd"
SCANNER_ADMIN_USERNAME = "scanplane"
SCANNER_DATA_DISK_LUN = 0  # Fixed attachment slot for the target disk

# Estimated provisioning times in seconds (hints for the caller's backoff)
VM_CREATE_ESTIMATE_PROVISION_TIME = 120
VM_DISK_ATTACH_ESTIMATE_TIME = 120
VM_DELETE_ESTIMATE_TIME = 120
SNAPSHOT_CREATE_ESTIMATE_PROVISION_TIME = 120
SNAPSHOT_DELETE_ESTIMATE_TIME = 120
SNAPSHOT_COPY_ESTIMATE_TIME = 120
DISK_ESTIMATE_PROVISION_TIME = 120
DISK_DELETE_ESTIMATE_TIME = 120
NETWORK_INTERFACE_ESTIMATE_PROVISION_TIME = 60
NETWORK_INTERFACE_DELETE_ESTIMATE_TIME = 60
BLOB_DELETE_ESTIMATE_TIME = 120
SNAPSHOT_SAS_DURATION_SECONDS = 3600  # Read access granted on a snapshot for blob copy

# Poll driver defaults
POLL_MAX_INTERVAL_SECONDS = 30.0  # Never sleep longer than this between probes
POLL_INITIAL_BACKOFF_SECONDS = 1.0
POLL_MAX_BACKOFF_SECONDS = 60.0
POLL_BACKOFF_FACTOR = 2.0
POLL_JITTER_FACTOR = 0.1

# Azure Resource Manager
AZURE_MANAGEMENT_URL = "https://management.azure.com"
AZURE_MANAGEMENT_RESOURCE = "https://management.azure.com/"
AZURE_STORAGE_RESOURCE = "https://storage.azure.com/"
AZURE_IMDS_TOKEN_URL = "http://169.254.169.254/metadata/identity/oauth2/token"
AZURE_IMDS_API_VERSION = "2018-02-01"
AZURE_COMPUTE_API_VERSION = "2023-03-01"
AZURE_DISKS_API_VERSION = "2022-07-02"
AZURE_NETWORK_API_VERSION = "2023-04-01"
AZURE_RESOURCES_API_VERSION = "2021-04-01"
AZURE_STORAGE_API_VERSION = "2021-08-06"
AZURE_LRO_POLL_INTERVAL = 2.0  # Default wait before re-checking a long-running operation
AZURE_HTTP_TIMEOUT = 30.0
AZURE_PROVISIONING_STATE_SUCCEEDED = "Succeeded"
AZURE_DISK_STATE_ATTACHED = "Attached"
AZURE_BLOB_COPY_STATUS_PENDING = "pending"
AZURE_BLOB_COPY_STATUS_SUCCESS = "success"

# Instance id layout:
# /subscriptions/{sub}/resourceGroups/{rg}/providers/Microsoft.Compute/virtualMachines/{name}
AZURE_INSTANCE_ID_PARTS_LENGTH = 9
AZURE_RESOURCE_GROUP_PART_IDX = 4
AZURE_VM_NAME_PART_IDX = 8

# Scanner VM defaults
AZURE_DEFAULT_SCANNER_VM_SIZE = "Standard_D2s_v3"
AZURE_DEFAULT_IMAGE_PUBLISHER = "Canonical"
AZURE_DEFAULT_IMAGE_OFFER = "0001-com-ubuntu-server-jammy"
AZURE_DEFAULT_IMAGE_SKU = "22_04-lts-gen2"
AZURE_DEFAULT_IMAGE_VERSION = "latest"

# Exploit database service
EXPLOIT_DB_DEFAULT_URL = "http://localhost:1326"
EXPLOIT_DB_HTTP_TIMEOUT = 30.0

# Scanner container inside the scanner VM
SCANNER_CONFIG_PATH = "/etc/scanplane/config.yaml"
SCANNER_MOUNT_PATH = "/mnt/snapshot"
