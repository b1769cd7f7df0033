"""Cloud-init user data for scanner VMs."""

import base64
import logging
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from scanplane.consts import SCANNER_CONFIG_PATH, SCANNER_MOUNT_PATH
from scanplane.families.config import dump_families_config
from scanplane.models.model_scan import ScanJobConfig

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "templates"

_env = Environment(
    loader=FileSystemLoader(TEMPLATES_DIR),
    undefined=StrictUndefined,
    keep_trailing_newline=True,
    autoescape=False,
)


def generate_cloud_init(config: ScanJobConfig) -> str:
    """Render the #cloud-config document that runs the scanner.

    The job's families configuration is embedded base64-encoded and written
    to SCANNER_CONFIG_PATH on the VM.

    Args:
        config: Scan job the VM is created for.

    Returns:
        cloud-init user data.
    """
    families_yaml = dump_families_config(config.families)
    template = _env.get_template("cloud-init.yaml.j2")
    user_data = template.render(
        config_path=SCANNER_CONFIG_PATH,
        config_dir=str(Path(SCANNER_CONFIG_PATH).parent),
        mount_path=SCANNER_MOUNT_PATH,
        config_b64=base64.b64encode(families_yaml.encode("utf-8")).decode("ascii"),
        scanner_image=config.scanner_image,
        server_address=config.server_address,
        scan_result_id=config.scan_result_id,
    )
    logger.debug(f"Generated cloud-init for scan result {config.scan_result_id}")
    return user_data


def encode_user_data(user_data: str) -> str:
    """Base64-encode user data for the VM userData property."""
    return base64.b64encode(user_data.encode("utf-8")).decode("ascii")
