"""Load families configuration from YAML or JSON files."""

import json
import logging
from pathlib import Path

import yaml

from scanplane.models.model_families import FamiliesConfig

logger = logging.getLogger(__name__)


def load_families_config(path: Path | str) -> FamiliesConfig:
    """Load a families configuration file.

    Files ending in .json are parsed as JSON, everything else as YAML.
    An empty file yields the default configuration (every family disabled).

    Args:
        path: Path to the configuration file.

    Returns:
        Validated FamiliesConfig.

    Raises:
        FileNotFoundError: If the file does not exist.
        pydantic.ValidationError: If the content is not a valid configuration.
    """
    path = Path(path)
    text = path.read_text(encoding="utf-8")
    if path.suffix == ".json":
        data = json.loads(text) if text.strip() else {}
    else:
        data = yaml.safe_load(text) or {}

    config = FamiliesConfig.model_validate(data)
    logger.info(
        f"Loaded families config from {path}: "
        f"{[f.value for f in config.enabled_families()]} enabled"
    )
    return config


def dump_families_config(config: FamiliesConfig) -> str:
    """Serialize a families configuration to YAML."""
    return yaml.safe_dump(config.model_dump(mode="json"), sort_keys=False)
