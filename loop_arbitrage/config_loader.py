"""
Configuration loading for the loop arbitrage detector.

Reads YAML files into a validated, read-only DetectorConfig. The detector
itself never loads files; callers load once and pass the result in.
"""

from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from .config_schema import DetectorConfig, validate_detector_config
from .exceptions import ConfigurationError

DETECTOR_SECTION = "detector"


def load_yaml_config(config_path: Union[str, Path]) -> Dict[str, Any]:
    """Load and parse YAML configuration file."""
    config_path = Path(config_path)

    if not config_path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path, "r") as f:
            config_dict = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Failed to load config {config_path}: {e}") from e

    if config_dict is None:
        raise ConfigurationError(f"Empty configuration file: {config_path}")

    if not isinstance(config_dict, dict):
        raise ConfigurationError(
            f"Configuration file must contain a YAML mapping: {config_path}"
        )

    return config_dict


def extract_detector_section(config_dict: Dict[str, Any]) -> Dict[str, Any]:
    """
    Return the detector settings from a loaded config.

    Accepts either a flat mapping of detector fields or a file with a
    top-level ``detector:`` section next to settings owned by other
    components.
    """
    if DETECTOR_SECTION not in config_dict:
        return config_dict

    section = config_dict[DETECTOR_SECTION]
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ConfigurationError(
            f"'{DETECTOR_SECTION}' section must be a mapping, got {type(section).__name__}"
        )
    return section


def load_detector_config(
    config_path: Optional[Union[str, Path]] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> DetectorConfig:
    """
    Load detector configuration from YAML with optional overrides.

    Args:
        config_path: Path to YAML file; None uses schema defaults
        overrides: Field values applied on top of the file contents

    Returns:
        Validated DetectorConfig instance

    Raises:
        ConfigurationError: If the file is missing, unparsable or invalid
    """
    settings: Dict[str, Any] = {}
    if config_path is not None:
        settings.update(extract_detector_section(load_yaml_config(config_path)))

    if overrides:
        settings.update({k: v for k, v in overrides.items() if v is not None})

    return validate_detector_config(settings)
