"""Run configuration: models, merging, validation and loading."""

from maskclone.config.loader import load_config, parse_config, render_config_template
from maskclone.config.models import (
    ExportTaskConfig,
    MaskConfig,
    TempClusterConfig,
    validate_config,
)

__all__ = [
    "ExportTaskConfig",
    "MaskConfig",
    "TempClusterConfig",
    "load_config",
    "parse_config",
    "render_config_template",
    "validate_config",
]
