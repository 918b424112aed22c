"""Configuration module for hlskit.

This module provides YAML configuration parsing for hlskit.yaml and the small
schema-validation helpers shared with the release metadata parser.
"""

from hlskit.config.settings import (
    CONFIG_FILENAME,
    ConfigStore,
    HlsConfig,
    ManagementMode,
    load_config,
    load_project_config,
    prepend_path,
    resolve_path_placeholders,
    resolve_server_environment,
)
from hlskit.config.validation import (
    ValidationIssue,
    check,
    format_issues,
    validate,
)

__all__ = [
    "CONFIG_FILENAME",
    "ConfigStore",
    "HlsConfig",
    "ManagementMode",
    "load_config",
    "load_project_config",
    "prepend_path",
    "resolve_path_placeholders",
    "resolve_server_environment",
    "ValidationIssue",
    "check",
    "format_issues",
    "validate",
]
