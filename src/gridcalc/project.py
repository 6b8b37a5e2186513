"""Project-level configuration (``gridcalc.yaml``)."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

CONFIG_FILENAME = "gridcalc.yaml"

DEFAULT_CONFIG: dict[str, Any] = {
    "delimiter": "|",
    "deadline_seconds": None,
    "float_precision": 2,
    "render_separator": " | ",
    "logging_enabled": True,
    "logging_fsync": False,
    "logging_tail_bytes": 2_097_152,  # 2 MB
}


def load_project_config(project_dir: Path) -> dict[str, Any]:
    """Load project configuration from ``gridcalc.yaml``, with defaults.

    A missing file yields the defaults.  Unknown keys are kept so that
    callers can read their own settings from the same file.

    Args:
        project_dir: Directory containing ``gridcalc.yaml``.

    Returns:
        Merged configuration dict.

    Raises:
        ValueError: If a known key has an invalid value.
    """
    config = dict(DEFAULT_CONFIG)
    config_path = Path(project_dir) / CONFIG_FILENAME
    if config_path.exists():
        user_config = yaml.safe_load(config_path.read_text()) or {}
        if not isinstance(user_config, dict):
            raise ValueError(f"{CONFIG_FILENAME} must contain a mapping")
        config.update(user_config)
    validate_config(config)
    return config


def validate_config(config: dict[str, Any]) -> None:
    """Check known keys; raise ValueError naming the first bad one."""
    delimiter = config.get("delimiter")
    if not isinstance(delimiter, str) or len(delimiter) != 1 or delimiter in "\r\n\"":
        raise ValueError(f"delimiter must be a single character other than quote or newline, got {delimiter!r}")

    deadline = config.get("deadline_seconds")
    if deadline is not None:
        if isinstance(deadline, bool) or not isinstance(deadline, (int, float)) or deadline < 0:
            raise ValueError(f"deadline_seconds must be a non-negative number, got {deadline!r}")

    precision = config.get("float_precision")
    if isinstance(precision, bool) or not isinstance(precision, int) or precision < 0:
        raise ValueError(f"float_precision must be a non-negative integer, got {precision!r}")

    tail = config.get("logging_tail_bytes")
    if tail is not None and (isinstance(tail, bool) or not isinstance(tail, int) or tail <= 0):
        raise ValueError(f"logging_tail_bytes must be a positive integer, got {tail!r}")
