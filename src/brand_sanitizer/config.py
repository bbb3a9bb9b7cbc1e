"""Configuration management."""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel
import yaml


class Config(BaseModel):
    """Sanitization configuration."""

    # Verification
    clean_risk_threshold: int = 30
    max_passes: int = 3
    narrow_instructions: bool = True

    # Structural check on each generative edit
    validate_structure: bool = True
    structure_max_dimension: int = 512
    structure_mean_diff_threshold: float = 30.0
    structure_pixel_diff_threshold: int = 50
    structure_changed_fraction_threshold: float = 0.20

    # Fallback blur
    fallback_blur: bool = True
    fallback_mode: Literal["copy", "full_frame"] = "copy"
    blur_intensity: int = 30
    full_frame_blur_intensity: int = 15
    min_region_size: int = 10
    region_padding: int = 5
    treat_fallback_blur_as_clean: bool = False

    # Blur audit
    blur_significance_threshold: int = 50

    # Batch scheduling
    inter_item_delay_ms: int = 2000
    concurrency: int = 1

    # Remote services
    detector: Literal["claude", "cloud_vision"] = "claude"
    detection_model: str = "claude-sonnet-4-20250514"
    edit_model: str = "qwen/qwen-image-edit"
    request_timeout_s: float = 60.0

    # Retry policy for remote calls
    retry_max_attempts: int = 3
    retry_initial_delay_ms: int = 1000
    retry_max_delay_ms: int = 10000
    retry_backoff_multiplier: float = 2.0


def load_config(path: Path) -> Config:
    """Load configuration from YAML file."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    return Config(**data)


def save_config(config: Config, path: Path) -> None:
    """Save configuration to YAML file."""
    with open(path, "w") as f:
        yaml.dump(config.model_dump(), f, default_flow_style=False)
