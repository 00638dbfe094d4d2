"""
Configuration management using Pydantic settings for the vision toolkit.
Provides type-safe configuration with validation and environment variable support.
"""

import logging
import os
from functools import lru_cache
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from domain_types import (
    ComparisonConstants,
    DetectionConstants,
    FeatureConstants,
    GenerationConstants,
    RasterConstants,
    SystemConstants,
)

logger = logging.getLogger(__name__)


class RasterConfig(BaseSettings):
    """Raster codec and filtering configuration."""

    default_quality: int = Field(
        default=RasterConstants.DEFAULT_QUALITY,
        ge=RasterConstants.MIN_QUALITY,
        le=RasterConstants.MAX_QUALITY,
        description="Encode quality used when none is given",
    )
    blur_radius: float = Field(
        default=RasterConstants.DEFAULT_BLUR_RADIUS, gt=0, description="Default Gaussian radius"
    )
    canny_low_threshold: float = Field(
        default=RasterConstants.CANNY_LOW_THRESHOLD_DEFAULT,
        ge=0,
        description="Default Canny low threshold",
    )
    canny_high_threshold: float = Field(
        default=RasterConstants.CANNY_HIGH_THRESHOLD_DEFAULT,
        ge=0,
        description="Default Canny high threshold",
    )
    canny_blur_sigma: float = Field(
        default=RasterConstants.CANNY_BLUR_SIGMA, gt=0, description="Canny pre-blur sigma"
    )

    model_config = SettingsConfigDict(env_prefix="VK_RASTER_", extra="ignore")


class FeatureConfig(BaseSettings):
    """Feature extraction configuration."""

    color_bins: int = Field(default=FeatureConstants.COLOR_BINS_DEFAULT, ge=1, le=256)
    hsv_h_bins: int = Field(default=FeatureConstants.HSV_H_BINS_DEFAULT, ge=1, le=360)
    hsv_s_bins: int = Field(default=FeatureConstants.HSV_S_BINS_DEFAULT, ge=1, le=100)
    hsv_v_bins: int = Field(default=FeatureConstants.HSV_V_BINS_DEFAULT, ge=1, le=100)
    edge_bins: int = Field(default=FeatureConstants.EDGE_BINS_DEFAULT, ge=1, le=360)
    edge_min_magnitude: float = Field(default=FeatureConstants.EDGE_MIN_MAGNITUDE, ge=0)
    lbp_radius: int = Field(default=FeatureConstants.LBP_RADIUS_DEFAULT, ge=1)
    lbp_neighbors: int = Field(
        default=FeatureConstants.LBP_NEIGHBORS_DEFAULT,
        ge=1,
        le=FeatureConstants.LBP_MAX_NEIGHBORS,
    )
    keypoint_threshold: float = Field(default=FeatureConstants.KEYPOINT_THRESHOLD_DEFAULT, ge=0)
    max_keypoints: int = Field(default=FeatureConstants.MAX_KEYPOINTS, ge=1)
    vector_lbp_bins: int = Field(
        default=FeatureConstants.FEATURE_VECTOR_LBP_BINS, ge=0, le=FeatureConstants.LBP_BINS
    )

    model_config = SettingsConfigDict(env_prefix="VK_FEATURE_", extra="ignore")


class ComparisonConfig(BaseSettings):
    """Image comparison configuration."""

    ssim_window: int = Field(default=ComparisonConstants.SSIM_WINDOW_DEFAULT, ge=1)
    hash_size: int = Field(
        default=ComparisonConstants.HASH_SIZE_DEFAULT, ge=2, le=ComparisonConstants.DCT_SIZE
    )

    @field_validator("ssim_window")
    @classmethod
    def validate_odd_window(cls, v):
        """Ensure window size is odd."""
        if v % 2 == 0:
            raise ValueError(f"SSIM window must be odd, got {v}")
        return v

    model_config = SettingsConfigDict(env_prefix="VK_COMPARISON_", extra="ignore")


class DetectionConfig(BaseSettings):
    """Object detection configuration."""

    template_threshold: float = Field(
        default=DetectionConstants.TEMPLATE_THRESHOLD_DEFAULT, ge=0.0, le=1.0
    )
    nms_iou_threshold: float = Field(default=DetectionConstants.NMS_IOU_THRESHOLD, ge=0.0, le=1.0)
    color_tolerance: float = Field(default=DetectionConstants.COLOR_TOLERANCE_DEFAULT, ge=0)
    blob_min_area: int = Field(default=DetectionConstants.BLOB_MIN_AREA_DEFAULT, ge=0)
    contour_min_area: int = Field(default=DetectionConstants.CONTOUR_MIN_AREA_DEFAULT, ge=0)
    contour_max_steps: int = Field(default=DetectionConstants.CONTOUR_MAX_STEPS, ge=1)
    morph_kernel_size: int = Field(default=DetectionConstants.MORPH_KERNEL_SIZE_DEFAULT, ge=1)

    model_config = SettingsConfigDict(env_prefix="VK_DETECTION_", extra="ignore")


class GenerationConfig(BaseSettings):
    """Procedural generation configuration."""

    noise_scale: float = Field(default=GenerationConstants.NOISE_SCALE_DEFAULT, gt=0)
    noise_octaves: int = Field(default=GenerationConstants.NOISE_OCTAVES_DEFAULT, ge=1, le=16)
    noise_persistence: float = Field(
        default=GenerationConstants.NOISE_PERSISTENCE_DEFAULT, gt=0, le=1.0
    )
    fractal_max_iterations: int = Field(
        default=GenerationConstants.FRACTAL_MAX_ITERATIONS, ge=1, le=10000
    )
    voronoi_points: int = Field(default=GenerationConstants.VORONOI_POINTS_DEFAULT, ge=1)

    model_config = SettingsConfigDict(env_prefix="VK_GENERATION_", extra="ignore")


class SystemConfig(BaseSettings):
    """System configuration."""

    log_level: str = Field(default=SystemConstants.LOG_LEVEL_DEFAULT, description="Logging level")
    log_file: Optional[str] = Field(default=None, description="Log file path")
    worker_threads: int = Field(
        default=SystemConstants.THREAD_POOL_SIZE,
        ge=1,
        le=SystemConstants.MAX_WORKER_THREADS,
        description="Number of worker threads for banded and per-octave work",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v_upper

    model_config = SettingsConfigDict(env_prefix="VK_SYSTEM_", extra="ignore")


class Settings(BaseSettings):
    """Main toolkit settings."""

    # Sub-configurations
    raster: RasterConfig = Field(default_factory=RasterConfig)
    feature: FeatureConfig = Field(default_factory=FeatureConfig)
    comparison: ComparisonConfig = Field(default_factory=ComparisonConfig)
    detection: DetectionConfig = Field(default_factory=DetectionConfig)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    system: SystemConfig = Field(default_factory=SystemConfig)

    # Config file support
    config_file: Optional[str] = Field(default=None, description="Path to YAML config file")

    @model_validator(mode="before")
    @classmethod
    def load_config_file(cls, values):
        """Load configuration from YAML file if specified."""
        if not isinstance(values, dict):
            return values

        config_file = values.get("config_file") or os.getenv("VK_CONFIG_FILE")

        if config_file and Path(config_file).exists():
            try:
                with open(config_file, "r") as f:
                    file_config = yaml.safe_load(f)
            except (OSError, yaml.YAMLError) as e:
                logger.warning(f"Failed to load config file {config_file}: {e}")
                file_config = None

            if file_config:
                # Merge file config with values (env vars take precedence)
                for key, value in file_config.items():
                    if key not in values or values[key] is None:
                        values[key] = value

        return values

    def to_dict(self) -> Dict[str, Any]:
        """Convert settings to dictionary."""
        return self.model_dump(exclude_none=True)

    def save_to_file(self, path: str) -> None:
        """Save current configuration to YAML file."""
        config_dict = self.to_dict()
        with open(path, "w") as f:
            yaml.dump(config_dict, f, default_flow_style=False)

    model_config = SettingsConfigDict(
        env_prefix="VK_",
        case_sensitive=False,
        env_nested_delimiter="__",
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings object with validated configuration
    """
    return Settings()


# Convenience function to reload settings (clears cache)
def reload_settings() -> Settings:
    """
    Reload settings, clearing the cache.

    Returns:
        Fresh Settings object
    """
    get_settings.cache_clear()
    return get_settings()


def configure_logging(settings: Optional[Settings] = None) -> None:
    """
    Configure root logging from system settings.

    Args:
        settings: Settings to use (defaults to cached settings)
    """
    settings = settings or get_settings()
    handlers = [logging.StreamHandler()]
    if settings.system.log_file:
        handlers.append(
            RotatingFileHandler(
                settings.system.log_file,
                maxBytes=SystemConstants.LOG_FILE_MAX_BYTES,
                backupCount=SystemConstants.LOG_FILE_BACKUP_COUNT,
            )
        )

    logging.basicConfig(
        level=getattr(logging, settings.system.log_level),
        format=SystemConstants.LOG_FORMAT,
        handlers=handlers,
        force=True,
    )
