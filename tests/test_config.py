"""
Tests for config module.
"""

import logging
from logging.handlers import RotatingFileHandler

import pytest
import yaml
from pydantic import ValidationError

from config import (
    ComparisonConfig,
    FeatureConfig,
    Settings,
    SystemConfig,
    configure_logging,
    get_settings,
    reload_settings,
)


class TestSettings:
    """Tests for Settings and its sections"""

    def test_defaults(self):
        settings = Settings()

        assert settings.raster.default_quality == 90
        assert settings.feature.color_bins == 16
        assert settings.comparison.ssim_window == 11
        assert settings.detection.nms_iou_threshold == 0.5
        assert settings.generation.noise_octaves == 4
        assert settings.system.worker_threads == 1

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("VK_FEATURE_COLOR_BINS", "32")

        assert FeatureConfig().color_bins == 32

    def test_even_ssim_window_rejected(self):
        with pytest.raises(ValidationError):
            ComparisonConfig(ssim_window=8)

    def test_log_level_normalized(self):
        assert SystemConfig(log_level="debug").log_level == "DEBUG"

        with pytest.raises(ValidationError):
            SystemConfig(log_level="chatty")

    def test_yaml_config_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({"detection": {"blob_min_area": 5}}))

        settings = Settings(config_file=str(path))

        assert settings.detection.blob_min_area == 5
        assert settings.detection.contour_min_area == 10

    def test_missing_config_file_is_ignored(self, tmp_path):
        settings = Settings(config_file=str(tmp_path / "absent.yaml"))

        assert settings.detection.blob_min_area == 100

    def test_save_to_file(self, tmp_path):
        path = tmp_path / "saved.yaml"
        Settings().save_to_file(str(path))
        data = yaml.safe_load(path.read_text())

        assert data["comparison"]["hash_size"] == 8
        assert data["generation"]["voronoi_points"] == 20

    def test_cached_settings(self):
        assert get_settings() is get_settings()
        assert reload_settings() is get_settings()


class TestLogging:
    """Tests for configure_logging"""

    def test_file_handler(self, tmp_path):
        log_file = tmp_path / "vision.log"
        settings = Settings(system=SystemConfig(log_level="WARNING", log_file=str(log_file)))
        root = logging.getLogger()

        try:
            configure_logging(settings)

            assert root.level == logging.WARNING
            assert any(isinstance(h, RotatingFileHandler) for h in root.handlers)
        finally:
            for handler in list(root.handlers):
                if isinstance(handler, RotatingFileHandler):
                    root.removeHandler(handler)
                    handler.close()
