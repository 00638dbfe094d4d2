"""
Base class for vision components.

Provides the logger, configuration lookup and source resolution shared by
FeatureExtractor, ImageComparator, ObjectDetector and ImageGenerator.
"""

import logging
from pathlib import Path
from typing import Any, Optional, Union

from config import Settings, get_settings
from exceptions import InvalidParameterException
from image.raster import RasterBuffer, as_raster
from utils import CancellationToken

ImageSource = Union[RasterBuffer, str, Path]


class VisionComponent:
    """
    Common base for all vision components.

    Components are stateless apart from configuration: every call takes
    its inputs explicitly and returns fresh results.
    """

    def __init__(self, settings: Optional[Settings] = None):
        """Initialize component with logger and settings."""
        self.logger = logging.getLogger(self.__class__.__name__)
        self.settings = settings or get_settings()

    @property
    def workers(self) -> int:
        return self.settings.system.worker_threads

    def _resolve(self, source: ImageSource) -> RasterBuffer:
        """
        Accept a RasterBuffer or an image path.

        Args:
            source: Buffer (used as-is, never mutated) or path to decode

        Returns:
            RasterBuffer
        """
        return as_raster(source)

    @staticmethod
    def _default(value: Any, fallback: Any) -> Any:
        """Use the configured fallback only when a parameter was omitted."""
        return fallback if value is None else value

    @staticmethod
    def _require_positive(name: str, value, allow_zero: bool = False) -> None:
        if value < 0 or (value == 0 and not allow_zero):
            raise InvalidParameterException(
                name, value, "must be non-negative" if allow_zero else "must be positive"
            )

    def _check_cancelled(self, token: Optional[CancellationToken], operation: str) -> None:
        if token is not None:
            token.raise_if_cancelled(operation)
