"""
Custom exceptions for the vision toolkit.
Provides a consistent error taxonomy across all components.
"""

from typing import Dict, Optional


class VisionException(Exception):
    """Base exception for the vision toolkit."""

    def __init__(self, message: str, details: Optional[Dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ImageFileNotFoundException(VisionException, FileNotFoundError):
    """Exception raised when an image path does not exist."""

    def __init__(self, path: str):
        super().__init__(message=f"Image file not found: {path}", details={"path": path})


class UnsupportedFormatException(VisionException):
    """Exception raised when image bytes cannot be identified or decoded."""

    def __init__(self, reason: str, path: Optional[str] = None):
        super().__init__(
            message=f"Unsupported image format: {reason}",
            details={"path": path, "reason": reason},
        )


class FormatException(UnsupportedFormatException):
    """Exception raised when a buffer cannot be encoded to the requested format."""

    def __init__(self, extension: str, path: Optional[str] = None):
        super().__init__(reason=f"cannot encode to '{extension}'", path=path)
        self.details["extension"] = extension


class DimensionMismatchException(VisionException, ValueError):
    """Exception raised when two inputs have incompatible shapes."""

    def __init__(self, reason: str, expected=None, actual=None):
        super().__init__(
            message=f"Dimension mismatch: {reason}",
            details={"expected": expected, "actual": actual},
        )


class InvalidParameterException(VisionException, ValueError):
    """Exception raised when a parameter is outside its valid domain."""

    def __init__(self, parameter: str, value, reason: str):
        super().__init__(
            message=f"Invalid parameter '{parameter}'={value!r}: {reason}",
            details={"parameter": parameter, "value": value, "reason": reason},
        )


class HashLengthMismatchException(VisionException, ValueError):
    """Exception raised when comparing hashes of different length."""

    def __init__(self, length1: int, length2: int):
        super().__init__(
            message=f"Hash lengths differ: {length1} != {length2}",
            details={"length1": length1, "length2": length2},
        )


class PixelOutOfBoundsException(VisionException, IndexError):
    """Exception raised when a pixel coordinate lies outside the buffer."""

    def __init__(self, x: int, y: int, width: int, height: int):
        super().__init__(
            message=f"Pixel ({x}, {y}) outside {width}x{height} buffer",
            details={"x": x, "y": y, "width": width, "height": height},
        )


class OperationCancelledException(VisionException):
    """Exception raised when a cancellation token aborts a long-running operation."""

    def __init__(self, operation: str):
        super().__init__(
            message=f"Operation cancelled: {operation}", details={"operation": operation}
        )
