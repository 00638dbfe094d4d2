"""
Raster file decoding and encoding.

Formats are identified by header bytes on decode and by file extension on
encode. OpenCV handles JPEG, PNG, BMP and WEBP; Pillow handles GIF, which
OpenCV builds do not reliably read or write. All arrays crossing this module
are uint8 RGBA of shape (H, W, 4).
"""

import io
import logging
from pathlib import Path
from typing import Optional, Union

import cv2
import numpy as np
from PIL import Image, UnidentifiedImageError

from domain_types import ImageFormat, RasterConstants
from exceptions import FormatException, ImageFileNotFoundException, UnsupportedFormatException

logger = logging.getLogger(__name__)

# Extension -> format used when encoding
EXTENSION_FORMATS = {
    ".jpg": ImageFormat.JPEG,
    ".jpeg": ImageFormat.JPEG,
    ".png": ImageFormat.PNG,
    ".gif": ImageFormat.GIF,
    ".bmp": ImageFormat.BMP,
    ".webp": ImageFormat.WEBP,
}

# Formats written without an alpha channel
OPAQUE_FORMATS = (ImageFormat.JPEG, ImageFormat.BMP)


def sniff_format(header: bytes) -> Optional[ImageFormat]:
    """
    Identify an image format from its leading bytes.

    Args:
        header: At least the first 12 bytes of the file

    Returns:
        ImageFormat or None if the signature is not recognised
    """
    if header[:3] == b"\xff\xd8\xff":
        return ImageFormat.JPEG
    if header[:8] == b"\x89PNG\r\n\x1a\n":
        return ImageFormat.PNG
    if header[:6] in (b"GIF87a", b"GIF89a"):
        return ImageFormat.GIF
    if header[:2] == b"BM":
        return ImageFormat.BMP
    if header[:4] == b"RIFF" and header[8:12] == b"WEBP":
        return ImageFormat.WEBP
    return None


def _to_rgba(image: np.ndarray) -> np.ndarray:
    """Normalize an OpenCV decode result (gray, BGR or BGRA; 8 or 16 bit) to uint8 RGBA."""
    if image.dtype == np.uint16:
        image = (image // 257).astype(np.uint8)
    elif image.dtype != np.uint8:
        image = np.clip(image, 0, 255).astype(np.uint8)

    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2RGBA)
    if image.shape[2] == 3:
        return cv2.cvtColor(image, cv2.COLOR_BGR2RGBA)
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2RGBA)
    raise UnsupportedFormatException(f"unexpected channel count {image.shape[2]}")


def decode_bytes(data: bytes, path: Optional[str] = None) -> np.ndarray:
    """
    Decode encoded image bytes to an RGBA array.

    Args:
        data: Encoded file contents
        path: Source path, used only for error details

    Returns:
        uint8 array of shape (H, W, 4)

    Raises:
        UnsupportedFormatException: Unknown signature or undecodable payload
    """
    fmt = sniff_format(data[:12])
    if fmt is None:
        raise UnsupportedFormatException("unrecognised file signature", path=path)

    if fmt == ImageFormat.GIF:
        try:
            with Image.open(io.BytesIO(data)) as img:
                return np.array(img.convert("RGBA"), dtype=np.uint8)
        except (UnidentifiedImageError, OSError) as e:
            raise UnsupportedFormatException(f"corrupt GIF data: {e}", path=path) from e

    decoded = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_UNCHANGED)
    if decoded is None or decoded.size == 0:
        raise UnsupportedFormatException(f"corrupt {fmt.value} data", path=path)

    return _to_rgba(decoded)


def read_image(path: Union[str, Path]) -> np.ndarray:
    """
    Read and decode an image file.

    Raises:
        ImageFileNotFoundException: Path does not exist
        UnsupportedFormatException: File is not a supported image
    """
    path = Path(path)
    if not path.is_file():
        raise ImageFileNotFoundException(str(path))

    data = path.read_bytes()
    rgba = decode_bytes(data, path=str(path))
    logger.debug(f"Decoded {path.name}: {rgba.shape[1]}x{rgba.shape[0]}")
    return rgba


def encode_bytes(pixels: np.ndarray, extension: str, quality: int) -> bytes:
    """
    Encode an RGBA array to the format named by a file extension.

    Args:
        pixels: uint8 RGBA array
        extension: Target extension including the dot (e.g. ".png")
        quality: 0..100; JPEG/WEBP quality or PNG compression level

    Returns:
        Encoded bytes

    Raises:
        FormatException: Unsupported extension or encoder failure
    """
    ext = extension.lower()
    fmt = EXTENSION_FORMATS.get(ext)
    if fmt is None:
        raise FormatException(ext)

    quality = int(max(RasterConstants.MIN_QUALITY, min(RasterConstants.MAX_QUALITY, quality)))

    if fmt in OPAQUE_FORMATS and (pixels[..., 3] < 255).any():
        logger.warning(f"{fmt.value} output has no alpha channel; alpha is dropped")

    if fmt == ImageFormat.GIF:
        out = io.BytesIO()
        Image.fromarray(np.ascontiguousarray(pixels)).save(out, format="GIF")
        return out.getvalue()

    if fmt == ImageFormat.JPEG:
        image = cv2.cvtColor(pixels, cv2.COLOR_RGBA2BGR)
        params = [cv2.IMWRITE_JPEG_QUALITY, quality]
    elif fmt == ImageFormat.PNG:
        image = cv2.cvtColor(pixels, cv2.COLOR_RGBA2BGRA)
        # Map quality to PNG compression (0-9 scale, higher = more compression)
        compression = int(9 - quality / 10)
        params = [cv2.IMWRITE_PNG_COMPRESSION, max(0, min(9, compression))]
    elif fmt == ImageFormat.WEBP:
        image = cv2.cvtColor(pixels, cv2.COLOR_RGBA2BGRA)
        params = [cv2.IMWRITE_WEBP_QUALITY, max(1, quality)]
    else:
        image = cv2.cvtColor(pixels, cv2.COLOR_RGBA2BGR)
        params = []

    success, buffer = cv2.imencode(ext, image, params)
    if not success:
        raise FormatException(ext)

    return buffer.tobytes()


def write_image(pixels: np.ndarray, path: Union[str, Path], quality: int) -> None:
    """Encode an RGBA array and write it to a file chosen by extension."""
    path = Path(path)
    data = encode_bytes(pixels, path.suffix, quality)
    try:
        path.write_bytes(data)
    except OSError as e:
        logger.error(f"Failed to write image {path}: {e}")
        raise
    logger.debug(f"Encoded {path.name} ({len(data)} bytes)")
