"""
Object detection and segmentation.

Template matching by normalized cross-correlation with non-maximum
suppression, color and HSV segmentation to binary masks, connected-component
blob analysis, Moore-neighbour contour tracing and binary morphology.
"""

import math
from typing import Dict, List, Optional, Sequence, Tuple, Union

import cv2
import numpy as np

from algorithms import labeling
from algorithms.base import ImageSource, VisionComponent
from config import Settings
from domain_types import ROI, DetectionConstants, MorphOperation, Point
from exceptions import DimensionMismatchException, InvalidParameterException
from image.raster import RasterBuffer
from models import Blob, Contour, TemplateMatch
from utils import timer

ColorSpec = Union[Dict[str, int], Sequence[int]]


def _mask_buffer(mask: np.ndarray) -> RasterBuffer:
    """Opaque white-on-black buffer from a boolean mask."""
    value = np.where(mask, 255, 0).astype(np.uint8)
    alpha = np.full(mask.shape, 255, dtype=np.uint8)
    return RasterBuffer(np.stack([value, value, value, alpha], axis=-1))


def _foreground(mask: RasterBuffer) -> np.ndarray:
    return mask.pixels[..., 0] > DetectionConstants.MASK_FOREGROUND_THRESHOLD


def non_maximum_suppression(
    matches: List[TemplateMatch], iou_threshold: float
) -> List[TemplateMatch]:
    """
    Keep the best-scoring box of each overlapping cluster.

    Args:
        matches: Candidate matches in raster order
        iou_threshold: Boxes overlapping a kept box by more than this are dropped

    Returns:
        Kept matches, best first
    """
    # Stable sort: ties keep raster order
    ordered = sorted(matches, key=lambda m: m.confidence, reverse=True)

    keep: List[TemplateMatch] = []
    for match in ordered:
        box = match.bounding_box
        if all(box.iou(kept.bounding_box) <= iou_threshold for kept in keep):
            keep.append(match)
    return keep


def normalized_cross_correlation(source: np.ndarray, template: np.ndarray) -> np.ndarray:
    """
    NCC score of the template at every valid offset, clamped to [0, 1].

    Windows (or templates) with no intensity variation score 0.

    Args:
        source: Float luma of shape (H, W)
        template: Float luma of shape (h, w) with h <= H and w <= W

    Returns:
        float64 array of shape (H - h + 1, W - w + 1)
    """
    th, tw = template.shape
    out_shape = (source.shape[0] - th + 1, source.shape[1] - tw + 1)
    if np.ptp(template) <= DetectionConstants.NCC_EPSILON:
        return np.zeros(out_shape, dtype=np.float64)

    scores = cv2.matchTemplate(
        source.astype(np.float32), template.astype(np.float32), cv2.TM_CCOEFF_NORMED
    ).astype(np.float64)

    # Flat windows: local max equals local min over the template footprint
    kernel = np.ones((th, tw), dtype=np.uint8)
    src32 = source.astype(np.float32)
    local_max = cv2.dilate(src32, kernel, anchor=(0, 0), borderType=cv2.BORDER_REPLICATE)
    local_min = cv2.erode(src32, kernel, anchor=(0, 0), borderType=cv2.BORDER_REPLICATE)
    flat = (local_max - local_min)[: out_shape[0], : out_shape[1]] <= DetectionConstants.NCC_EPSILON

    scores[flat] = 0.0
    scores[~np.isfinite(scores)] = 0.0
    return np.clip(scores, 0.0, 1.0)


class ObjectDetector(VisionComponent):
    """
    Finds objects and regions in images.

    Segmentation methods return mask buffers; blob, contour and morphology
    methods read masks where foreground is r > 127.
    """

    def __init__(self, settings: Optional[Settings] = None):
        super().__init__(settings)
        self.config = self.settings.detection

    # ------------------------------------------------------------------
    # Template matching
    # ------------------------------------------------------------------

    def template_match(
        self,
        source: ImageSource,
        template: ImageSource,
        threshold: Optional[float] = None,
        iou_threshold: Optional[float] = None,
    ) -> List[TemplateMatch]:
        """
        Locate a template by normalized cross-correlation of luma.

        Args:
            source: Image searched
            template: Image searched for
            threshold: Minimum score (0..1)
            iou_threshold: NMS overlap limit

        Returns:
            Matches after non-maximum suppression, best first

        Raises:
            DimensionMismatchException: Template larger than source
        """
        threshold = self._default(threshold, self.config.template_threshold)
        iou_threshold = self._default(iou_threshold, self.config.nms_iou_threshold)

        image = self._resolve(source)
        patch = self._resolve(template)
        if patch.width > image.width or patch.height > image.height:
            raise DimensionMismatchException(
                "template is larger than source image",
                expected=(image.width, image.height),
                actual=(patch.width, patch.height),
            )

        with timer() as t:
            scores = normalized_cross_correlation(image.luma(), patch.luma())
            ys, xs = np.nonzero(scores >= threshold)
            candidates = [
                TemplateMatch(
                    bounding_box=ROI(x=x, y=y, width=patch.width, height=patch.height),
                    confidence=float(scores[y, x]),
                )
                for y, x in zip(ys.tolist(), xs.tolist())
            ]
            kept = non_maximum_suppression(candidates, iou_threshold)

        self.logger.debug(
            f"Template match: {len(candidates)} candidates, {len(kept)} after NMS in {t['ms']}ms"
        )
        return kept

    # ------------------------------------------------------------------
    # Segmentation
    # ------------------------------------------------------------------

    @staticmethod
    def _color_tuple(color: ColorSpec) -> Tuple[float, float, float]:
        if isinstance(color, dict):
            return float(color["r"]), float(color["g"]), float(color["b"])
        r, g, b = color[:3]
        return float(r), float(g), float(b)

    def segment_by_color(
        self, source: ImageSource, target_color: ColorSpec, tolerance: Optional[float] = None
    ) -> RasterBuffer:
        """
        Mask pixels within Euclidean RGB distance ``tolerance`` of a color.

        Args:
            source: Image to segment
            target_color: {"r", "g", "b"} dict or (r, g, b) sequence
            tolerance: Maximum distance (inclusive)
        """
        tolerance = self._default(tolerance, self.config.color_tolerance)
        self._require_positive("tolerance", tolerance, allow_zero=True)

        rgb = self._resolve(source).pixels[..., :3].astype(np.float64)
        target = np.array(self._color_tuple(target_color), dtype=np.float64)
        distance = np.sqrt(((rgb - target) ** 2).sum(axis=-1))
        return _mask_buffer(distance <= tolerance)

    def segment_by_hsv(
        self,
        source: ImageSource,
        h_range: Tuple[float, float],
        s_range: Tuple[float, float],
        v_range: Tuple[float, float],
    ) -> RasterBuffer:
        """Mask pixels whose H, S and V all fall inside inclusive ranges."""
        hsv = self._resolve(source).hsv()
        inside = np.ones(hsv.shape[:2], dtype=bool)
        for channel, (low, high) in enumerate((h_range, s_range, v_range)):
            inside &= (hsv[..., channel] >= low) & (hsv[..., channel] <= high)
        return _mask_buffer(inside)

    # ------------------------------------------------------------------
    # Blobs and contours
    # ------------------------------------------------------------------

    def _components(self, mask: RasterBuffer, min_area: int) -> Tuple[np.ndarray, List[Dict]]:
        foreground = _foreground(mask)
        labels = labeling.label_components(foreground)
        stats = [s for s in labeling.component_statistics(labels) if s["area"] >= min_area]
        return foreground, stats

    def detect_blobs(self, mask: ImageSource, min_area: Optional[int] = None) -> List[Blob]:
        """
        Connected components (4-connectivity) of a mask.

        Args:
            mask: Mask image; foreground is r > 127
            min_area: Components smaller than this are dropped

        Returns:
            Blobs ordered by first appearance in raster order
        """
        min_area = self._default(min_area, self.config.blob_min_area)
        self._require_positive("min_area", min_area, allow_zero=True)

        _, stats = self._components(self._resolve(mask), min_area)
        blobs = []
        for s in stats:
            perimeter = s["perimeter"]
            circularity = 4 * math.pi * s["area"] / (perimeter * perimeter) if perimeter > 0 else 0.0
            x, y, w, h = s["bbox"]
            blobs.append(
                Blob(
                    label=s["label"],
                    area=s["area"],
                    centroid=Point(x=s["centroid"][0], y=s["centroid"][1]),
                    bounding_box=ROI(x=x, y=y, width=w, height=h),
                    perimeter=perimeter,
                    circularity=circularity,
                )
            )

        self.logger.debug(f"Detected {len(blobs)} blobs")
        return blobs

    def find_contours(
        self,
        mask: ImageSource,
        min_area: Optional[int] = None,
        max_steps: Optional[int] = None,
    ) -> List[Contour]:
        """
        Trace the outer boundary of each blob.

        The walk starts at the blob's first pixel in raster order, initially
        searching north.
        """
        min_area = self._default(min_area, self.config.contour_min_area)
        max_steps = self._default(max_steps, self.config.contour_max_steps)
        self._require_positive("max_steps", max_steps)

        foreground, stats = self._components(self._resolve(mask), min_area)
        contours = []
        for s in stats:
            points = labeling.trace_boundary(foreground, s["start"], max_steps)
            contours.append(
                Contour(
                    points=points,
                    label=s["label"],
                    area=s["area"],
                    centroid=Point(x=s["centroid"][0], y=s["centroid"][1]),
                )
            )
        return contours

    # ------------------------------------------------------------------
    # Morphology
    # ------------------------------------------------------------------

    def _morph_kernel(self, kernel_size: Optional[int]) -> np.ndarray:
        kernel_size = self._default(kernel_size, self.config.morph_kernel_size)
        if kernel_size < 1:
            raise InvalidParameterException("kernel_size", kernel_size, "must be at least 1")
        side = 2 * (kernel_size // 2) + 1
        return np.ones((side, side), dtype=np.uint8)

    @staticmethod
    def _gray_result(channel: np.ndarray) -> RasterBuffer:
        alpha = np.full(channel.shape, 255, dtype=np.uint8)
        return RasterBuffer(np.stack([channel, channel, channel, alpha], axis=-1))

    def erode(self, mask: ImageSource, kernel_size: Optional[int] = None) -> RasterBuffer:
        """Minimum of the r channel over a square neighbourhood (edges clamped)."""
        kernel = self._morph_kernel(kernel_size)
        channel = np.ascontiguousarray(self._resolve(mask).pixels[..., 0])
        return self._gray_result(cv2.erode(channel, kernel, borderType=cv2.BORDER_REPLICATE))

    def dilate(self, mask: ImageSource, kernel_size: Optional[int] = None) -> RasterBuffer:
        """Maximum of the r channel over a square neighbourhood (edges clamped)."""
        kernel = self._morph_kernel(kernel_size)
        channel = np.ascontiguousarray(self._resolve(mask).pixels[..., 0])
        return self._gray_result(cv2.dilate(channel, kernel, borderType=cv2.BORDER_REPLICATE))

    def opening(self, mask: ImageSource, kernel_size: Optional[int] = None) -> RasterBuffer:
        return self.dilate(self.erode(mask, kernel_size), kernel_size)

    def closing(self, mask: ImageSource, kernel_size: Optional[int] = None) -> RasterBuffer:
        return self.erode(self.dilate(mask, kernel_size), kernel_size)

    def morphology(
        self,
        mask: ImageSource,
        operation: Union[MorphOperation, str],
        kernel_size: Optional[int] = None,
    ) -> RasterBuffer:
        """Dispatch a morphology operation by name."""
        try:
            operation = MorphOperation(operation)
        except ValueError as e:
            raise InvalidParameterException("operation", operation, "unknown operation") from e

        handlers = {
            MorphOperation.ERODE: self.erode,
            MorphOperation.DILATE: self.dilate,
            MorphOperation.OPEN: self.opening,
            MorphOperation.CLOSE: self.closing,
        }
        return handlers[operation](mask, kernel_size)
