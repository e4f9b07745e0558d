"""
Layer 2 — Photo Quality Scoring
Cheap brightness + sharpness heuristic for ranking captured frames.

Sharpness is the mean absolute brightness difference between neighbouring
pixels in raw buffer order. Neighbours wrap across row ends, so this is
not a 2-D gradient. Scores from earlier sessions depend on this exact
formula; keep it.
"""
import cv2
import numpy as np
import logging
from dataclasses import dataclass
from typing import Dict

from error_handlers import InvalidFrameError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QualityMetrics:
    """Container for photo quality metrics."""
    avg_brightness: float     # Mean of (R+G+B)/3, 0-255
    edge_strength: float      # Sum of neighbour brightness differences
    normalized_edge: float    # edge_strength / pixel count
    brightness_score: float   # 1 at mid-gray, 0 at black or white
    sharpness_score: float    # normalized_edge / 20, capped at 1
    overall_score: float      # Mean of the two scores, 0-1

    def to_dict(self) -> Dict:
        return {
            'avg_brightness': round(self.avg_brightness, 2),
            'normalized_edge': round(self.normalized_edge, 2),
            'brightness_score': round(self.brightness_score, 4),
            'sharpness_score': round(self.sharpness_score, 4),
            'overall_score': round(self.overall_score, 4),
        }


class PhotoQualityScorer:
    """
    Scores RGBA pixel buffers.
    Total over any non-empty buffer; empty input raises InvalidFrameError.
    """

    OPTIMAL_BRIGHTNESS = 128.0
    EDGE_NORMALIZER = 20.0

    def assess(self, pixels) -> QualityMetrics:
        """
        Assess an RGBA buffer.

        Args:
            pixels: numpy array of shape (h, w, 4), or any flat sequence
                of R, G, B, A components

        Returns:
            QualityMetrics
        """
        rgba = self._as_rgba(pixels)
        pixel_count = rgba.shape[0]

        brightness = rgba[:, :3].sum(axis=1) / 3.0
        avg_brightness = float(brightness.mean())

        # Neighbour differences in flat order, last pixel has no neighbour
        edge_strength = float(np.abs(np.diff(brightness)).sum())
        normalized_edge = edge_strength / pixel_count

        brightness_score = 1.0 - abs(avg_brightness - self.OPTIMAL_BRIGHTNESS) / self.OPTIMAL_BRIGHTNESS
        brightness_score = min(max(brightness_score, 0.0), 1.0)
        sharpness_score = min(normalized_edge / self.EDGE_NORMALIZER, 1.0)

        return QualityMetrics(
            avg_brightness=avg_brightness,
            edge_strength=edge_strength,
            normalized_edge=normalized_edge,
            brightness_score=brightness_score,
            sharpness_score=sharpness_score,
            overall_score=(brightness_score + sharpness_score) / 2.0,
        )

    def score(self, pixels) -> float:
        return self.assess(pixels).overall_score

    def assess_bgr(self, frame: np.ndarray) -> QualityMetrics:
        """Assess an OpenCV BGR or BGRA frame."""
        if frame is None or frame.size == 0:
            raise InvalidFrameError("empty frame", shape=None if frame is None else list(frame.shape))
        if frame.ndim == 3 and frame.shape[2] == 4:
            rgba = cv2.cvtColor(frame, cv2.COLOR_BGRA2RGBA)
        elif frame.ndim == 3 and frame.shape[2] == 3:
            rgba = cv2.cvtColor(frame, cv2.COLOR_BGR2RGBA)
        elif frame.ndim == 2:
            rgba = cv2.cvtColor(frame, cv2.COLOR_GRAY2RGBA)
        else:
            raise InvalidFrameError("unsupported channel layout", shape=list(frame.shape))
        return self.assess(rgba)

    @staticmethod
    def _as_rgba(pixels) -> np.ndarray:
        if pixels is None:
            raise InvalidFrameError("no pixel data")

        arr = np.asarray(pixels)
        if arr.ndim == 3 and (arr.shape[0] == 0 or arr.shape[1] == 0):
            raise InvalidFrameError("zero-dimension frame", shape=list(arr.shape))
        if arr.size == 0:
            raise InvalidFrameError("empty pixel buffer", shape=list(arr.shape))
        if arr.size % 4 != 0:
            raise InvalidFrameError("buffer length is not a multiple of 4 (RGBA)", shape=list(arr.shape))

        return arr.reshape(-1, 4).astype(np.float64)


_default_scorer = PhotoQualityScorer()


def score_frame(pixels) -> float:
    """Quality score (0-1) of an RGBA buffer."""
    return _default_scorer.score(pixels)


def score_bgr_frame(frame: np.ndarray) -> float:
    """Quality score (0-1) of an OpenCV BGR frame."""
    return _default_scorer.assess_bgr(frame).overall_score
