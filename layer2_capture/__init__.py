"""
Layer 2 — Capture
Camera frame source, countdown, photo quality scoring and the photo
collection that keeps every capture of the session.
"""
from .camera import CameraHandler, CameraSettings
from .countdown import CountdownSequencer
from .quality import PhotoQualityScorer, QualityMetrics, score_frame, score_bgr_frame
from .photos import CapturedPhoto, PhotoCollection, PhotoIdSequence

__all__ = [
    'CameraHandler',
    'CameraSettings',
    'CountdownSequencer',
    'PhotoQualityScorer',
    'QualityMetrics',
    'score_frame',
    'score_bgr_frame',
    'CapturedPhoto',
    'PhotoCollection',
    'PhotoIdSequence',
]
