"""
Layer 1 — Pose
Pose sample types, per-sample quality verdicts and the auto-capture gate
that turns a stable good pose into a countdown trigger.
"""
from .types import Keypoint, Pose, PoseVerdict, FACE_PARTS, PART_NAMES
from .evaluator import (
    PoseQualityEvaluator,
    evaluate_pose,
    is_capture_ready,
    count_visible_face_parts,
)
from .gate import AutoCaptureGate, GateState, CaptureTrigger, advance
from .overlay import draw_pose

__all__ = [
    'Keypoint',
    'Pose',
    'PoseVerdict',
    'FACE_PARTS',
    'PART_NAMES',
    'PoseQualityEvaluator',
    'evaluate_pose',
    'is_capture_ready',
    'count_visible_face_parts',
    'AutoCaptureGate',
    'GateState',
    'CaptureTrigger',
    'advance',
    'draw_pose',
]
