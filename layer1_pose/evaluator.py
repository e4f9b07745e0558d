"""
Layer 1 — Pose Quality Evaluation
Judges whether a single pose sample is a usable passport-style pose:
face visible, shoulders level, head centered in the frame.
"""
import logging
from typing import Dict, Optional

from .types import (
    FACE_PARTS,
    Pose,
    PoseVerdict,
    STATUS_DETECTING,
    STATUS_READY,
)

logger = logging.getLogger(__name__)

MSG_NOT_IN_FRAME = 'Position yourself in the frame'
MSG_SHOULDERS = 'Keep your shoulders level'
MSG_CENTER = 'Center yourself in the frame'
MSG_ALMOST = 'Almost there, stay still'
MSG_PERFECT = 'Perfect pose! Stay still...'


def count_visible_face_parts(pose: Pose, min_score: float = 0.5) -> int:
    """Number of facial landmarks scored above min_score."""
    count = 0
    for part in FACE_PARTS:
        kp = pose.find(part)
        if kp is not None and kp.score > min_score:
            count += 1
    return count


def is_capture_ready(pose: Pose, min_visible: int = 4, min_score: float = 0.5) -> bool:
    """
    Auto-capture gating check.

    Stricter than the verdict (4 facial landmarks instead of 3) and ignores
    shoulder level and centering.
    """
    return count_visible_face_parts(pose, min_score) >= min_visible


class PoseQualityEvaluator:
    """
    Maps one pose sample to a PoseVerdict.
    Stateless; safe to share between sessions.
    """

    # Source frame is assumed to be 640px wide
    THRESHOLDS = {
        'min_keypoint_score': 0.5,   # Landmark counts as visible above this
        'min_visible_face': 3,       # Fewer visible landmarks = not in frame
        'max_shoulder_diff': 50.0,   # Pixels
        'center_min_x': 200.0,       # Nose x must lie strictly inside
        'center_max_x': 440.0,
        'min_confidence': 0.7,       # Strictly greater is required
    }

    def __init__(self, thresholds: Optional[Dict] = None):
        self.thresholds = {**self.THRESHOLDS, **(thresholds or {})}

    def evaluate(self, pose: Pose) -> PoseVerdict:
        t = self.thresholds
        visible = count_visible_face_parts(pose, t['min_keypoint_score'])

        if visible < t['min_visible_face']:
            return PoseVerdict(
                is_correct=False,
                confidence=0.0,
                message=MSG_NOT_IN_FRAME,
                status=STATUS_DETECTING,
                details={'visible_face_parts': visible},
            )

        confidence = visible / len(FACE_PARTS)
        details = {'visible_face_parts': visible}

        nose = pose.find('nose')
        left_shoulder = pose.find('leftShoulder')
        right_shoulder = pose.find('rightShoulder')

        if nose is None or left_shoulder is None or right_shoulder is None:
            # Alignment cannot be judged without the nose/shoulder triple
            return PoseVerdict(
                is_correct=False,
                confidence=confidence,
                message=MSG_NOT_IN_FRAME,
                status=STATUS_DETECTING,
                details=details,
            )

        shoulder_diff = abs(left_shoulder.y - right_shoulder.y)
        is_level = shoulder_diff < t['max_shoulder_diff']
        is_centered = t['center_min_x'] < nose.x < t['center_max_x']
        details.update(shoulder_diff=shoulder_diff, nose_x=nose.x)

        if is_level and is_centered and confidence > t['min_confidence']:
            return PoseVerdict(
                is_correct=True,
                confidence=confidence,
                message=MSG_PERFECT,
                status=STATUS_READY,
                details=details,
            )

        if not is_level:
            message = MSG_SHOULDERS
        elif not is_centered:
            message = MSG_CENTER
        else:
            message = MSG_ALMOST

        return PoseVerdict(
            is_correct=False,
            confidence=confidence,
            message=message,
            status=STATUS_DETECTING,
            details=details,
        )


_default_evaluator = PoseQualityEvaluator()


def evaluate_pose(pose: Pose) -> PoseVerdict:
    """Evaluate with the default thresholds."""
    return _default_evaluator.evaluate(pose)
