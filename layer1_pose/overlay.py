"""
Layer 1 — Pose Overlay
Draws detected keypoints and the upper-body skeleton on a preview frame.
"""
import cv2
import numpy as np

from .types import Pose, PoseVerdict

# BGR
COLOR_CORRECT = (129, 185, 16)
COLOR_ADJUST = (11, 158, 245)

MIN_DRAW_SCORE = 0.3

CONNECTIONS = (
    ('nose', 'leftEye'), ('nose', 'rightEye'),
    ('leftEye', 'leftEar'), ('rightEye', 'rightEar'),
    ('leftShoulder', 'rightShoulder'),
    ('leftShoulder', 'leftElbow'), ('rightShoulder', 'rightElbow'),
)


def draw_pose(frame: np.ndarray, pose: Pose, verdict: PoseVerdict) -> np.ndarray:
    """
    Draw pose on a copy of the frame.

    Args:
        frame: BGR preview frame
        pose: Pose sample in the same pixel space as the frame
        verdict: Verdict for the sample (selects the color)

    Returns:
        numpy.ndarray: Annotated copy
    """
    display = frame.copy()
    color = COLOR_CORRECT if verdict.is_correct else COLOR_ADJUST

    for kp in pose.keypoints:
        if kp.score > MIN_DRAW_SCORE:
            cv2.circle(display, (int(kp.x), int(kp.y)), 6, color, -1, cv2.LINE_AA)

    for start, end in CONNECTIONS:
        a = pose.find(start)
        b = pose.find(end)
        if a is None or b is None:
            continue
        if a.score > MIN_DRAW_SCORE and b.score > MIN_DRAW_SCORE:
            cv2.line(display, (int(a.x), int(a.y)), (int(b.x), int(b.y)), color, 2, cv2.LINE_AA)

    # Status banner
    cv2.putText(
        display,
        f"{verdict.message} ({round(verdict.confidence * 100)}%)",
        (16, 32),
        cv2.FONT_HERSHEY_SIMPLEX,
        0.7,
        color,
        2,
        cv2.LINE_AA,
    )
    return display
