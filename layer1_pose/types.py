"""
Layer 1 — Pose Types
Keypoint / Pose containers as delivered by the pose estimation model,
and the verdict derived from a single pose sample.
"""
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

# PoseNet part names, in model output order
PART_NAMES = (
    'nose',
    'leftEye', 'rightEye',
    'leftEar', 'rightEar',
    'leftShoulder', 'rightShoulder',
    'leftElbow', 'rightElbow',
    'leftWrist', 'rightWrist',
    'leftHip', 'rightHip',
    'leftKnee', 'rightKnee',
    'leftAnkle', 'rightAnkle',
)

FACE_PARTS = ('nose', 'leftEye', 'rightEye', 'leftEar', 'rightEar')

# Verdict status values
STATUS_DETECTING = 'detecting'
STATUS_READY = 'ready'
STATUS_CAPTURING = 'capturing'
STATUS_COUNTDOWN = 'countdown'


@dataclass(frozen=True)
class Keypoint:
    """One named body landmark in source-frame pixel space."""
    part: str
    x: float
    y: float
    score: float

    @property
    def position(self) -> Tuple[float, float]:
        return (self.x, self.y)

    @classmethod
    def from_dict(cls, data: Dict) -> 'Keypoint':
        """Build from PoseNet shape: {part, position: {x, y}, score}."""
        if not isinstance(data, dict):
            raise TypeError(f"Keypoint must be an object, got {type(data).__name__}")
        position = data.get('position') or {}
        if not isinstance(position, dict):
            raise TypeError(f"Keypoint position must be an object, got {type(position).__name__}")
        return cls(
            part=str(data['part']),
            x=float(position.get('x', data.get('x', 0.0))),
            y=float(position.get('y', data.get('y', 0.0))),
            score=float(data.get('score', 0.0)),
        )

    def to_dict(self) -> Dict:
        return {
            'part': self.part,
            'position': {'x': self.x, 'y': self.y},
            'score': self.score,
        }


@dataclass(frozen=True)
class Pose:
    """Full set of keypoints for one sampled frame."""
    keypoints: Tuple[Keypoint, ...] = ()
    score: float = 0.0

    def find(self, part: str) -> Optional[Keypoint]:
        """First keypoint with the given part name, or None."""
        for kp in self.keypoints:
            if kp.part == part:
                return kp
        return None

    @classmethod
    def from_dict(cls, data: Dict) -> 'Pose':
        raw = data.get('keypoints', [])
        if not isinstance(raw, list):
            raise TypeError(f"keypoints must be a list, got {type(raw).__name__}")
        keypoints = tuple(Keypoint.from_dict(kp) for kp in raw)
        return cls(keypoints=keypoints, score=float(data.get('score', 0.0)))

    def to_dict(self) -> Dict:
        return {
            'score': self.score,
            'keypoints': [kp.to_dict() for kp in self.keypoints],
        }


@dataclass(frozen=True)
class PoseVerdict:
    """Correctness judgment of a single pose sample."""
    is_correct: bool
    confidence: float
    message: str
    status: str = STATUS_DETECTING
    details: Dict = field(default_factory=dict, compare=False)

    def with_status(self, status: str) -> 'PoseVerdict':
        return PoseVerdict(
            is_correct=self.is_correct,
            confidence=self.confidence,
            message=self.message,
            status=status,
            details=self.details,
        )

    def to_dict(self) -> Dict:
        return {
            'is_correct': self.is_correct,
            'confidence': round(self.confidence, 2),
            'message': self.message,
            'status': self.status,
        }
