"""
Layer 2 — Photo Collection
Captured photos in capture order, with best-N retrieval by quality score.
"""
import itertools
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterator, List, Optional, Tuple

from layer1_pose.types import Pose

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CapturedPhoto:
    """One captured frame, JPEG-encoded, with its quality score."""
    id: int
    image: bytes
    timestamp: datetime
    quality_score: float
    pose: Optional[Pose] = None
    auto: bool = False

    def __post_init__(self):
        if not 0.0 <= self.quality_score <= 1.0:
            raise ValueError(f"quality_score must be in [0, 1], got {self.quality_score}")

    def to_dict(self) -> Dict:
        """Metadata only; the image is served separately."""
        return {
            'id': self.id,
            'timestamp': self.timestamp.isoformat(),
            'quality_score': round(self.quality_score, 4),
            'auto': self.auto,
            'size_bytes': len(self.image),
            'has_pose': self.pose is not None,
        }


class PhotoIdSequence:
    """Monotonically increasing photo ids, starting at 1."""

    def __init__(self, start: int = 1):
        self._counter = itertools.count(start)

    def next_id(self) -> int:
        return next(self._counter)


class PhotoCollection:
    """
    Ordered store of captured photos.
    Single writer: callers serialize mutation. Readers should use snapshot().
    """

    def __init__(self):
        self._photos: List[CapturedPhoto] = []

    def add(self, photo: CapturedPhoto):
        self._photos.append(photo)
        logger.info(f"Photo {photo.id} added (quality {photo.quality_score:.3f}, total {len(self._photos)})")

    def remove(self, photo_id: int) -> bool:
        """
        Remove a photo by id.

        Returns:
            bool: True if a photo was removed, False if none matched
        """
        before = len(self._photos)
        self._photos = [p for p in self._photos if p.id != photo_id]
        removed = len(self._photos) != before
        if removed:
            logger.info(f"Photo {photo_id} removed")
        else:
            logger.debug(f"Photo {photo_id} not in collection")
        return removed

    def get(self, photo_id: int) -> Optional[CapturedPhoto]:
        for photo in self._photos:
            if photo.id == photo_id:
                return photo
        return None

    def get_best_n(self, n: int) -> List[CapturedPhoto]:
        """Top n by quality score; ties keep capture order."""
        if n <= 0:
            return []
        # sorted() is stable
        ranked = sorted(self._photos, key=lambda p: p.quality_score, reverse=True)
        return ranked[:n]

    def recent(self, n: int) -> List[CapturedPhoto]:
        """Last n photos in capture order."""
        if n <= 0:
            return []
        return self._photos[-n:]

    def clear(self):
        count = len(self._photos)
        self._photos = []
        logger.info(f"Collection cleared ({count} photos)")

    def snapshot(self) -> Tuple[CapturedPhoto, ...]:
        return tuple(self._photos)

    def __len__(self) -> int:
        return len(self._photos)

    def __iter__(self) -> Iterator[CapturedPhoto]:
        return iter(self.snapshot())

    def __contains__(self, photo_id) -> bool:
        return self.get(photo_id) is not None
