"""
Capture Session
Drives one photo booth session through the layers:

    pose sample -> verdict + gate -> countdown -> capture + score -> collection
    collection (best N) -> layout page -> download / print

One session owns its gate, countdown, photo collection and layout cache.
Pose samples and countdown ticks may arrive on different threads; state
changes go through the session lock. The frame grab itself runs outside
the lock while the capture_in_progress flag is held.
"""
import cv2
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence

from error_handlers import BoothError, CaptureInProgressError, NoPhotosError
from layer1_pose import (
    AutoCaptureGate,
    Pose,
    PoseQualityEvaluator,
    PoseVerdict,
    is_capture_ready,
)
from layer1_pose.types import STATUS_CAPTURING, STATUS_COUNTDOWN, STATUS_DETECTING
from layer2_capture import (
    CapturedPhoto,
    CountdownSequencer,
    PhotoCollection,
    PhotoIdSequence,
    PhotoQualityScorer,
    QualityMetrics,
)
from layer3_layout import (
    DEFAULT_VARIANT,
    LayoutResult,
    PrintJob,
    export_artifact,
    generate_layout,
    get_layout_spec,
    print_artifact,
)

logger = logging.getLogger(__name__)


def wall_clock_ms() -> float:
    return time.time() * 1000.0


@dataclass
class SessionConfig:
    """Configuration for a capture session."""
    # Auto-capture
    auto_capture_enabled: bool = True
    cooldown_ms: int = 5000            # Between two automatic captures
    stability_ms: int = 2000           # Pose must be held longer than this
    gate_min_visible: int = 4          # Facial landmarks for the gating check

    # Countdown
    countdown_duration: int = 3        # Ticks
    countdown_interval: float = 1.0    # Seconds per tick

    # Capture
    mirror: bool = True                # Match the mirrored preview
    jpeg_quality: int = 80

    # Layout / output
    best_count: int = 4
    layout_variant: str = DEFAULT_VARIANT
    output_dir: str = "Logs/photo_booth"
    printer: Optional[str] = None


@dataclass
class CaptureOutcome:
    """Result of one capture attempt."""
    success: bool
    photo: Optional[CapturedPhoto] = None
    quality_metrics: Optional[QualityMetrics] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    metadata: Dict = field(default_factory=dict)

    def to_dict(self) -> Dict:
        result = {
            'success': self.success,
            'error': self.error,
            'error_code': self.error_code,
            'metadata': self.metadata,
        }
        if self.photo:
            result['photo'] = self.photo.to_dict()
        if self.quality_metrics:
            result['quality'] = self.quality_metrics.to_dict()
        return result


class CaptureSession:
    """
    One photo booth session.

    Args:
        frame_source: Object with get_frame() -> BGR ndarray; an optional
            is_opened() is honoured by auto-capture
        config: Session configuration
        clock: Returns wall-clock milliseconds
        scheduler: Countdown tick scheduler (see CountdownSequencer)
    """

    def __init__(
        self,
        frame_source,
        config: Optional[SessionConfig] = None,
        clock: Optional[Callable[[], float]] = None,
        scheduler: Optional[Callable] = None,
        evaluator: Optional[PoseQualityEvaluator] = None,
        scorer: Optional[PhotoQualityScorer] = None,
    ):
        self.config = config or SessionConfig()
        self.frame_source = frame_source
        self.clock = clock or wall_clock_ms

        self.evaluator = evaluator or PoseQualityEvaluator()
        self.scorer = scorer or PhotoQualityScorer()
        self.gate = AutoCaptureGate(
            cooldown_ms=self.config.cooldown_ms,
            stability_ms=self.config.stability_ms,
        )
        self.countdown = CountdownSequencer(
            on_complete=self._on_countdown_complete,
            duration=self.config.countdown_duration,
            interval=self.config.countdown_interval,
            scheduler=scheduler,
            on_tick=self._on_countdown_tick,
        )
        self.photos = PhotoCollection()
        self._ids = PhotoIdSequence()

        self._lock = threading.RLock()
        self.capture_in_progress = False
        self.countdown_remaining: Optional[int] = None
        self.current_pose: Optional[Pose] = None
        self.last_verdict = PoseVerdict(
            is_correct=False,
            confidence=0.0,
            message='Ready to detect pose',
            status=STATUS_DETECTING,
        )
        self._layout_cache = None

        logger.info("CaptureSession initialized")
        logger.debug(f"Config: {self.config}")

    # ------------------------------------------------------------------
    # Pose pipeline
    # ------------------------------------------------------------------

    def on_pose(self, pose: Pose, now: Optional[float] = None) -> PoseVerdict:
        """
        Process one pose sample.

        Evaluates the pose, advances the auto-capture gate and starts the
        countdown when the gate triggers.

        Returns:
            PoseVerdict with the session status applied
        """
        now = self.clock() if now is None else now
        verdict = self.evaluator.evaluate(pose)
        pose_ok = verdict.is_correct and is_capture_ready(pose, min_visible=self.config.gate_min_visible)

        with self._lock:
            self.current_pose = pose
            trigger = self.gate.step(
                pose_ok,
                now,
                auto_capture_enabled=self.config.auto_capture_enabled and self._source_ready(),
                capture_in_progress=self.capture_in_progress,
                countdown_active=self.countdown.is_active,
            )
            if trigger is not None:
                self.countdown.activate()

            verdict = verdict.with_status(self._status_for(verdict))
            self.last_verdict = verdict

        logger.debug(f"Pose sample: {verdict.message} ({verdict.confidence:.2f}) gate={self.gate.state.phase}")
        return verdict

    def _status_for(self, verdict: PoseVerdict) -> str:
        if self.countdown.is_active:
            return STATUS_COUNTDOWN
        if self.capture_in_progress:
            return STATUS_CAPTURING
        return verdict.status

    def _source_ready(self) -> bool:
        if self.frame_source is None:
            return False
        is_opened = getattr(self.frame_source, 'is_opened', None)
        return is_opened() if callable(is_opened) else True

    def _on_countdown_tick(self, remaining: int):
        with self._lock:
            self.countdown_remaining = remaining if remaining > 0 else None
        if remaining > 0:
            logger.debug(f"Countdown: {remaining}")

    def _on_countdown_complete(self):
        self.capture(auto=True)

    def cancel_countdown(self) -> bool:
        with self._lock:
            cancelled = self.countdown.deactivate()
            self.countdown_remaining = None
        return cancelled

    # ------------------------------------------------------------------
    # Capture
    # ------------------------------------------------------------------

    def capture(self, auto: bool = False) -> CaptureOutcome:
        """
        Grab, score and store one frame.

        Automatic captures start the cooldown window; manual captures do not.
        Failures are logged and leave the collection unchanged.
        """
        with self._lock:
            if self.capture_in_progress:
                busy = CaptureInProgressError()
                logger.warning(f"[Capture] Rejected: {busy.message}")
                return CaptureOutcome(success=False, error=busy.message, error_code=busy.error_code)
            if self.frame_source is None:
                return CaptureOutcome(
                    success=False,
                    error="No frame source",
                    error_code="NO_FRAME_SOURCE",
                )
            self.capture_in_progress = True
            pose = self.current_pose

        mode = 'auto' if auto else 'manual'
        logger.info(f"[Capture] Starting {mode} capture")
        try:
            frame = self.frame_source.get_frame()
            photo, metrics = self._build_photo(frame, pose, auto)

            with self._lock:
                self.photos.add(photo)
                self._layout_cache = None
                if auto:
                    self.gate.record_capture(self.clock())

            logger.info(f"[Capture] Photo {photo.id} stored, quality {metrics.overall_score:.3f}")
            h, w = frame.shape[:2]
            return CaptureOutcome(
                success=True,
                photo=photo,
                quality_metrics=metrics,
                metadata={'mode': mode, 'size': (w, h)},
            )

        except BoothError as e:
            logger.error(f"[Capture] Failed: {e.error_code}: {e.message}")
            return CaptureOutcome(success=False, error=e.message, error_code=e.error_code)
        except Exception as e:
            logger.error(f"[Capture] Failed: {e}")
            return CaptureOutcome(success=False, error=str(e), error_code="CAPTURE_FAILED")
        finally:
            with self._lock:
                self.capture_in_progress = False

    def _build_photo(self, frame, pose: Optional[Pose], auto: bool):
        if self.config.mirror:
            frame = cv2.flip(frame, 1)

        metrics = self.scorer.assess_bgr(frame)

        ok, buffer = cv2.imencode('.jpg', frame, [cv2.IMWRITE_JPEG_QUALITY, self.config.jpeg_quality])
        if not ok:
            raise BoothError("Failed to encode captured frame", "ENCODE_FAILED")

        photo = CapturedPhoto(
            id=self._ids.next_id(),
            image=buffer.tobytes(),
            timestamp=datetime.now(),
            quality_score=metrics.overall_score,
            pose=pose,
            auto=auto,
        )
        return photo, metrics

    # ------------------------------------------------------------------
    # Photo collection
    # ------------------------------------------------------------------

    def add_photo(self, photo: CapturedPhoto):
        with self._lock:
            self.photos.add(photo)
            self._layout_cache = None

    def remove_photo(self, photo_id: int) -> bool:
        with self._lock:
            removed = self.photos.remove(photo_id)
            if removed:
                self._layout_cache = None
            return removed

    def get_photo(self, photo_id: int) -> Optional[CapturedPhoto]:
        with self._lock:
            return self.photos.get(photo_id)

    def get_best_photos(self, n: Optional[int] = None) -> List[CapturedPhoto]:
        with self._lock:
            return self.photos.get_best_n(self.config.best_count if n is None else n)

    def get_recent_photos(self, n: Optional[int] = None) -> List[CapturedPhoto]:
        with self._lock:
            return self.photos.recent(self.config.best_count if n is None else n)

    def list_photos(self):
        with self._lock:
            return self.photos.snapshot()

    def clear_photos(self):
        with self._lock:
            self.photos.clear()
            self._layout_cache = None

    # ------------------------------------------------------------------
    # Layout
    # ------------------------------------------------------------------

    def generate_layout(self, photos: Optional[Sequence[CapturedPhoto]] = None, variant=None) -> LayoutResult:
        """
        Render the print page.

        Defaults to the best `best_count` photos and the configured variant.
        The page is redrawn only when the photo set or the variant changes.
        """
        spec = get_layout_spec(variant or self.config.layout_variant)
        if photos is None:
            photos = self.get_best_photos()

        key = (tuple(p.id for p in photos), spec)
        with self._lock:
            if self._layout_cache is not None and self._layout_cache[0] == key:
                logger.debug("Layout unchanged, reusing rendered page")
                return self._layout_cache[1]

        result = generate_layout(photos, spec)

        with self._lock:
            self._layout_cache = (key, result)
        return result

    def _require_artifact(self, variant=None):
        result = self.generate_layout(variant=variant)
        if result.is_empty:
            raise NoPhotosError()
        return result.artifact

    def export_layout(self, variant=None, output_dir: Optional[str] = None) -> str:
        """Write the current page PNG; returns its path."""
        artifact = self._require_artifact(variant)
        return export_artifact(artifact, output_dir or self.config.output_dir)

    def print_layout(self, variant=None, printer: Optional[str] = None) -> PrintJob:
        """Build the print PDF and submit it if a printer is configured."""
        artifact = self._require_artifact(variant)
        return print_artifact(
            artifact,
            self.config.output_dir,
            printer=printer or self.config.printer,
        )

    # ------------------------------------------------------------------
    # Settings / lifecycle
    # ------------------------------------------------------------------

    def set_auto_capture(self, enabled: bool):
        with self._lock:
            self.config.auto_capture_enabled = bool(enabled)
        logger.info(f"Auto-capture {'enabled' if enabled else 'disabled'}")

    def set_countdown_duration(self, duration: int):
        with self._lock:
            self.countdown.set_duration(duration)
            self.config.countdown_duration = duration
        logger.info(f"Countdown duration set to {duration}")

    def status(self) -> Dict:
        now = self.clock()
        with self._lock:
            return {
                'verdict': self.last_verdict.to_dict(),
                'auto_capture': self.config.auto_capture_enabled,
                'countdown_active': self.countdown.is_active,
                'countdown_remaining': self.countdown_remaining,
                'capture_in_progress': self.capture_in_progress,
                'gate_phase': self.gate.state.phase,
                'stability_progress': round(self.gate.stability_progress(now), 2),
                'in_cooldown': self.gate.in_cooldown(now),
                'photo_count': len(self.photos),
            }

    def close(self):
        """End the session: stop the countdown and reset the gate."""
        with self._lock:
            self.countdown.deactivate()
            self.countdown_remaining = None
            self.gate.reset()
            self.current_pose = None
        logger.info("CaptureSession closed")
