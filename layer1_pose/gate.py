"""
Layer 1 — Auto-Capture Gate
Decides when a held pose should start the capture countdown.

The pose must stay good for longer than the stability window, and no
trigger fires within the cooldown window after the last capture. The two
windows are measured independently against wall-clock milliseconds.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN_MS = 5000
DEFAULT_STABILITY_MS = 2000

PHASE_IDLE = 'idle'
PHASE_STABILIZING = 'stabilizing'


@dataclass(frozen=True)
class GateState:
    """Idle, or Stabilizing since a timestamp (ms)."""
    phase: str = PHASE_IDLE
    since: Optional[float] = None

    @classmethod
    def idle(cls) -> 'GateState':
        return cls()

    @classmethod
    def stabilizing(cls, since: float) -> 'GateState':
        return cls(phase=PHASE_STABILIZING, since=since)

    @property
    def is_idle(self) -> bool:
        return self.phase == PHASE_IDLE


@dataclass(frozen=True)
class CaptureTrigger:
    """Emitted when the countdown should begin."""
    timestamp: float
    held_ms: float


def advance(
    state: GateState,
    pose_ok: bool,
    now: float,
    *,
    last_capture_time: Optional[float] = None,
    auto_capture_enabled: bool = True,
    capture_in_progress: bool = False,
    countdown_active: bool = False,
    cooldown_ms: float = DEFAULT_COOLDOWN_MS,
    stability_ms: float = DEFAULT_STABILITY_MS,
) -> Tuple[GateState, Optional[CaptureTrigger]]:
    """
    Pure transition function of the gate.

    Args:
        state: Current gate state
        pose_ok: Whether this sample passes the gating check
        now: Sample time in ms
        last_capture_time: Time of the last automatic capture (ms), None if none yet

    Returns:
        Tuple of (new_state, trigger or None)
    """
    # Busy or disabled: ignore the sample without resetting
    if not auto_capture_enabled or capture_in_progress or countdown_active:
        return state, None

    if last_capture_time is not None and now - last_capture_time < cooldown_ms:
        return state, None

    if not pose_ok:
        return GateState.idle(), None

    if state.is_idle:
        return GateState.stabilizing(now), None

    held = now - state.since
    if held > stability_ms:
        return GateState.idle(), CaptureTrigger(timestamp=now, held_ms=held)

    return state, None


class AutoCaptureGate:
    """
    Stateful wrapper around advance().
    Holds the gate state and the last automatic capture time.
    """

    def __init__(
        self,
        cooldown_ms: float = DEFAULT_COOLDOWN_MS,
        stability_ms: float = DEFAULT_STABILITY_MS,
    ):
        self.cooldown_ms = cooldown_ms
        self.stability_ms = stability_ms
        self.state = GateState.idle()
        self.last_capture_time: Optional[float] = None

    def step(
        self,
        pose_ok: bool,
        now: float,
        auto_capture_enabled: bool = True,
        capture_in_progress: bool = False,
        countdown_active: bool = False,
    ) -> Optional[CaptureTrigger]:
        """Feed one sample; returns a trigger when the countdown should start."""
        self.state, trigger = advance(
            self.state,
            pose_ok,
            now,
            last_capture_time=self.last_capture_time,
            auto_capture_enabled=auto_capture_enabled,
            capture_in_progress=capture_in_progress,
            countdown_active=countdown_active,
            cooldown_ms=self.cooldown_ms,
            stability_ms=self.stability_ms,
        )
        if trigger is not None:
            logger.info(f"Pose held for {trigger.held_ms:.0f}ms, triggering countdown")
        return trigger

    def record_capture(self, now: float):
        """Start the cooldown window."""
        self.last_capture_time = now

    def in_cooldown(self, now: float) -> bool:
        if self.last_capture_time is None:
            return False
        return now - self.last_capture_time < self.cooldown_ms

    def stability_progress(self, now: float) -> float:
        """Fraction of the stability window held so far (0-1)."""
        if self.state.is_idle:
            return 0.0
        return min((now - self.state.since) / self.stability_ms, 1.0)

    def reset(self):
        self.state = GateState.idle()
        self.last_capture_time = None
