"""
Tests for the photo booth layers, the capture session and the REST API.
"""
import json

import cv2
import numpy as np
import pytest

from error_handlers import (
    CameraInitError,
    CameraNotFoundError,
    CameraNotInitializedError,
    FrameCaptureError,
    InvalidFrameError,
    NoPhotosError,
    PhotoDecodeError,
    PrintJobError,
    UnknownLayoutError,
)
from layer1_pose import (
    AutoCaptureGate,
    GateState,
    Pose,
    evaluate_pose,
    is_capture_ready,
    advance,
    draw_pose,
)
from layer1_pose.evaluator import (
    MSG_ALMOST,
    MSG_CENTER,
    MSG_NOT_IN_FRAME,
    MSG_PERFECT,
    MSG_SHOULDERS,
)
from layer2_capture import (
    CameraHandler,
    CameraSettings,
    CountdownSequencer,
    PhotoCollection,
    PhotoIdSequence,
    PhotoQualityScorer,
    score_frame,
)
from layer2_capture.photos import CapturedPhoto
from layer3_layout import (
    LayoutSpec,
    compute_page,
    export_artifact,
    generate_layout,
    get_layout_spec,
    print_artifact,
)

# 4 cols x 2 rows = 8 slots
SMALL_SPEC = LayoutSpec('small', 460, 230, 100, 100, 10)


class TestPoseQualityEvaluator:
    """Per-sample pose verdicts."""

    @pytest.mark.parametrize("visible", [0, 1, 2])
    def test_too_few_landmarks_is_never_correct(self, make_pose, visible):
        """Test fewer than 3 visible landmarks is never correct."""
        verdict = evaluate_pose(make_pose(visible=visible))
        assert verdict.is_correct is False
        assert verdict.confidence == 0
        assert verdict.message == MSG_NOT_IN_FRAME

    def test_perfect_pose(self, make_pose):
        """Test a level, centered, fully visible pose is correct."""
        verdict = evaluate_pose(make_pose(visible=5))
        assert verdict.is_correct is True
        assert verdict.confidence == pytest.approx(1.0)
        assert verdict.message == MSG_PERFECT
        assert verdict.status == 'ready'

    def test_four_landmarks_is_enough(self, make_pose):
        """Test 4 visible landmarks pass the confidence threshold."""
        verdict = evaluate_pose(make_pose(visible=4))
        assert verdict.is_correct is True
        assert verdict.confidence == pytest.approx(0.8)

    def test_three_landmarks_almost_there(self, make_pose):
        """Test 3 visible landmarks give the "almost there" prompt."""
        verdict = evaluate_pose(make_pose(visible=3))
        assert verdict.is_correct is False
        assert verdict.confidence == pytest.approx(0.6)
        assert verdict.message == MSG_ALMOST

    def test_shoulders_not_level(self, make_pose):
        """Test tilted shoulders are reported."""
        verdict = evaluate_pose(make_pose(shoulder_diff=60))
        assert verdict.is_correct is False
        assert verdict.message == MSG_SHOULDERS

    def test_shoulder_message_wins_over_centering(self, make_pose):
        """Test shoulder prompt takes priority over centering."""
        verdict = evaluate_pose(make_pose(shoulder_diff=60, nose_x=100))
        assert verdict.message == MSG_SHOULDERS

    def test_not_centered(self, make_pose):
        """Test off-center nose is reported."""
        verdict = evaluate_pose(make_pose(nose_x=150))
        assert verdict.is_correct is False
        assert verdict.message == MSG_CENTER

    @pytest.mark.parametrize("nose_x", [200.0, 440.0])
    def test_center_bounds_are_exclusive(self, make_pose, nose_x):
        """Test nose exactly on the center bounds is not centered."""
        verdict = evaluate_pose(make_pose(nose_x=nose_x))
        assert verdict.message == MSG_CENTER

    def test_missing_shoulders_keeps_generic_prompt(self, make_pose):
        """Test missing shoulders keep the generic prompt."""
        verdict = evaluate_pose(make_pose(shoulders=False))
        assert verdict.is_correct is False
        assert verdict.confidence == pytest.approx(1.0)
        assert verdict.message == MSG_NOT_IN_FRAME

    def test_score_at_threshold_is_not_visible(self, make_pose):
        """Test a score of exactly 0.5 does not count as visible."""
        verdict = evaluate_pose(make_pose(face_score=0.5))
        assert verdict.is_correct is False
        assert verdict.confidence == 0

    def test_empty_pose(self):
        """Test a pose without keypoints is not correct."""
        verdict = evaluate_pose(Pose())
        assert verdict.is_correct is False

    def test_pose_from_posenet_dict(self, pose_payload):
        """Test building a pose from PoseNet JSON."""
        pose = Pose.from_dict(pose_payload)
        assert pose.find('nose').position == (320.0, 200.0)
        assert pose.find('leftElbow') is None
        assert evaluate_pose(pose).is_correct is True

    @pytest.mark.parametrize("data", [
        {'keypoints': ['nose']},
        {'keypoints': [{'part': 'nose', 'position': 'center'}]},
        {'keypoints': {'part': 'nose'}},
    ])
    def test_pose_from_dict_rejects_wrong_shapes(self, data):
        """Test non-object keypoints and positions raise TypeError."""
        with pytest.raises(TypeError):
            Pose.from_dict(data)


class TestPoseOverlay:
    """Preview annotation."""

    def test_draws_on_copy(self, make_pose):
        """Test overlay draws on a copy in the correct color."""
        frame = np.zeros((480, 640, 3), dtype=np.uint8)
        pose = make_pose()
        annotated = draw_pose(frame, pose, evaluate_pose(pose))
        assert frame.sum() == 0
        assert annotated.shape == frame.shape
        # Nose marker in the "correct" color
        assert tuple(annotated[200, 320]) == (129, 185, 16)


class TestGatingCheck:
    """The gate uses its own, stricter landmark count."""

    def test_three_landmarks_not_ready(self, make_pose):
        """Test 3 landmarks fail the gating check."""
        assert is_capture_ready(make_pose(visible=3)) is False

    def test_four_landmarks_ready(self, make_pose):
        """Test 4 landmarks pass the gating check."""
        assert is_capture_ready(make_pose(visible=4)) is True

    def test_ignores_alignment(self, make_pose):
        """Test gating check only counts landmarks (the verdict covers alignment)."""
        assert is_capture_ready(make_pose(nose_x=50, shoulder_diff=200)) is True


class TestAutoCaptureGate:
    """Stability and cooldown timing."""

    def test_idle_to_stabilizing(self):
        """Test first good sample starts stabilizing."""
        state, trigger = advance(GateState.idle(), True, 1000)
        assert state == GateState.stabilizing(1000)
        assert trigger is None

    def test_exactly_stability_window_does_not_trigger(self):
        """Test holding exactly 2000ms does not trigger."""
        state, trigger = advance(GateState.stabilizing(0), True, 2000)
        assert state == GateState.stabilizing(0)
        assert trigger is None

    def test_trigger_after_stability_window(self):
        """Test holding past 2000ms triggers and returns to idle."""
        state, trigger = advance(GateState.stabilizing(0), True, 2001)
        assert state.is_idle
        assert trigger is not None
        assert trigger.held_ms == 2001

    def test_bad_sample_resets(self):
        """Test a bad sample resets to idle."""
        state, trigger = advance(GateState.stabilizing(0), False, 1500)
        assert state.is_idle
        assert trigger is None

    @pytest.mark.parametrize("flags", [
        {'auto_capture_enabled': False},
        {'capture_in_progress': True},
        {'countdown_active': True},
    ])
    def test_busy_or_disabled_is_noop(self, flags):
        """Test samples are ignored while disabled or busy."""
        start = GateState.stabilizing(0)
        state, trigger = advance(start, False, 5000, **flags)
        assert state == start
        assert trigger is None

    def test_cooldown_ignores_samples(self):
        """Test samples inside the cooldown leave the state unchanged."""
        start = GateState.stabilizing(100)
        state, trigger = advance(start, False, 4000, last_capture_time=0)
        assert state == start
        assert trigger is None

    def test_cooldown_suppresses_trigger_even_when_held(self):
        """Test no trigger fires inside the cooldown."""
        state, trigger = advance(GateState.stabilizing(0), True, 4999, last_capture_time=0)
        assert trigger is None

    def test_any_incorrect_sample_restarts_clock(self):
        """Test one bad sample restarts the stability clock."""
        gate = AutoCaptureGate()
        for t in range(0, 1900, 100):
            assert gate.step(True, t) is None
        gate.step(False, 1900)
        for t in range(2000, 4000, 100):
            assert gate.step(True, t) is None
        assert gate.step(True, 4100) is not None

    def test_triggers_at_least_cooldown_apart(self):
        """Test consecutive triggers are at least 5000ms apart."""
        gate = AutoCaptureGate()
        triggers = []
        for t in range(0, 30000, 50):
            trigger = gate.step(True, t)
            if trigger:
                triggers.append(t)
                gate.record_capture(t)
        assert len(triggers) >= 3
        assert all(b - a >= 5000 for a, b in zip(triggers, triggers[1:]))

    def test_stability_progress(self):
        """Test stability progress fraction."""
        gate = AutoCaptureGate()
        assert gate.stability_progress(0) == 0.0
        gate.step(True, 0)
        assert gate.stability_progress(1000) == pytest.approx(0.5)
        assert gate.stability_progress(5000) == 1.0


class TestCountdownSequencer:
    """Countdown ticks driven by a manual scheduler."""

    def test_completes_once_after_three_ticks(self, scheduler):
        """Test countdown completes once after three ticks."""
        completions = []
        countdown = CountdownSequencer(lambda: completions.append(1), scheduler=scheduler)
        countdown.activate()

        scheduler.fire()
        scheduler.fire()
        assert completions == []
        assert countdown.count == 1

        scheduler.fire()
        assert completions == [1]
        assert countdown.is_active is False
        assert countdown.count == 3

        scheduler.fire(5)
        assert completions == [1]

    def test_deactivate_before_last_tick(self, scheduler):
        """Test deactivating early never completes."""
        completions = []
        countdown = CountdownSequencer(lambda: completions.append(1), scheduler=scheduler)
        countdown.activate()
        scheduler.fire(2)

        assert countdown.deactivate() is True
        assert countdown.count == 3
        scheduler.fire(3)
        assert completions == []

    def test_activate_is_idempotent(self, scheduler):
        """Test activating twice has no effect."""
        completions = []
        countdown = CountdownSequencer(lambda: completions.append(1), scheduler=scheduler)
        assert countdown.activate() is True
        scheduler.fire()
        assert countdown.activate() is False
        assert countdown.count == 2
        scheduler.fire(2)
        assert completions == [1]

    def test_reports_remaining(self, scheduler):
        """Test tick callback reports remaining count."""
        ticks = []
        countdown = CountdownSequencer(lambda: None, scheduler=scheduler, on_tick=ticks.append)
        countdown.activate()
        scheduler.fire(3)
        assert ticks == [3, 2, 1, 0]

    def test_tick_interval(self, scheduler):
        """Test ticks are scheduled one second apart."""
        countdown = CountdownSequencer(lambda: None, scheduler=scheduler)
        countdown.activate()
        assert scheduler.pending[0].interval == 1.0

    def test_reactivation_after_completion(self, scheduler):
        """Test countdown can run again after completing."""
        completions = []
        countdown = CountdownSequencer(lambda: completions.append(1), duration=2, scheduler=scheduler)
        countdown.activate()
        scheduler.fire(2)
        countdown.activate()
        scheduler.fire(2)
        assert completions == [1, 1]

    def test_rejects_zero_duration(self):
        """Test zero duration is rejected."""
        with pytest.raises(ValueError):
            CountdownSequencer(lambda: None, duration=0)


class TestPhotoQualityScorer:
    """Brightness + linear-scan sharpness heuristic."""

    def test_mid_gray(self):
        """Test mid-gray scores brightness 1, sharpness 0."""
        frame = np.full((10, 10, 4), 128, dtype=np.uint8)
        metrics = PhotoQualityScorer().assess(frame)
        assert metrics.brightness_score == pytest.approx(1.0)
        assert metrics.sharpness_score == 0.0
        assert metrics.overall_score == pytest.approx(0.5)

    def test_black(self):
        """Test black frame scores zero."""
        frame = np.zeros((10, 10, 4), dtype=np.uint8)
        frame[..., 3] = 255
        metrics = PhotoQualityScorer().assess(frame)
        assert metrics.brightness_score == 0.0
        assert metrics.overall_score == 0.0

    def test_white(self):
        """Test white frame brightness score."""
        frame = np.full((4, 4, 4), 255, dtype=np.uint8)
        metrics = PhotoQualityScorer().assess(frame)
        assert metrics.brightness_score == pytest.approx(1 / 128)

    def test_alpha_is_ignored(self):
        """Test alpha channel does not affect the score."""
        a = np.full((4, 4, 4), 128, dtype=np.uint8)
        b = a.copy()
        b[..., 3] = 0
        assert score_frame(a) == score_frame(b)

    def test_flat_sequence(self):
        """Test scoring a flat RGBA sequence."""
        pixels = [0, 0, 0, 255, 255, 255, 255, 255]
        metrics = PhotoQualityScorer().assess(pixels)
        assert metrics.avg_brightness == pytest.approx(127.5)
        assert metrics.edge_strength == pytest.approx(255.0)
        assert metrics.normalized_edge == pytest.approx(127.5)
        assert metrics.sharpness_score == 1.0

    def test_scan_crosses_row_boundaries(self):
        """Test edge scan runs across row boundaries."""
        # Each row is flat; only the jump from row 0 end to row 1 start counts
        frame = np.zeros((2, 3, 4), dtype=np.uint8)
        frame[1, :, :3] = 60
        metrics = PhotoQualityScorer().assess(frame)
        assert metrics.edge_strength == pytest.approx(60.0)
        assert metrics.normalized_edge == pytest.approx(10.0)
        assert metrics.sharpness_score == pytest.approx(0.5)

    def test_score_in_unit_interval(self):
        """Test random frames score within [0, 1]."""
        rng = np.random.default_rng(7)
        frame = rng.integers(0, 256, size=(20, 20, 4), dtype=np.uint8)
        assert 0.0 <= score_frame(frame) <= 1.0

    def test_bgr_frame(self):
        """Test scoring an OpenCV BGR frame."""
        frame = np.full((8, 8, 3), 128, dtype=np.uint8)
        assert PhotoQualityScorer().assess_bgr(frame).overall_score == pytest.approx(0.5)

    @pytest.mark.parametrize("pixels", [
        [],
        np.zeros((0, 10, 4), dtype=np.uint8),
        np.zeros((10, 0, 4), dtype=np.uint8),
        [1, 2, 3],
        None,
    ])
    def test_invalid_buffers_fail_fast(self, pixels):
        """Test empty or malformed buffers raise InvalidFrameError."""
        with pytest.raises(InvalidFrameError):
            score_frame(pixels)


class TestPhotoCollection:
    """Insertion order and best-N retrieval."""

    def test_best_two(self, make_photo):
        """Test best-N orders by quality score."""
        photos = PhotoCollection()
        for i, score in enumerate([0.2, 0.9, 0.5], start=1):
            photos.add(make_photo(i, score))
        best = photos.get_best_n(2)
        assert [p.quality_score for p in best] == [0.9, 0.5]

    def test_ties_keep_insertion_order(self, make_photo):
        """Test equal scores keep capture order."""
        photos = PhotoCollection()
        for i in range(1, 5):
            photos.add(make_photo(i, 0.7))
        assert [p.id for p in photos.get_best_n(3)] == [1, 2, 3]

    def test_best_n_larger_than_collection(self, make_photo):
        """Test best-N with n beyond the collection size."""
        photos = PhotoCollection()
        photos.add(make_photo(1, 0.4))
        assert len(photos.get_best_n(4)) == 1
        assert photos.get_best_n(0) == []

    def test_remove_and_absent_remove(self, make_photo):
        """Test removing present and absent ids."""
        photos = PhotoCollection()
        photos.add(make_photo(1))
        photos.add(make_photo(2))
        assert photos.remove(1) is True
        assert photos.remove(42) is False
        assert [p.id for p in photos] == [2]

    def test_clear(self, make_photo):
        """Test clearing the collection."""
        photos = PhotoCollection()
        photos.add(make_photo(1))
        photos.clear()
        assert len(photos) == 0

    def test_recent(self, make_photo):
        """Test recent photos in capture order."""
        photos = PhotoCollection()
        for i in range(1, 7):
            photos.add(make_photo(i))
        assert [p.id for p in photos.recent(4)] == [3, 4, 5, 6]

    def test_ids_are_monotonic(self):
        """Test photo ids strictly increase."""
        ids = PhotoIdSequence()
        seq = [ids.next_id() for _ in range(5)]
        assert seq == sorted(set(seq))

    def test_score_out_of_range_rejected(self, make_photo):
        """Test quality score above 1 is rejected."""
        with pytest.raises(ValueError):
            make_photo(1, score=1.5)


class TestLayoutPacker:
    """Grid geometry and page rendering."""

    def test_passport_geometry(self):
        """Test passport page grid geometry."""
        page = compute_page(get_layout_spec('passport'))
        assert (page.cols, page.rows) == (5, 5)
        assert page.capacity == 25
        assert page.start_x == pytest.approx(87.5)
        assert page.start_y == pytest.approx(306.5)
        assert page.vertical_guides[0] == pytest.approx(87.5 + 473 - 30)

    def test_small_geometry(self):
        """Test slot and guide positions on a small page."""
        page = compute_page(SMALL_SPEC)
        assert page.capacity == 8
        assert page.slots[0] == (15.0, 10.0)
        assert page.slots[4] == (15.0, 120.0)
        assert page.vertical_guides == (120.0, 230.0, 340.0)
        assert page.horizontal_guides == (115.0,)

    def test_truncates_to_capacity(self, make_photo):
        """Test extra photos beyond capacity are dropped."""
        photos = [make_photo(i, 0.5) for i in range(1, 11)]
        result = generate_layout(photos, SMALL_SPEC)
        assert result.success is True
        assert result.photos_used == 8
        assert result.artifact.photo_ids == tuple(range(1, 9))

    def test_fewer_photos_leave_blank_slots(self, make_photo):
        """Test missing photos leave blank slots."""
        photos = [make_photo(i, 0.5, color=(0, 0, 255)) for i in range(1, 4)]
        result = generate_layout(photos, SMALL_SPEC)
        assert result.photos_used == 3
        assert result.blank_slots == 5

        page = result.artifact.to_image()
        assert page.shape == (230, 460, 3)
        # Filled slot: stretched red photo
        b, g, r = page[60, 65].astype(int)
        assert r > 200 and g < 60 and b < 60
        # Fourth slot stays white
        assert (page[60, 395] == 255).all()

    def test_border_and_guides(self, make_photo):
        """Test slot border and dashed cutting guides."""
        result = generate_layout([make_photo(1, 0.5)], SMALL_SPEC)
        page = result.artifact.to_image()
        # Slot border
        assert (page[10, 15] == 204).all()
        # Dashed vertical guide: dash at y=2, gap at y=7
        assert (page[2, 120] == 221).all()
        assert (page[7, 120] == 255).all()
        # Horizontal guide between rows
        assert (page[115, 2] == 221).all()

    def test_no_photos_nothing_to_render(self):
        """Test empty input renders nothing."""
        result = generate_layout([], 'passport')
        assert result.success is False
        assert result.is_empty
        assert result.error

    def test_unknown_variant(self, make_photo):
        """Test unknown layout variant raises."""
        with pytest.raises(UnknownLayoutError):
            generate_layout([make_photo(1)], 'poster')

    def test_undecodable_photo(self):
        """Test undecodable photo bytes raise."""
        from datetime import datetime
        bad = CapturedPhoto(id=9, image=b'not a jpeg', timestamp=datetime.now(), quality_score=0.5)
        with pytest.raises(PhotoDecodeError):
            generate_layout([bad], SMALL_SPEC)


class TestExport:
    """Download and print outputs."""

    @pytest.fixture
    def artifact(self, make_photo):
        return generate_layout([make_photo(1, 0.8)], SMALL_SPEC).artifact

    def test_export_writes_png(self, artifact, tmp_path):
        """Test export writes the page PNG."""
        path = export_artifact(artifact, str(tmp_path))
        with open(path, 'rb') as f:
            assert f.read() == artifact.png
        assert path.endswith('.png')

    def test_print_without_printer_writes_pdf(self, artifact, tmp_path):
        """Test print without printer only writes the PDF."""
        png_before = artifact.png
        job = print_artifact(artifact, str(tmp_path))
        assert job.submitted is False
        with open(job.pdf_path, 'rb') as f:
            assert f.read(4) == b'%PDF'
        assert artifact.png == png_before

    def test_print_submits_to_lp(self, artifact, tmp_path, monkeypatch):
        """Test print submits the PDF to lp."""
        import subprocess
        calls = []

        def fake_run(cmd, **kwargs):
            calls.append(cmd)
            return subprocess.CompletedProcess(cmd, 0, stdout="request id is booth-7\n", stderr="")

        monkeypatch.setattr(subprocess, 'run', fake_run)
        job = print_artifact(artifact, str(tmp_path), printer='booth')
        assert calls[0][:3] == ['lp', '-d', 'booth']
        assert job.submitted is True
        assert job.job_id == "request id is booth-7"

    def test_print_failure(self, artifact, tmp_path, monkeypatch):
        """Test lp failure raises PrintJobError."""
        import subprocess

        def fake_run(cmd, **kwargs):
            raise subprocess.CalledProcessError(1, cmd)

        monkeypatch.setattr(subprocess, 'run', fake_run)
        with pytest.raises(PrintJobError):
            print_artifact(artifact, str(tmp_path), printer='booth')


class _FakeVideoCapture:
    """Stand-in for cv2.VideoCapture."""

    def __init__(self, opened=True, frames=True):
        self.opened = opened
        self.frames = frames
        self.props = {}
        self.reads = 0

    def isOpened(self):
        return self.opened

    def set(self, prop, value):
        self.props[prop] = value
        return True

    def get(self, prop):
        return self.props.get(prop, 0)

    def read(self):
        self.reads += 1
        if not self.frames:
            return False, None
        return True, np.zeros((480, 640, 3), dtype=np.uint8)

    def release(self):
        self.opened = False


class TestCameraHandler:
    """Webcam frame source with a fake cv2 device."""

    def _patch(self, monkeypatch, device):
        monkeypatch.setattr(cv2, 'VideoCapture', lambda *args: device)

    def test_initialize_discards_warmup_frames(self, monkeypatch):
        """Test initialize sets the size and reads the warm-up frames."""
        device = _FakeVideoCapture()
        self._patch(monkeypatch, device)
        camera = CameraHandler(0, CameraSettings(warmup_frames=3))
        assert camera.initialize() is True
        assert device.reads == 3
        assert camera.get_resolution() == (640, 480)
        assert camera.get_frame().shape == (480, 640, 3)

    def test_missing_device(self, monkeypatch):
        """Test a device that does not open raises CameraNotFoundError."""
        self._patch(monkeypatch, _FakeVideoCapture(opened=False))
        with pytest.raises(CameraNotFoundError):
            CameraHandler(3).initialize()

    def test_device_without_frames(self, monkeypatch):
        """Test a silent device fails during warm-up."""
        device = _FakeVideoCapture(frames=False)
        self._patch(monkeypatch, device)
        camera = CameraHandler(0)
        with pytest.raises(CameraInitError):
            camera.initialize()
        assert device.opened is False
        assert camera.is_opened() is False

    def test_frame_before_start(self):
        """Test reading before initialize raises CameraNotInitializedError."""
        with pytest.raises(CameraNotInitializedError):
            CameraHandler(0).get_frame()

    def test_release(self, monkeypatch):
        """Test release closes the device."""
        self._patch(monkeypatch, _FakeVideoCapture())
        camera = CameraHandler(0)
        camera.initialize()
        camera.release()
        assert camera.is_opened() is False


class TestCaptureSession:
    """End-to-end pipeline with fake camera, clock and countdown."""

    def _hold(self, session, clock, pose, until, step=100):
        while clock.now < until:
            clock.advance(step)
            session.on_pose(pose)

    def test_held_pose_captures_after_countdown(self, session, clock, scheduler, make_pose):
        """Test held pose triggers countdown then auto capture."""
        pose = make_pose()
        session.on_pose(pose)
        self._hold(session, clock, pose, 2000)
        assert session.countdown.is_active is False

        clock.advance(100)
        verdict = session.on_pose(pose)
        assert session.countdown.is_active is True
        assert verdict.status == 'countdown'

        scheduler.fire(3)
        assert len(session.photos) == 1
        photo = session.photos.snapshot()[0]
        assert photo.auto is True
        assert photo.pose is pose
        assert photo.quality_score == pytest.approx(0.5)
        assert session.gate.last_capture_time == clock.now

    def test_cooldown_after_auto_capture(self, session, clock, scheduler, make_pose):
        """Test no new countdown inside the cooldown."""
        pose = make_pose()
        session.on_pose(pose)
        self._hold(session, clock, pose, 2100)
        scheduler.fire(3)
        captured_at = clock.now

        self._hold(session, clock, pose, captured_at + 4900)
        assert session.gate.state.is_idle
        assert session.countdown.is_active is False

    def test_incorrect_sample_cancels_stability(self, session, clock, make_pose):
        """Test an incorrect sample restarts stability."""
        good, bad = make_pose(), make_pose(visible=2)
        session.on_pose(good)
        self._hold(session, clock, good, 1500)
        clock.advance(100)
        session.on_pose(bad)
        self._hold(session, clock, good, 3000)
        assert session.countdown.is_active is False

    def test_gate_uses_four_landmark_threshold(self, session, clock, make_pose):
        """Test 3 visible landmarks never arm the gate."""
        pose = make_pose(visible=3)
        session.on_pose(pose)
        self._hold(session, clock, pose, 5000)
        assert session.countdown.is_active is False

    def test_off_center_hold_never_arms_countdown(self, session, clock, make_pose):
        """Test an off-center hold never starts the countdown."""
        pose = make_pose(nose_x=20.0)
        session.on_pose(pose)
        self._hold(session, clock, pose, 5000)
        assert session.last_verdict.is_correct is False
        assert session.gate.state.is_idle
        assert session.countdown.is_active is False

    def test_tilted_shoulders_hold_never_arms_countdown(self, session, clock, make_pose):
        """Test a tilted-shoulder hold never starts the countdown."""
        pose = make_pose(shoulder_diff=200.0)
        session.on_pose(pose)
        self._hold(session, clock, pose, 5000)
        assert session.last_verdict.message == 'Keep your shoulders level'
        assert session.countdown.is_active is False

    def test_auto_capture_disabled(self, session, clock, make_pose):
        """Test no countdown with auto-capture disabled."""
        session.set_auto_capture(False)
        pose = make_pose()
        session.on_pose(pose)
        self._hold(session, clock, pose, 5000)
        assert session.countdown.is_active is False

    def test_manual_capture_skips_cooldown(self, session):
        """Test manual capture does not start the cooldown."""
        outcome = session.capture()
        assert outcome.success is True
        assert outcome.photo.auto is False
        assert session.gate.last_capture_time is None

    def test_capture_failure_releases_flag(self, session, frame_source):
        """Test camera failure leaves collection unchanged."""
        frame_source.error = FrameCaptureError()
        outcome = session.capture()
        assert outcome.success is False
        assert outcome.error_code == "FRAME_CAPTURE_FAILED"
        assert session.capture_in_progress is False
        assert len(session.photos) == 0

        frame_source.error = None
        assert session.capture().success is True

    def test_unexpected_failure_releases_flag(self, session, frame_source):
        """Test unexpected failure releases the capture flag."""
        frame_source.error = RuntimeError("usb reset")
        outcome = session.capture()
        assert outcome.error_code == "CAPTURE_FAILED"
        assert session.capture_in_progress is False

    def test_only_one_capture_at_a_time(self, session, frame_source):
        """Test nested capture is rejected."""
        nested = []
        frame_source.on_grab = lambda: nested.append(session.capture())
        outcome = session.capture()
        assert outcome.success is True
        assert nested[0].error_code == "CAPTURE_IN_PROGRESS"
        assert len(session.photos) == 1

    def test_ids_increase(self, session):
        """Test captured photo ids increase."""
        ids = [session.capture().photo.id for _ in range(3)]
        assert ids == [1, 2, 3]

    def test_layout_cached_until_photos_change(self, session):
        """Test layout is reused until photos change."""
        session.capture()
        first = session.generate_layout()
        assert session.generate_layout() is first
        session.capture()
        assert session.generate_layout() is not first

    def test_layout_variant_change_regenerates(self, session):
        """Test switching variant regenerates the layout."""
        session.capture()
        first = session.generate_layout(variant='passport')
        second = session.generate_layout(variant='id')
        assert second is not first
        assert second.artifact.variant == 'id'

    def test_export_without_photos(self, session):
        """Test export with no photos raises NoPhotosError."""
        with pytest.raises(NoPhotosError):
            session.export_layout()

    def test_export_layout(self, session, tmp_path):
        """Test export writes into the given directory."""
        session.capture()
        path = session.export_layout(output_dir=str(tmp_path))
        assert path.startswith(str(tmp_path))

    def test_close_cancels_countdown(self, session, clock, scheduler, make_pose):
        """Test closing the session cancels the countdown."""
        pose = make_pose()
        session.on_pose(pose)
        self._hold(session, clock, pose, 2100)
        assert session.countdown.is_active
        session.close()
        scheduler.fire(3)
        assert len(session.photos) == 0


class TestFlaskAPI:
    """REST endpoints."""

    def test_health(self, client):
        """Test /health returns healthy status."""
        response = client.get('/health')
        assert response.status_code == 200
        assert json.loads(response.data)['status'] == 'healthy'

    def test_submit_pose(self, client, pose_payload):
        """Test /api/pose returns verdict and session state."""
        response = client.post('/api/pose', json=pose_payload)
        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['verdict']['is_correct'] is True
        assert data['session']['gate_phase'] == 'stabilizing'

    def test_submit_malformed_pose(self, client):
        """Test /api/pose rejects a keypoint without part."""
        response = client.post('/api/pose', json={'keypoints': [{'position': {}}]})
        assert response.status_code == 400
        assert json.loads(response.data)['error_code'] == 'INVALID_POSE'

    @pytest.mark.parametrize("payload", [
        {'score': 1, 'keypoints': ['nose']},
        {'score': 1, 'keypoints': [{'part': 'nose', 'position': [320, 200], 'score': 0.9}]},
        {'score': 1, 'keypoints': 'nose'},
    ])
    def test_submit_pose_with_wrong_shapes(self, client, payload):
        """Test /api/pose rejects non-object keypoints and positions."""
        response = client.post('/api/pose', json=payload)
        assert response.status_code == 400
        assert json.loads(response.data)['error_code'] == 'INVALID_POSE'

    def test_submit_non_json(self, client):
        """Test /api/pose requires JSON."""
        response = client.post('/api/pose', data='nope', content_type='text/plain')
        assert response.status_code == 400

    def test_capture_and_fetch(self, client):
        """Test /capture then fetch the JPEG and listing."""
        response = client.post('/capture')
        assert response.status_code == 200
        photo_id = json.loads(response.data)['photo']['id']

        image = client.get(f'/api/photos/{photo_id}')
        assert image.status_code == 200
        assert image.mimetype == 'image/jpeg'

        listing = json.loads(client.get('/api/photos').data)
        assert [p['id'] for p in listing['photos']] == [photo_id]

    def test_missing_photo(self, client):
        """Test unknown photo id returns 404."""
        response = client.get('/api/photos/999')
        assert response.status_code == 404
        assert json.loads(response.data)['error_code'] == 'PHOTO_NOT_FOUND'

    def test_delete_absent_photo_is_noop(self, client):
        """Test deleting an absent photo is a no-op."""
        response = client.delete('/api/photos/999')
        assert response.status_code == 200
        assert json.loads(response.data)['removed'] is False

    def test_best_photos(self, client, session, make_photo):
        """Test /api/photos/best returns top scores."""
        for i, score in enumerate([0.2, 0.9, 0.5], start=1):
            session.add_photo(make_photo(i, score))
        data = json.loads(client.get('/api/photos/best?n=2').data)
        assert [p['id'] for p in data['photos']] == [2, 3]

    def test_clear_photos(self, client):
        """Test /api/photos/clear empties the collection."""
        client.post('/capture')
        client.post('/api/photos/clear')
        assert json.loads(client.get('/api/photos').data)['photos'] == []

    def test_layout_without_photos(self, client):
        """Test /api/layout with no photos returns 404."""
        response = client.get('/api/layout')
        assert response.status_code == 404
        assert json.loads(response.data)['success'] is False

    def test_layout_png(self, client):
        """Test /api/layout returns the page PNG."""
        client.post('/capture')
        response = client.get('/api/layout?variant=passport')
        assert response.status_code == 200
        assert response.mimetype == 'image/png'
        page = cv2.imdecode(np.frombuffer(response.data, np.uint8), cv2.IMREAD_COLOR)
        assert page.shape == (3508, 2480, 3)

    def test_layout_unknown_variant(self, client):
        """Test /api/layout rejects unknown variants."""
        client.post('/capture')
        response = client.get('/api/layout?variant=poster')
        assert response.status_code == 400
        assert json.loads(response.data)['error_code'] == 'UNKNOWN_LAYOUT'

    def test_layout_download(self, client):
        """Test /api/layout/download returns an attachment."""
        client.post('/capture')
        response = client.get('/api/layout/download')
        assert response.status_code == 200
        assert 'attachment' in response.headers['Content-Disposition']
        assert 'passport-photos-' in response.headers['Content-Disposition']

    def test_print_without_photos(self, client):
        """Test /api/layout/print with no photos."""
        response = client.post('/api/layout/print', json={})
        assert response.status_code == 400
        assert json.loads(response.data)['error_code'] == 'NO_PHOTOS'

    def test_print_pdf(self, client):
        """Test /api/layout/print writes the PDF."""
        client.post('/capture')
        response = client.post('/api/layout/print', json={})
        assert response.status_code == 200
        assert json.loads(response.data)['job']['submitted'] is False

    def test_settings(self, client, session):
        """Test /api/settings updates auto-capture and duration."""
        response = client.post('/api/settings', json={'auto_capture': False, 'countdown_duration': 5})
        data = json.loads(response.data)
        assert data['auto_capture'] is False
        assert session.countdown.duration == 5

    def test_invalid_countdown_setting(self, client):
        """Test /api/settings rejects zero duration."""
        response = client.post('/api/settings', json={'countdown_duration': 0})
        assert response.status_code == 400
