"""
Photo Booth Web Application
Thin REST layer over a single capture session.

Provides:
- Camera start/stop and MJPEG preview with pose overlay
- Pose sample intake (from the browser-side pose model)
- Manual capture and photo management
- Print layout rendering, download and printing
"""
from flask import Flask, Response, jsonify, request, send_file
from flask_cors import CORS
import cv2
import io
import logging
import os
import time

from error_handlers import (
    BoothError,
    CameraError,
    LayoutError,
    PhotoNotFoundError,
    handle_error,
)
from layer1_pose import Pose, draw_pose
from layer2_capture import CameraHandler
from layer3_layout import available_variants
from layer3_layout.exporter import artifact_filename
from session import CaptureSession, SessionConfig

# Setup logging
logging.basicConfig(
    level=os.environ.get('LOG_LEVEL', 'DEBUG').upper(),
    format='%(asctime)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)

app = Flask(__name__)

# Browser UI runs the pose model and posts samples here
CORS(app, origins=["*"])

# Configuration
CAMERA_INDEX = int(os.environ.get('CAMERA_INDEX', 0))
OUTPUT_DIR = os.environ.get('BOOTH_OUTPUT_DIR', "Logs/photo_booth")
PRINTER = os.environ.get('BOOTH_PRINTER') or None

logger.info("Starting application initialization")

camera = CameraHandler(camera_index=CAMERA_INDEX)
session = CaptureSession(
    camera,
    SessionConfig(output_dir=OUTPUT_DIR, printer=PRINTER),
)


def _error_response(error, status=400):
    return jsonify(handle_error(error)), status


# ============================================================================
# Camera
# ============================================================================

@app.route('/start_camera', methods=['POST'])
def start_camera():
    """Initialize camera with error details"""
    logger.info("Start camera request received")
    try:
        success = camera.initialize()
        return jsonify({"success": success, "resolution": camera.get_resolution()})
    except CameraError as e:
        return _error_response(e, 503)


@app.route('/stop_camera', methods=['POST'])
def stop_camera():
    logger.info("Stop camera request received")
    session.cancel_countdown()
    camera.release()
    return jsonify({"success": True})


@app.route('/video_feed')
def video_feed():
    """MJPEG preview with the latest pose drawn on top"""
    logger.info("Video feed requested")

    def generate():
        while camera.is_opened():
            try:
                frame = camera.get_frame()
            except CameraError as e:
                logger.debug(f"Preview frame failed: {e.message}")
                time.sleep(0.1)
                continue

            pose = session.current_pose
            if pose is not None:
                frame = draw_pose(frame, pose, session.last_verdict)

            ok, buffer = cv2.imencode('.jpg', frame)
            if not ok:
                continue
            yield (b'--frame\r\n'
                   b'Content-Type: image/jpeg\r\n\r\n' + buffer.tobytes() + b'\r\n')

    return Response(generate(), mimetype='multipart/x-mixed-replace; boundary=frame')


# ============================================================================
# Pose & capture
# ============================================================================

@app.route('/api/pose', methods=['POST'])
def submit_pose():
    """Accept one pose sample in PoseNet JSON shape"""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({
            "success": False,
            "error": "Pose JSON required",
            "error_code": "INVALID_POSE"
        }), 400

    try:
        pose = Pose.from_dict(data)
    except (KeyError, TypeError, ValueError) as e:
        return jsonify({
            "success": False,
            "error": f"Malformed pose: {e}",
            "error_code": "INVALID_POSE"
        }), 400

    verdict = session.on_pose(pose)
    return jsonify({
        "success": True,
        "verdict": verdict.to_dict(),
        "session": session.status()
    })


@app.route('/capture', methods=['POST'])
def capture():
    """Manual capture"""
    logger.info("Manual capture request received")
    outcome = session.capture(auto=False)
    status = 200 if outcome.success else 409 if outcome.error_code == "CAPTURE_IN_PROGRESS" else 500
    return jsonify(outcome.to_dict()), status


@app.route('/api/countdown/cancel', methods=['POST'])
def cancel_countdown():
    return jsonify({"success": True, "cancelled": session.cancel_countdown()})


@app.route('/api/settings', methods=['POST'])
def update_settings():
    data = request.get_json(silent=True) or {}

    if 'auto_capture' in data:
        session.set_auto_capture(bool(data['auto_capture']))

    if 'countdown_duration' in data:
        try:
            session.set_countdown_duration(int(data['countdown_duration']))
        except (TypeError, ValueError) as e:
            return jsonify({
                "success": False,
                "error": str(e),
                "error_code": "INVALID_SETTING"
            }), 400

    return jsonify({
        "success": True,
        "auto_capture": session.config.auto_capture_enabled,
        "countdown_duration": session.config.countdown_duration
    })


# ============================================================================
# Photos
# ============================================================================

@app.route('/api/photos', methods=['GET'])
def list_photos():
    photos = session.list_photos()
    best_ids = [p.id for p in session.get_best_photos()]
    return jsonify({
        "success": True,
        "photos": [p.to_dict() for p in photos],
        "best_ids": best_ids
    })


@app.route('/api/photos/best', methods=['GET'])
def best_photos():
    n = request.args.get('n', default=session.config.best_count, type=int)
    return jsonify({
        "success": True,
        "photos": [p.to_dict() for p in session.get_best_photos(n)]
    })


@app.route('/api/photos/<int:photo_id>', methods=['GET'])
def get_photo(photo_id):
    photo = session.get_photo(photo_id)
    if photo is None:
        return _error_response(PhotoNotFoundError(photo_id), 404)
    return Response(photo.image, mimetype='image/jpeg')


@app.route('/api/photos/<int:photo_id>', methods=['DELETE'])
def delete_photo(photo_id):
    removed = session.remove_photo(photo_id)
    return jsonify({"success": True, "removed": removed})


@app.route('/api/photos/clear', methods=['POST'])
def clear_photos():
    session.clear_photos()
    return jsonify({"success": True})


# ============================================================================
# Layout
# ============================================================================

@app.route('/api/layout', methods=['GET'])
def layout():
    """Rendered page as PNG, or a JSON 'nothing to render' response"""
    try:
        result = session.generate_layout(variant=request.args.get('variant'))
    except LayoutError as e:
        return _error_response(e, 400)

    if result.is_empty:
        return jsonify(result.to_dict()), 404
    return Response(result.artifact.png, mimetype='image/png')


@app.route('/api/layout/info', methods=['GET'])
def layout_info():
    try:
        result = session.generate_layout(variant=request.args.get('variant'))
    except LayoutError as e:
        return _error_response(e, 400)
    return jsonify(result.to_dict())


@app.route('/api/layout/download', methods=['GET'])
def download_layout():
    try:
        result = session.generate_layout(variant=request.args.get('variant'))
    except LayoutError as e:
        return _error_response(e, 400)

    if result.is_empty:
        return jsonify(result.to_dict()), 404
    return send_file(
        io.BytesIO(result.artifact.png),
        mimetype='image/png',
        as_attachment=True,
        download_name=artifact_filename()
    )


@app.route('/api/layout/print', methods=['POST'])
def print_layout():
    data = request.get_json(silent=True) or {}
    try:
        job = session.print_layout(
            variant=data.get('variant'),
            printer=data.get('printer')
        )
    except LayoutError as e:
        return _error_response(e, 400)
    except BoothError as e:
        return _error_response(e, 500)
    return jsonify({"success": True, "job": job.to_dict()})


# ============================================================================
# Service
# ============================================================================

@app.route("/health", methods=["GET"])
def health_check():
    return jsonify({
        "status": "healthy",
        "service": "photo-booth",
        "version": "1.0.0"
    })


@app.route("/api/status", methods=["GET"])
def api_status():
    return jsonify({
        "success": True,
        "camera_available": camera.is_opened(),
        "layout_variants": available_variants(),
        "session": session.status()
    })


if __name__ == '__main__':
    print("\n" + "=" * 60)
    print("PHOTO BOOTH SERVER")
    print("=" * 60)
    print(f"  Camera: /dev/video{CAMERA_INDEX}")
    print(f"  Output: {OUTPUT_DIR}")
    print(f"  Printer: {PRINTER or 'PDF only'}")
    print("=" * 60 + "\n")

    logger.info("Flask server starting")
    app.run(host='0.0.0.0', port=5000, debug=False, threaded=True)
