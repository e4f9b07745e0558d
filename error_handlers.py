"""
Error Handling System
Provides consistent error responses across all layers
"""
import logging

logger = logging.getLogger(__name__)


class BoothError(Exception):
    """Base exception for photo booth errors"""
    def __init__(self, message, error_code, details=None):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self):
        """Convert error to JSON-serializable dict"""
        return {
            "success": False,
            "error": self.message,
            "error_code": self.error_code,
            "details": self.details
        }


# Camera Errors
class CameraError(BoothError):
    """Webcam errors"""
    pass


class CameraNotFoundError(CameraError):
    """No webcam answers at the configured index"""
    def __init__(self, camera_index):
        super().__init__(
            message=f"No webcam found at index {camera_index}",
            error_code="CAMERA_NOT_FOUND",
            details={
                "camera_index": camera_index,
                "suggestion": "Plug in the webcam or set CAMERA_INDEX"
            }
        )


class CameraInitError(CameraError):
    """Webcam opened but is not usable"""
    def __init__(self, camera_index, reason=None):
        super().__init__(
            message=f"Webcam {camera_index} opened but is not delivering frames",
            error_code="CAMERA_INIT_FAILED",
            details={
                "camera_index": camera_index,
                "reason": reason,
                "suggestion": "Close other apps using the webcam and start it again"
            }
        )


class CameraNotInitializedError(CameraError):
    """Frame requested before the webcam was started"""
    def __init__(self):
        super().__init__(
            message="Webcam is not running",
            error_code="CAMERA_NOT_INITIALIZED",
            details={
                "suggestion": "POST /start_camera before capturing"
            }
        )


class FrameCaptureError(CameraError):
    """Webcam returned no frame"""
    def __init__(self):
        super().__init__(
            message="Webcam returned no frame",
            error_code="FRAME_CAPTURE_FAILED",
            details={
                "suggestion": "Retry the capture; restart the webcam if it keeps failing"
            }
        )


# Capture Errors
class CaptureError(BoothError):
    """Photo capture and scoring errors"""
    pass


class InvalidFrameError(CaptureError):
    """Frame buffer cannot be scored"""
    def __init__(self, reason, shape=None):
        super().__init__(
            message=f"Invalid frame: {reason}",
            error_code="INVALID_FRAME",
            details={
                "reason": reason,
                "shape": shape,
                "suggestion": "Provide a non-empty RGBA buffer"
            }
        )


class CaptureInProgressError(CaptureError):
    """Another capture already holds the capture slot"""
    def __init__(self):
        super().__init__(
            message="A capture is already in progress",
            error_code="CAPTURE_IN_PROGRESS",
            details={
                "suggestion": "Wait for the current capture to finish"
            }
        )


class PhotoNotFoundError(CaptureError):
    """No photo with the given id in the collection"""
    def __init__(self, photo_id):
        super().__init__(
            message=f"Photo not found: {photo_id}",
            error_code="PHOTO_NOT_FOUND",
            details={
                "photo_id": photo_id
            }
        )


# Layout Errors
class LayoutError(BoothError):
    """Print layout errors"""
    pass


class UnknownLayoutError(LayoutError):
    """Requested layout variant does not exist"""
    def __init__(self, variant, available=None):
        super().__init__(
            message=f"Unknown layout variant: {variant}",
            error_code="UNKNOWN_LAYOUT",
            details={
                "variant": variant,
                "available": list(available or [])
            }
        )


class PhotoDecodeError(LayoutError):
    """Stored photo bytes could not be decoded"""
    def __init__(self, photo_id):
        super().__init__(
            message=f"Could not decode photo {photo_id}",
            error_code="PHOTO_DECODE_FAILED",
            details={
                "photo_id": photo_id,
                "suggestion": "Remove the photo and capture it again"
            }
        )


class NoPhotosError(LayoutError):
    """Nothing to render"""
    def __init__(self):
        super().__init__(
            message="Capture some photos to generate a layout",
            error_code="NO_PHOTOS",
            details={}
        )


# Export Errors
class ExportError(BoothError):
    """Download and print errors"""
    pass


class ArtifactSaveError(ExportError):
    """Failed to write the layout artifact"""
    def __init__(self, filepath, reason):
        super().__init__(
            message=f"Failed to save layout to {filepath}",
            error_code="ARTIFACT_SAVE_FAILED",
            details={
                "filepath": filepath,
                "reason": str(reason),
                "suggestion": "Check disk space and write permissions"
            }
        )


class PrintJobError(ExportError):
    """Failed to submit the print job"""
    def __init__(self, printer, reason):
        super().__init__(
            message=f"Failed to submit print job to {printer}",
            error_code="PRINT_JOB_FAILED",
            details={
                "printer": printer,
                "reason": str(reason),
                "suggestion": "Check that the printer is online and CUPS is running"
            }
        )


# Error response helpers
def handle_error(error, log_message=None):
    """
    Handle error consistently across the application

    Args:
        error: Exception that occurred
        log_message: Optional custom log message

    Returns:
        dict: Error response for JSON serialization
    """
    if log_message:
        logger.error(log_message)

    if isinstance(error, BoothError):
        # Known booth error
        logger.error(f"{error.error_code}: {error.message}")
        if error.details:
            logger.debug(f"Error details: {error.details}")
        return error.to_dict()
    else:
        # Unexpected error
        logger.error(f"Unexpected error: {error}")
        logger.exception("Full traceback:")
        return {
            "success": False,
            "error": "An unexpected error occurred",
            "error_code": "UNEXPECTED_ERROR",
            "details": {
                "error_type": type(error).__name__,
                "error_message": str(error)
            }
        }
