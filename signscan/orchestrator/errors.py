"""
Classified error codes shared by the capture and recognition state machines.

Adapters raise CaptureError / ReferencesUnavailable; the state machines catch
them and keep only the code. Every code maps to one user-facing message.
"""

# camera
ERR_DEVICE_ACCESS_DENIED = "DEVICE_ACCESS_DENIED"
ERR_DEVICE_NOT_FOUND = "DEVICE_NOT_FOUND"
ERR_DEVICE_BUSY = "DEVICE_BUSY"
ERR_DEVICE_UNAVAILABLE = "DEVICE_UNAVAILABLE"
ERR_FRAME_NOT_READY = "FRAME_NOT_READY"

# image input
ERR_INVALID_UPLOAD = "INVALID_UPLOAD"
ERR_NO_IMAGE = "NO_IMAGE"

# recognition
ERR_EMPTY_REFERENCE_SET = "EMPTY_REFERENCE_SET"
ERR_REFERENCES_UNAVAILABLE = "REFERENCES_UNAVAILABLE"
ERR_SCORING_FAILURE = "SCORING_FAILURE"
ERR_BUSY = "BUSY"

# reference database
ERR_INVALID_REFERENCE = "INVALID_REFERENCE"

MESSAGES = {
    ERR_DEVICE_ACCESS_DENIED: "Camera access denied. Please allow camera permissions and try again.",
    ERR_DEVICE_NOT_FOUND: "No camera found on this device.",
    ERR_DEVICE_BUSY: "Camera is in use by another application. Close it and try again.",
    ERR_DEVICE_UNAVAILABLE: "Unable to access camera. Please check the connection and try again.",
    ERR_FRAME_NOT_READY: "Camera not ready. Please wait for the camera to start.",
    ERR_INVALID_UPLOAD: "Please select a valid image file.",
    ERR_NO_IMAGE: "No signature image to analyze. Capture or upload one first.",
    ERR_EMPTY_REFERENCE_SET: "No reference signatures in the database to compare against.",
    ERR_REFERENCES_UNAVAILABLE: "Reference signatures could not be loaded. Please try again.",
    ERR_SCORING_FAILURE: "Error during signature analysis. Please try again.",
    ERR_BUSY: "An analysis is already running. Wait for it to finish.",
    ERR_INVALID_REFERENCE: "Please fill in all fields and upload a signature.",
}

# Only missing hardware cannot be fixed by simply trying again.
NOT_RECOVERABLE = {ERR_DEVICE_NOT_FOUND}


def message_for(code: str) -> str:
    return MESSAGES.get(code, "Something went wrong.")


def is_recoverable(code: str) -> bool:
    return code not in NOT_RECOVERABLE


class CaptureError(Exception):
    """Classified failure raised by camera and upload adapters."""

    def __init__(self, code: str, detail: str = ""):
        super().__init__(detail or message_for(code))
        self.code = code
        self.detail = detail


class ReferencesUnavailable(Exception):
    """The reference set could not be read (storage gone, image unreadable)."""
