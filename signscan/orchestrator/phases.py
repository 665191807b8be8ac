from typing import Literal

CapturePhase = Literal["idle", "acquiring", "streaming", "error"]
JobPhase = Literal["idle", "running", "succeeded", "no_match", "failed"]
ImageSource = Literal["captured", "uploaded"]

# CaptureSession
IDLE = "idle"
ACQUIRING = "acquiring"    # provisional handle only
STREAMING = "streaming"    # the only phase holding a live handle
ERROR = "error"

# RecognitionJob
RUNNING = "running"
SUCCEEDED = "succeeded"
NO_MATCH = "no_match"
FAILED = "failed"

TERMINAL_JOB_PHASES = (SUCCEEDED, NO_MATCH, FAILED)

CAPTURED = "captured"
UPLOADED = "uploaded"
