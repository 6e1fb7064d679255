"""
Custom exceptions for the bowel sound analysis application.

Every failure in the capture, playback and analysis core is recoverable:
the operation declines to transition and reports one of these errors.
"""

from typing import Any, Dict, Optional


class BowelSoundError(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (Details: {self.details})"
        return self.message


class DecodeError(BowelSoundError):
    """Raised when an audio asset cannot be opened or read."""

    def __init__(self, message: str, file_path: Optional[str] = None):
        super().__init__(message, details={"file_path": file_path})
        self.file_path = file_path


class UnsupportedFormatError(DecodeError):
    """Raised when the audio container is not one we accept."""

    def __init__(self, message: str, format: Optional[str] = None):
        super().__init__(message)
        self.format = format
        self.details = {"format": format}


class PlaybackError(BowelSoundError):
    """Raised when a source cannot be loaded into the player."""

    def __init__(self, message: str, file_path: Optional[str] = None):
        super().__init__(message, details={"file_path": file_path})
        self.file_path = file_path


class DeviceUnavailableError(BowelSoundError):
    """Raised when no capture device exists or access is denied."""

    def __init__(self, message: str, device: Optional[str] = None):
        super().__init__(message, details={"device": device} if device else None)
        self.device = device


class ConflictError(BowelSoundError):
    """Raised when an engine is busy or the audio device is held elsewhere."""

    def __init__(
        self,
        message: str,
        requested_by: Optional[str] = None,
        held_by: Optional[str] = None,
    ):
        super().__init__(message)
        self.requested_by = requested_by
        self.held_by = held_by
        self.details = {"requested_by": requested_by, "held_by": held_by}


class InvalidStateError(BowelSoundError):
    """Raised when an operation is not valid in the current state."""

    def __init__(self, message: str, state: Optional[str] = None):
        super().__init__(message, details={"state": state} if state else None)
        self.state = state


class InferenceError(BowelSoundError):
    """Raised when the classifier rejects its input or fails internally."""

    def __init__(
        self,
        message: str,
        classifier_name: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.classifier_name = classifier_name
        self.original_error = original_error
        self.details = {
            "classifier_name": classifier_name,
            "original_error": str(original_error) if original_error else None,
        }


class ModelLoadError(InferenceError):
    """Raised when the classifier model cannot be loaded."""

    def __init__(self, message: str, model_name: Optional[str] = None):
        super().__init__(message, classifier_name=model_name)
        self.model_name = model_name
        self.details = {"model_name": model_name}


class AllocationError(BowelSoundError):
    """Raised when the feature buffer cannot be constructed."""

    def __init__(self, message: str, length: Optional[int] = None):
        super().__init__(message, details={"length": length})
        self.length = length


class ConfigurationError(BowelSoundError):
    """Raised when configuration is invalid or missing."""

    def __init__(self, message: str, config_key: Optional[str] = None):
        super().__init__(message)
        self.config_key = config_key
        self.details = {"config_key": config_key}
