# errors.py
from typing import Optional, Tuple

__all__ = [
    'AudioError',
    'EngineUnavailable',
    'EngineClosed',
    'InvalidParameter',
    'SourceActivationFailed',
    'PlaybackBlocked',
    'ActivationSuperseded',
    'SourceAlreadyBound',
    'describe_error'
]

class AudioError(Exception):
    """Base class for every error raised by the signal chain"""


class EngineUnavailable(AudioError):
    """The audio engine could not be resumed (host policy or hardware)"""


class EngineClosed(AudioError):
    """The audio graph has been torn down"""


class InvalidParameter(AudioError, ValueError):
    """A request carried a non-finite/non-positive frequency or a missing selection"""


class SourceActivationFailed(AudioError):
    """A producer could not be constructed, connected or started"""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class PlaybackBlocked(SourceActivationFailed):
    """The host refused to start media playback despite an active engine"""


class ActivationSuperseded(SourceActivationFailed):
    """A newer request or a stop replaced this activation before it finished"""


class SourceAlreadyBound(AudioError):
    """A media element is already wrapped by another adapter"""


_MESSAGES = {
    EngineUnavailable: ("Audio Blocked",
                        "Audio playback is blocked. Please interact with the application to enable sound."),
    EngineClosed: ("Audio Closed", "The audio engine has been shut down."),
    InvalidParameter: ("Invalid Input", "{error}"),
    PlaybackBlocked: ("Playback Error", "Failed to play audio file: {error}"),
    SourceActivationFailed: ("Source Error", "Error starting audio source: {error}"),
    SourceAlreadyBound: ("Media Error", "This audio player is already connected: {error}"),
}


def describe_error(error: BaseException) -> Tuple[str, str]:
    """Map an error to a (title, message) pair for the user"""
    for error_type in type(error).__mro__:
        if error_type in _MESSAGES:
            title, template = _MESSAGES[error_type]
            return title, template.format(error=error)
    return "Error", f"Unexpected error: {error}"
