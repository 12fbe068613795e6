"""
Proctoring Errors - Exception taxonomy for the proctoring core

Required capabilities raise one of these out of ``initialize()``/``start()``.
Best-effort capabilities never raise; they degrade and are recorded in the
violation ledger instead.
"""


class ProctoringError(Exception):
    """Base class for every error raised by the proctoring core"""


class ConfigurationError(ProctoringError):
    """The supplied configuration cannot be satisfied"""


class SessionStateError(ProctoringError):
    """A lifecycle method was called in the wrong phase"""


class DeviceError(ProctoringError):
    """Base class for camera/microphone problems"""


class DeviceAccessError(DeviceError):
    """Permission to use a media device was denied or the stream failed"""


class DeviceNotFoundError(DeviceError, ConfigurationError):
    """A device required by the configuration does not exist"""


class ModelLoadError(ProctoringError):
    """The vision capability could not be loaded"""


class StreamTimeoutError(ProctoringError):
    """The camera stream did not become ready in time"""
