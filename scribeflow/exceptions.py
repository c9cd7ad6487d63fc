"""ScribeFlow exception hierarchy."""

from __future__ import annotations

from scribeflow.error_codes import ErrorCode


class ScribeFlowError(Exception):
    """Base error for ScribeFlow."""

    error_code: ErrorCode = ErrorCode.UNKNOWN


class ConfigurationError(ScribeFlowError):
    """Raised when configuration or inputs are invalid."""


class DecodeError(ScribeFlowError):
    """Raised when input bytes cannot be decoded to PCM audio."""

    def __init__(self, message: str, *, no_audio_track: bool = False) -> None:
        super().__init__(message)
        self.message = message
        self.no_audio_track = bool(no_audio_track)
        self.error_code = ErrorCode.NO_AUDIO_TRACK if no_audio_track else ErrorCode.INVALID_MEDIA


class ValidationError(ScribeFlowError):
    """Raised when input violates a provider limit or format constraint."""

    def __init__(self, message: str, *, error_code: ErrorCode = ErrorCode.UNSUPPORTED_FORMAT) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class NetworkError(ScribeFlowError):
    """Raised on timeouts and connection failures (retryable)."""

    def __init__(self, provider: str, message: str, *, timeout: bool = False) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.message = message
        self.timeout = bool(timeout)
        self.error_code = ErrorCode.TIMEOUT if timeout else ErrorCode.NETWORK_ERROR


class ProviderError(ScribeFlowError):
    """Raised when an external provider call fails."""

    def __init__(
        self,
        provider: str,
        message: str,
        *,
        status_code: int | None = None,
        error_code: ErrorCode | str | None = None,
    ) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.message = message
        self.status_code = status_code
        if error_code is None:
            if status_code == 401:
                error_code = ErrorCode.UNAUTHORIZED
            elif status_code == 429:
                error_code = ErrorCode.RATE_LIMITED
            else:
                error_code = ErrorCode.PROVIDER_FAILED
        self.error_code = error_code

    @property
    def unauthorized(self) -> bool:
        return self.status_code == 401

    @property
    def rate_limited(self) -> bool:
        return self.status_code == 429

    @property
    def server_error(self) -> bool:
        return self.status_code is not None and self.status_code >= 500

    @property
    def retryable(self) -> bool:
        return self.rate_limited or self.server_error or self.status_code == 408


class CancelledError(ScribeFlowError):
    """Raised when the task's cancellation token fires."""

    error_code = ErrorCode.CANCELLED

    def __init__(self, reason: str = "cancelled") -> None:
        super().__init__(reason)
        self.reason = reason


class NoSpeechError(ScribeFlowError):
    """Raised when VAD trims the whole input to silence."""

    error_code = ErrorCode.NO_SPEECH


class TaskActiveError(ScribeFlowError):
    """Raised when a task starts while another one is still processing."""

    error_code = ErrorCode.TASK_ACTIVE


class VADUnavailableError(ScribeFlowError):
    """Raised when the on-device VAD module cannot be loaded."""


class StageExecutionError(ScribeFlowError):
    """Raised when a pipeline stage fails."""

    def __init__(
        self,
        stage: str,
        message: str,
        *,
        task_id: str | None = None,
        error_code: ErrorCode | str | None = None,
    ) -> None:
        prefix = f"{stage}"
        if task_id:
            prefix = f"{prefix} (task_id={task_id})"
        super().__init__(f"{prefix}: {message}")
        self.stage = stage
        self.task_id = task_id
        self.message = message
        self.error_code = error_code or ErrorCode.UNKNOWN
