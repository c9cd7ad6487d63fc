"""Canonical error codes surfaced to the caller."""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    UNKNOWN = "UNKNOWN"
    INVALID_MEDIA = "INVALID_MEDIA"
    NO_AUDIO_TRACK = "NO_AUDIO_TRACK"
    UNSUPPORTED_FORMAT = "UNSUPPORTED_FORMAT"
    FILE_TOO_LARGE = "FILE_TOO_LARGE"
    NO_SPEECH = "NO_SPEECH"

    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT"
    UNAUTHORIZED = "UNAUTHORIZED"
    RATE_LIMITED = "RATE_LIMITED"
    PROVIDER_FAILED = "PROVIDER_FAILED"

    CANCELLED = "CANCELLED"
    TASK_ACTIVE = "TASK_ACTIVE"
    POST_PROCESSING_FAILED = "POST_PROCESSING_FAILED"
