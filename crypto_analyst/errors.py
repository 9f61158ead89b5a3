"""Error taxonomy for the research pipeline.

Every signal task converts these into an ``Unavailable`` result carrying the
error ``kind``; only ``ConfigError`` for a pipeline-wide credential is
surfaced to the caller.
"""

from __future__ import annotations

from typing import Any


class AnalystError(Exception):
    """Base class for all pipeline errors."""

    kind: str = "error"

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.context = context or {}


class ProviderError(AnalystError):
    """A data or search provider returned a non-success status."""

    kind = "provider_error"

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        url: str = "",
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.status_code = status_code
        self.url = url


class ProviderTimeoutError(AnalystError, TimeoutError):
    """A provider call exceeded its bounded wait."""

    kind = "timeout"

    def __init__(self, message: str, url: str = "", **kwargs):
        super().__init__(message, **kwargs)
        self.url = url


class DecodingError(AnalystError):
    """Payload could not be decoded into the expected shape."""

    kind = "decoding_error"


class ConfigError(AnalystError):
    """A required credential or setting is missing."""

    kind = "config_error"


class PipelineCancelled(AnalystError):
    """The run was cancelled before a network call could be issued."""

    kind = "cancelled"
