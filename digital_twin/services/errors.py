"""Domain errors raised by the Digital Twin services.

Services raise these; the tool-dispatch boundary and the HTTP routes turn
them into ``{success: false, message}`` payloads or status codes.  The
message of ``InvalidInputError`` and ``NotFoundError`` is written for the
visitor and is safe to show as-is.
"""

from __future__ import annotations


class InvalidInputError(ValueError):
    """A required field is missing or a value is malformed."""


class NotFoundError(LookupError):
    """A referenced visitor or conversation does not exist."""


class UpstreamServiceError(RuntimeError):
    """The LLM provider failed or returned an unusable response."""
