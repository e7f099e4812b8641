"""
Error taxonomy.

Provider errors are raised by adapters and propagate unchanged through the
accumulator and the orchestrator.  Tool problems never show up here: they
are reported as ``ToolResult`` values (see ``unillm.types``).
"""

from __future__ import annotations

from typing import Any


class UnillmError(Exception):
    """Base class for every error raised by unillm."""


# ---------------------------------------------------------------------------
# Provider / transport errors
# ---------------------------------------------------------------------------

class ProviderError(UnillmError):
    """An API call failed.  *response* is the transport response, if any."""

    default_message = "An unknown error occurred"

    def __init__(
        self,
        message: str | None = None,
        *,
        response: Any = None,
        status_code: int | None = None,
    ) -> None:
        self.response = response
        if status_code is None and response is not None:
            status_code = getattr(response, "status_code", None)
        self.status_code = status_code
        super().__init__(message or self.default_message)


class BadRequestError(ProviderError):
    default_message = "Invalid request - please check your input"


class UnauthorizedError(ProviderError):
    default_message = "Invalid API key - check your credentials"


class PaymentRequiredError(ProviderError):
    default_message = "Payment required - please top up your account"


class ForbiddenError(ProviderError):
    default_message = "Forbidden - you do not have permission to access this resource"


class RateLimitError(ProviderError):
    default_message = "Rate limit exceeded - please wait a moment"


class ServerError(ProviderError):
    default_message = "API server error - please try again"


class ServiceUnavailableError(ProviderError):
    default_message = "API server unavailable - please try again later"


class OverloadedError(ProviderError):
    default_message = "Service overloaded - please try again later"


class ConnectionFailedError(ProviderError):
    """The request never got an HTTP response (DNS, refused, timeout)."""

    default_message = "Could not reach the API"


_STATUS_ERRORS: dict[int, type[ProviderError]] = {
    400: BadRequestError,
    401: UnauthorizedError,
    402: PaymentRequiredError,
    403: ForbiddenError,
    429: RateLimitError,
    500: ServerError,
    502: ServiceUnavailableError,
    503: ServiceUnavailableError,
    529: OverloadedError,
}


def error_for_status(
    status_code: int,
    message: str | None = None,
    response: Any = None,
) -> ProviderError | None:
    """Return the error matching *status_code*, or ``None`` for 2xx/3xx."""
    if 200 <= status_code < 400:
        return None
    cls = _STATUS_ERRORS.get(status_code, ProviderError)
    return cls(message, response=response, status_code=status_code)


# ---------------------------------------------------------------------------
# Non-HTTP errors
# ---------------------------------------------------------------------------

class ConfigurationError(UnillmError):
    pass


class ModelNotFoundError(UnillmError):
    pass


class ProviderNotFoundError(UnillmError, KeyError):
    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""


class UnsupportedAttachmentError(UnillmError):
    pass


class ToolDefinitionError(UnillmError):
    """A tool was declared without the pieces needed to run it."""


class InvalidRoleError(UnillmError, ValueError):
    pass


class StreamIntegrityError(UnillmError):
    """A streamed tool call could not be assembled into valid arguments."""

    def __init__(self, message: str, *, call_id: str | None = None, raw: str = "") -> None:
        self.call_id = call_id
        self.raw = raw
        super().__init__(message)


class ToolLoopError(UnillmError):
    """The tool-call loop ran past its configured round limit."""

    def __init__(self, max_rounds: int) -> None:
        self.max_rounds = max_rounds
        super().__init__(
            f"Reached maximum of {max_rounds} tool call rounds without a final answer"
        )
