from typing import Optional


class SessionError(Exception):
    """Base error for translation-session requests. Carries the HTTP status to respond with."""

    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(SessionError):
    """Process is missing configuration every request depends on (e.g. the API key)."""

    status_code = 500


class RequestValidationFailed(SessionError):
    """Request is malformed: missing passcode, empty audio, missing channel."""

    status_code = 400


class AuthorizationError(SessionError):
    """Passcode does not match the one bound to the room."""

    status_code = 403


class UpstreamError(SessionError):
    """Represents errors returned by the OpenAI-compatible provider."""

    status_code = 500

    def __init__(self, upstream_status: Optional[int], body: str):
        if upstream_status is None:
            message = f"OpenAI request failed: {body}"
        else:
            message = f"OpenAI request failed ({upstream_status}): {body}"
        super().__init__(message)
        self.upstream_status = upstream_status
        self.body = body
