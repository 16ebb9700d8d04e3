"""Error hierarchy for booking retry classification.

Transient failures (network timeouts, 5xx responses, malformed payloads) are
retried by the gateway's tenacity decorators and, failing that, by the slot
booking loop after its retry delay. Permanent failures are not worth an
immediate retry.

Example usage with tenacity:
    @retry(retry=retry_if_exception_type(TransientError), stop=stop_after_attempt(2))
    def login(self, username: str, password: str):
        ...
"""


class ResawodError(Exception):
    """Base exception for all gateway and scheduler errors."""

    pass


class TransientError(ResawodError):
    """Temporary failure that may succeed on retry.

    Examples: connection errors, request timeouts, 503 Service Unavailable,
    a response body that is not JSON.
    """

    pass


class RateLimitError(TransientError):
    """Rate limit exceeded (HTTP 429) - needs longer backoff.

    Inherits from TransientError so tenacity will retry it.
    """

    pass


class PermanentError(ResawodError):
    """Failure that won't succeed on retry.

    Examples: rejected credentials, invalid configuration.
    """

    pass


class AuthenticationError(PermanentError):
    """Login rejected, or a call was made before logging in."""

    pass


class ConfigError(PermanentError):
    """Booking configuration file is missing or malformed."""

    pass
