from typing import Optional

import httpx

from contracts.request_record import RequestAttempt


class OpenFailoverError(Exception):
    """Base class for all proxy and harness errors."""


class ConfigurationError(OpenFailoverError):
    """Invalid pool or proxy settings; fatal at startup, rejected on reload."""


class UpstreamTransientError(OpenFailoverError):
    """
    A failed attempt that may succeed on another backend (timeout, connection
    failure, invalid response or 5xx).
    """

    def __init__(self, attempt: RequestAttempt, response: Optional[httpx.Response] = None):
        super().__init__(f"{attempt.outcome.value} from {attempt.backend}")
        self.attempt = attempt
        self.response = response


class ClientError(OpenFailoverError):
    """A 4xx from the backend; passed through to the client, never retried."""

    def __init__(self, attempt: RequestAttempt, response: httpx.Response):
        super().__init__(f"client error {attempt.status_code} from {attempt.backend}")
        self.attempt = attempt
        self.response = response


class PoolExhausted(OpenFailoverError):
    """No eligible, unattempted backend remains for this request."""


class LogSinkError(OpenFailoverError):
    """An access record could not be handed to the sink."""


class ChaosControlError(OpenFailoverError):
    """The chaos controller could not start or stop fault injection."""
