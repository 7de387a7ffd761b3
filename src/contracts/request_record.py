from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class AttemptOutcome(str, Enum):
    SUCCESS = "success"
    TIMEOUT = "timeout"
    CONNECTION_ERROR = "connection_error"
    INVALID_RESPONSE = "invalid_response"
    UPSTREAM_5XX = "upstream_5xx"
    UPSTREAM_4XX = "upstream_4xx"
    # The proxy's own connection pool was full; the backend was never contacted
    POOL_TIMEOUT = "pool_timeout"

    @property
    def is_failure(self) -> bool:
        """
        True for outcomes that count against backend health.

        A 4xx is the client's fault and a pool timeout is the proxy's; neither
        says anything about the backend.
        """
        return self not in (
            AttemptOutcome.SUCCESS,
            AttemptOutcome.UPSTREAM_4XX,
            AttemptOutcome.POOL_TIMEOUT,
        )

    @property
    def should_retry(self) -> bool:
        return self not in (AttemptOutcome.SUCCESS, AttemptOutcome.UPSTREAM_4XX)

    @classmethod
    def from_status(cls, status_code: int) -> "AttemptOutcome":
        if status_code >= 500:
            return cls.UPSTREAM_5XX
        if status_code >= 400:
            return cls.UPSTREAM_4XX
        return cls.SUCCESS


class RequestAttempt(BaseModel):
    """
    One network contact with one backend during a single client request.
    """

    model_config = ConfigDict(frozen=True)

    backend: str
    backend_name: str
    start_time: float
    outcome: AttemptOutcome
    duration: float
    response_size: int = 0
    status_code: Optional[int] = None


class RequestRecord(BaseModel):
    """
    Everything logged about one client request, including every attempt.
    """

    client_address: str
    method: str
    path: str
    protocol: str
    final_status: int = 0
    total_duration: float = 0.0
    response_size: int = 0
    attempts: List[RequestAttempt] = Field(default_factory=list)
    served_by: Optional[str] = None
    pool: Optional[str] = None
    release: Optional[str] = None
    client_disconnected: bool = False
    completed_at: Optional[float] = None

    @property
    def request_line(self) -> str:
        return f"{self.method} {self.path} {self.protocol}"
