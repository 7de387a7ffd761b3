import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from config.config import Config
from core.errors import ConfigurationError


class ProxySettings(BaseModel):
    """
    Proxy-wide settings. Validated at startup and again on every reload; a
    request reads them once, together with the pool, and keeps that snapshot.

    The connection limits and the health route path only take effect at startup.
    """

    model_config = ConfigDict(frozen=True)

    connect_timeout: float = Field(default=1.0, gt=0)
    send_timeout: float = Field(default=1.0, gt=0)
    read_timeout: float = Field(default=1.0, gt=0)
    max_attempts: int = Field(default=2, ge=1)
    max_connections: int = Field(default=1000, ge=1)
    max_keepalive_connections: int = Field(default=100, ge=0)
    pool_timeout: float = Field(default=1.0, gt=0)
    pool_header: str = "X-App-Pool"
    release_header: str = "X-Release-Id"
    health_path: str = "/healthz"
    health_timeout: float = Field(default=0.5, gt=0)

    @property
    def timeout(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self.connect_timeout,
            write=self.send_timeout,
            read=self.read_timeout,
            pool=self.pool_timeout,
        )

    @property
    def limits(self) -> httpx.Limits:
        return httpx.Limits(
            max_connections=self.max_connections,
            max_keepalive_connections=self.max_keepalive_connections,
        )

    @property
    def attempt_deadline(self) -> float:
        # Also covers waiting for a connection from the proxy's own pool
        return self.pool_timeout + self.connect_timeout + self.send_timeout + self.read_timeout

    @classmethod
    def from_config(cls, config=Config) -> "ProxySettings":
        try:
            return cls(
                connect_timeout=config.PROXY_CONNECT_TIMEOUT,
                send_timeout=config.PROXY_SEND_TIMEOUT,
                read_timeout=config.PROXY_READ_TIMEOUT,
                max_attempts=config.MAX_ATTEMPTS,
                max_connections=config.PROXY_MAX_CONNECTIONS,
                max_keepalive_connections=config.PROXY_MAX_KEEPALIVE,
                pool_timeout=config.PROXY_POOL_TIMEOUT,
                pool_header=config.POOL_HEADER,
                release_header=config.RELEASE_HEADER,
                health_path=config.HEALTH_PATH,
                health_timeout=config.HEALTH_TIMEOUT,
            )
        except ValidationError as e:
            raise ConfigurationError(f"Invalid proxy settings: {e}") from e
