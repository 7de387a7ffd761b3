import os

# name -> (default, cast)
DEFAULTS = {
    # Upstream pools as "name=url" pairs; the active pool is primary, the rest are standbys in order
    "UPSTREAM_POOLS": ("blue=http://localhost:8081,green=http://localhost:8082", str),
    "ACTIVE_POOL": ("blue", str),
    "MAX_FAILS": ("1", int),
    "FAIL_TIMEOUT": ("5", float),
    # Per-attempt sub-timeouts in seconds
    "PROXY_CONNECT_TIMEOUT": ("1", float),
    "PROXY_SEND_TIMEOUT": ("1", float),
    "PROXY_READ_TIMEOUT": ("1", float),
    "MAX_ATTEMPTS": ("2", int),
    # Upstream connection pool of the proxy itself
    "PROXY_MAX_CONNECTIONS": ("1000", int),
    "PROXY_MAX_KEEPALIVE": ("100", int),
    "PROXY_POOL_TIMEOUT": ("1", float),
    # Identity headers attached by every backend
    "POOL_HEADER": ("X-App-Pool", str),
    "RELEASE_HEADER": ("X-Release-Id", str),
    "HEALTH_PATH": ("/healthz", str),
    "HEALTH_TIMEOUT": ("0.5", float),
    # "-" writes access records to stdout
    "ACCESS_LOG_FILE": ("logs/access.log", str),
    # Demo backend identity
    "APP_POOL": ("blue", str),
    "RELEASE_ID": ("blue-v1", str),
    "CHAOS_TIMEOUT_DELAY": ("5", float),
}


def _read(name, environ=None):
    default, cast = DEFAULTS[name]
    environ = os.environ if environ is None else environ
    return cast(environ.get(name, default))


class Config:
    """
    Configuration class for environment variables and default settings.

    Attributes are read once, when the module is imported. `Config.load()`
    reads the environment again into a new class and leaves this one as is.
    """

    UPSTREAM_POOLS = _read("UPSTREAM_POOLS")
    ACTIVE_POOL = _read("ACTIVE_POOL")
    MAX_FAILS = _read("MAX_FAILS")
    FAIL_TIMEOUT = _read("FAIL_TIMEOUT")

    PROXY_CONNECT_TIMEOUT = _read("PROXY_CONNECT_TIMEOUT")
    PROXY_SEND_TIMEOUT = _read("PROXY_SEND_TIMEOUT")
    PROXY_READ_TIMEOUT = _read("PROXY_READ_TIMEOUT")
    MAX_ATTEMPTS = _read("MAX_ATTEMPTS")

    PROXY_MAX_CONNECTIONS = _read("PROXY_MAX_CONNECTIONS")
    PROXY_MAX_KEEPALIVE = _read("PROXY_MAX_KEEPALIVE")
    PROXY_POOL_TIMEOUT = _read("PROXY_POOL_TIMEOUT")

    POOL_HEADER = _read("POOL_HEADER")
    RELEASE_HEADER = _read("RELEASE_HEADER")

    HEALTH_PATH = _read("HEALTH_PATH")
    HEALTH_TIMEOUT = _read("HEALTH_TIMEOUT")

    ACCESS_LOG_FILE = _read("ACCESS_LOG_FILE")

    APP_POOL = _read("APP_POOL")
    RELEASE_ID = _read("RELEASE_ID")
    CHAOS_TIMEOUT_DELAY = _read("CHAOS_TIMEOUT_DELAY")

    @classmethod
    def load(cls, environ=None):
        """
        Read the environment again.

        Args:
            environ (Optional[Mapping[str, str]]): Source of values, os.environ by default.

        Returns:
            type: A Config subclass holding the fresh values.

        Raises:
            ValueError: If a numeric setting cannot be parsed.
        """
        return type(cls.__name__, (cls,), {name: _read(name, environ) for name in DEFAULTS})
