import logging
import threading
from typing import Optional, Tuple

from config.logging_config import setup_logging
from contracts.backend import BackendRole
from contracts.pool import PoolConfiguration
from contracts.proxy_settings import ProxySettings
from core.errors import ConfigurationError

setup_logging()
logger = logging.getLogger(__name__)


class PoolManager:
    """
    Holds the current pool configuration and proxy settings and swaps them
    atomically, as one pair.

    Requests call `snapshot()` once and keep that pair for their whole retry
    loop, so a swap only affects requests that start afterwards.
    """

    def __init__(self, pool: PoolConfiguration, settings: Optional[ProxySettings] = None):
        self._state: Tuple[PoolConfiguration, ProxySettings] = (pool, settings or ProxySettings())
        self._lock = threading.Lock()
        logger.info(f"PoolManager initialized with primary={pool.primary.name}")

    @property
    def current(self) -> PoolConfiguration:
        return self._state[0]

    @property
    def settings(self) -> ProxySettings:
        return self._state[1]

    def snapshot(self) -> Tuple[PoolConfiguration, ProxySettings]:
        return self._state

    def swap(
        self, pool: PoolConfiguration, settings: Optional[ProxySettings] = None
    ) -> PoolConfiguration:
        """
        Replace the configuration for new requests.

        Args:
            pool (PoolConfiguration): The new, already validated configuration.
            settings (Optional[ProxySettings]): New proxy settings; the current ones are kept if omitted.

        Returns:
            PoolConfiguration: The previous configuration.
        """
        if not isinstance(pool, PoolConfiguration):
            raise ConfigurationError(f"Expected PoolConfiguration, got {type(pool).__name__}")
        if settings is not None and not isinstance(settings, ProxySettings):
            raise ConfigurationError(f"Expected ProxySettings, got {type(settings).__name__}")
        with self._lock:
            previous, current_settings = self._state
            self._state = (pool, settings or current_settings)
        logger.info(
            f"Pool swapped: primary {previous.primary.name} -> {pool.primary.name}, "
            f"standbys={[b.name for b in pool.standbys]}, "
            f"max_attempts={self._state[1].max_attempts}"
        )
        return previous

    def activate(self, name: str) -> PoolConfiguration:
        """
        Make the named member primary and demote the others, keeping their order.

        Raises:
            ConfigurationError: If no member has that name.
        """
        with self._lock:
            pool, settings = self._state
            target = pool.find(name)
            if target is None:
                raise ConfigurationError(
                    f"Unknown pool '{name}', expected one of {[b.name for b in pool.members]}"
                )
            try:
                new_pool = PoolConfiguration(
                    primary=target.with_role(BackendRole.PRIMARY),
                    standbys=tuple(
                        b.with_role(BackendRole.STANDBY) for b in pool.members if b.name != name
                    ),
                )
            except ValueError as e:
                raise ConfigurationError(f"Invalid pool configuration: {e}") from e
            self._state = (new_pool, settings)
        logger.info(f"Pool activated: primary is now {name}")
        return new_pool
