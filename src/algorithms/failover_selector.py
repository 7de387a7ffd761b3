import logging
from typing import AbstractSet, Optional

from abstractions.upstream_selector import UpstreamSelector
from config.logging_config import setup_logging
from contracts.backend import Backend
from contracts.pool import PoolConfiguration
from core.errors import ConfigurationError
from core.health_tracker import HealthTracker

setup_logging()
logger = logging.getLogger(__name__)


class FailoverSelector(UpstreamSelector):
    """
    Selects the primary while it is eligible, otherwise the first eligible
    standby in configured order. No load is spread across standbys.
    """

    def __init__(self, health_tracker: HealthTracker, max_attempts: int = 2):
        """
        Initialize the FailoverSelector.

        Args:
            health_tracker (HealthTracker): Source of per-backend eligibility.
            max_attempts (int): Upper bound on attempts per request, regardless of pool size.
        """
        if max_attempts < 1:
            raise ConfigurationError(f"max_attempts must be >= 1, got {max_attempts}")
        self.health_tracker = health_tracker
        self.max_attempts = max_attempts
        logger.info(f"FailoverSelector initialized with max_attempts={max_attempts}.")

    def select(
        self,
        pool: PoolConfiguration,
        attempted: AbstractSet[Backend],
        max_attempts: Optional[int] = None,
    ) -> Optional[Backend]:
        cap = self.max_attempts if max_attempts is None else max_attempts
        if len(attempted) >= cap:
            logger.debug(f"Attempt cap {cap} reached.")
            return None
        for backend in pool.members:
            if backend in attempted:
                continue
            if self.health_tracker.is_eligible(backend):
                logger.debug(f"Selected backend {backend.name} ({backend.role.value})")
                return backend
        logger.warning("No eligible backend left for this request.")
        return None
