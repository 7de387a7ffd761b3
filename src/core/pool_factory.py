"""
Factory for building validated pool configurations from flat settings.
"""
import logging
from typing import List, Tuple

from pydantic import ValidationError

from config.config import Config
from config.logging_config import setup_logging
from contracts.backend import Backend, BackendRole
from contracts.pool import PoolConfiguration
from core.errors import ConfigurationError

setup_logging()
logger = logging.getLogger(__name__)


def parse_pools(pools_setting: str) -> List[Tuple[str, str]]:
    """
    Parse "name=url,name=url" into ordered (name, url) pairs.

    Raises:
        ConfigurationError: If an entry is malformed or the setting is empty.
    """
    pairs = []
    for entry in pools_setting.split(","):
        entry = entry.strip()
        if not entry:
            continue
        name, sep, address = entry.partition("=")
        name, address = name.strip(), address.strip().rstrip("/")
        if not sep or not name or not address:
            raise ConfigurationError(f"Malformed pool entry '{entry}', expected name=url")
        if not address.startswith(("http://", "https://")):
            raise ConfigurationError(f"Pool {name} address must be an http(s) URL: {address}")
        pairs.append((name, address))
    if not pairs:
        raise ConfigurationError("No upstream pools configured")
    return pairs


def build_pool_configuration(
    pools_setting: str,
    active_pool: str,
    max_fails: int = 1,
    fail_timeout: float = 5.0,
) -> PoolConfiguration:
    """
    Build a pool with the active member as primary and the others as standbys.

    Args:
        pools_setting (str): Ordered "name=url" pairs.
        active_pool (str): Name of the member that becomes primary.
        max_fails (int): Consecutive failures before suspension.
        fail_timeout (float): Suspension window in seconds.

    Returns:
        PoolConfiguration: The validated configuration.

    Raises:
        ConfigurationError: If the definition is inconsistent.
    """
    pairs = parse_pools(pools_setting)
    if active_pool not in [name for name, _ in pairs]:
        raise ConfigurationError(
            f"Active pool '{active_pool}' is not one of {[name for name, _ in pairs]}"
        )
    try:
        members = [
            Backend(
                name=name,
                address=address,
                role=BackendRole.PRIMARY if name == active_pool else BackendRole.STANDBY,
                max_fails=max_fails,
                fail_timeout=fail_timeout,
            )
            for name, address in pairs
        ]
        primary = next(b for b in members if b.role == BackendRole.PRIMARY)
        pool = PoolConfiguration(
            primary=primary,
            standbys=tuple(b for b in members if b.role == BackendRole.STANDBY),
        )
    except ValidationError as e:
        raise ConfigurationError(f"Invalid pool configuration: {e}") from e
    logger.info(
        f"Built pool configuration: primary={pool.primary.name}, "
        f"standbys={[b.name for b in pool.standbys]}"
    )
    return pool


def pool_from_config(config=Config) -> PoolConfiguration:
    """
    Build the pool configuration from the environment-backed Config.
    """
    return build_pool_configuration(
        config.UPSTREAM_POOLS,
        config.ACTIVE_POOL,
        max_fails=config.MAX_FAILS,
        fail_timeout=config.FAIL_TIMEOUT,
    )
