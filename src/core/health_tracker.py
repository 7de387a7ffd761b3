import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from config.logging_config import setup_logging
from contracts.backend import Backend
from contracts.request_record import AttemptOutcome

setup_logging()
logger = logging.getLogger(__name__)


@dataclass
class HealthState:
    consecutive_failures: int = 0
    suspended_until: Optional[float] = None


class _Slot:
    __slots__ = ("lock", "state")

    def __init__(self):
        self.lock = threading.Lock()
        self.state = HealthState()


class HealthTracker:
    """
    Tracks consecutive failures and suspension windows per backend.

    State is keyed by backend address so it survives a pool swap that only
    changes roles. Each backend has its own lock; locks are never held across
    an await.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._slots: Dict[str, _Slot] = {}
        self._slots_lock = threading.Lock()

    def _slot(self, backend: Backend) -> _Slot:
        slot = self._slots.get(backend.address)
        if slot is None:
            with self._slots_lock:
                slot = self._slots.setdefault(backend.address, _Slot())
        return slot

    def record(self, backend: Backend, outcome: AttemptOutcome):
        """
        Update the backend's health from one attempt outcome.

        Args:
            backend (Backend): The backend that was attempted.
            outcome (AttemptOutcome): How the attempt ended.
        """
        if outcome != AttemptOutcome.SUCCESS and not outcome.is_failure:
            return
        slot = self._slot(backend)
        now = self._clock()
        with slot.lock:
            state = slot.state
            if outcome == AttemptOutcome.SUCCESS:
                recovered = state.consecutive_failures > 0 or state.suspended_until is not None
                state.consecutive_failures = 0
                state.suspended_until = None
                if recovered:
                    logger.info(f"Health transition: {backend.name} ({backend.address}) recovered")
                return
            state.consecutive_failures += 1
            failures = state.consecutive_failures
            if failures >= backend.max_fails:
                state.suspended_until = now + backend.fail_timeout
        logger.warning(
            f"Backend {backend.name} ({backend.address}) {outcome.value}, "
            f"{failures} consecutive failure(s)"
        )
        if failures >= backend.max_fails:
            logger.warning(
                f"Health transition: {backend.name} suspended for {backend.fail_timeout}s "
                f"after {failures} consecutive failure(s)"
            )

    def is_eligible(self, backend: Backend) -> bool:
        slot = self._slot(backend)
        now = self._clock()
        with slot.lock:
            until = slot.state.suspended_until
        return until is None or until <= now

    def snapshot(self, backend: Backend) -> HealthState:
        """
        Return a copy of the backend's current health state.
        """
        slot = self._slot(backend)
        with slot.lock:
            return HealthState(
                consecutive_failures=slot.state.consecutive_failures,
                suspended_until=slot.state.suspended_until,
            )
