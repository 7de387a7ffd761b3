from abc import ABC, abstractmethod
from typing import AbstractSet, Optional

from contracts.backend import Backend
from contracts.pool import PoolConfiguration


class UpstreamSelector(ABC):
    """
    Abstract base class for upstream selectors. Implementations pick the next
    backend to attempt for a single client request.
    """

    @abstractmethod
    def select(
        self,
        pool: PoolConfiguration,
        attempted: AbstractSet[Backend],
        max_attempts: Optional[int] = None,
    ) -> Optional[Backend]:
        """
        Return the next backend to attempt, or None if the request must give up.

        Args:
            pool (PoolConfiguration): The pool snapshot taken at request start.
            attempted (AbstractSet[Backend]): Backends already tried for this request.
            max_attempts (Optional[int]): Cap for this request; the selector's own if None.

        Returns:
            Optional[Backend]: The backend to try next, or None when exhausted.
        """
        pass
