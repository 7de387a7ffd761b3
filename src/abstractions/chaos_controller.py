from abc import ABC, abstractmethod


class ChaosController(ABC):
    """
    Abstract base class for fault injectors driven by the verification harness.
    """

    @abstractmethod
    async def start(self, mode: str):
        """
        Make the target backend fail until stop() is called.

        Args:
            mode (str): "error" to answer with 5xx, "timeout" to hang.
        """

    @abstractmethod
    async def stop(self):
        """
        Stop injecting faults.
        """
