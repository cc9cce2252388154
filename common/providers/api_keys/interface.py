from abc import ABC, abstractmethod


class APIKeyRotationInterface(ABC):
    """Interface for API key rotation providers."""

    @abstractmethod
    def get_next_key(self) -> str:
        """Return the next healthy key in round-robin order."""
        pass

    @abstractmethod
    def report_failure(self, key: str) -> None:
        pass

    @abstractmethod
    def report_success(self, key: str) -> None:
        pass

    @abstractmethod
    def get_healthy_key_count(self) -> int:
        pass
