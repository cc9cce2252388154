from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Dict, Any


class MessageQueueInterface(ABC):
    @abstractmethod
    async def connect(self) -> bool:
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        pass

    @abstractmethod
    async def publish(self, queue: str, message: Dict[str, Any]) -> bool:
        pass

    @abstractmethod
    async def consume(
        self,
        queue: str,
        callback: Callable[[Dict[str, Any]], Awaitable[None]],
        auto_ack: bool = True,
        prefetch_count: int = 1,
    ) -> None:
        """Consume until cancelled. Raising from callback triggers redelivery/DLQ."""
        pass

    @abstractmethod
    async def declare_queue(
        self, queue: str, durable: bool = True, dlq_enabled: bool = True
    ) -> bool:
        pass
