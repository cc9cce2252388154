from abc import ABC, abstractmethod
from typing import Optional, BinaryIO


class StorageInterface(ABC):
    @abstractmethod
    async def upload(
        self, key: str, data: BinaryIO, metadata: Optional[dict] = None
    ) -> bool:
        pass

    @abstractmethod
    async def download(self, key: str) -> Optional[bytes]:
        """Return the object's bytes, or None when the key does not exist."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        pass

    @abstractmethod
    async def exists(self, key: str) -> bool:
        pass
