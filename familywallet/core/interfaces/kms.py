from abc import ABC, abstractmethod


class IKeyManagementService(ABC):
    """Master-key service that wraps and unwraps data-encryption keys."""

    @abstractmethod
    async def wrap(self, dek: bytes) -> bytes:
        pass

    @abstractmethod
    async def unwrap(self, wrapped_dek: bytes) -> bytes:
        pass
