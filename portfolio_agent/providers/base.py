from abc import ABC, abstractmethod
from typing import Any, Dict

from ..types.portfolio import BalanceSet


class Provider(ABC):
    """Base provider interface"""

    name: str
    timeout_s: int = 10

    @abstractmethod
    async def ready(self) -> bool:
        """Check if provider is ready to serve requests"""
        pass

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        """Return provider health status"""
        pass


class BalanceProvider(Provider):
    """Read-only source of wallet token balances"""

    @abstractmethod
    async def list_balances(self, address: str, page_size: int = 100) -> BalanceSet:
        """List ERC-20 balances held by ``address``"""
        pass
