from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional


class Provider(ABC):
    """Base provider interface"""

    name: str
    timeout_s: float = 10

    @abstractmethod
    async def ready(self) -> bool:
        """Check if provider is ready to serve requests"""
        pass

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        """Return provider health status"""
        pass


class BridgeProvider(Provider):
    """Provider for bridge quotes and order tracking"""

    @abstractmethod
    async def precheck(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Validate a transfer and return fee/ETA quote data"""
        pass

    @abstractmethod
    async def get_order(self, order_id: str) -> Optional[Dict[str, Any]]:
        """Fetch an order by id; None while the provider has not indexed it"""
        pass

    @abstractmethod
    async def find_order_ids(self, tx_hash: str) -> List[str]:
        """List order ids created by a source transaction"""
        pass
