"""Order history for the signed-in user (read-only)"""

from typing import Any, List

from ..errors import AuthenticationError
from ..models.checkout import Order
from ..storefront_api_client import StorefrontApiClient
from ..utils.logger import get_logger
from .session_manager import SessionManager

logger = get_logger(__name__)


class OrderService:

    def __init__(self, api_client: StorefrontApiClient, session_manager: SessionManager):
        self._api = api_client
        self._session = session_manager

    async def list_my_orders(self) -> List[Order]:
        """
        Fetch the user's orders, newest first as returned by the server

        Raises:
            AuthenticationError: no live session
            StorefrontError: gateway failure
        """
        if not self._session.is_authenticated:
            raise AuthenticationError("Please login to view orders")

        response = await self._api.get_my_orders()
        orders = []
        for entry in _extract_orders(response):
            try:
                orders.append(Order.from_dict(entry))
            except (ValueError, AttributeError) as e:
                logger.warning(f"[Orders] Skipping malformed order entry: {e}")
        logger.info(f"[Orders] Loaded {len(orders)} order(s)")
        return orders


def _extract_orders(response: Any) -> List[Any]:
    # Bare list or {success, orders}
    if isinstance(response, list):
        return response
    if isinstance(response, dict):
        return response.get('orders') or []
    return []
