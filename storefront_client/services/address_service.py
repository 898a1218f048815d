"""
Address Service

Delivery addresses saved on the server for the signed-in user.
"""

from typing import Any, List

from ..errors import AuthenticationError
from ..models.checkout import Address
from ..storefront_api_client import StorefrontApiClient
from ..utils.logger import get_logger
from .session_manager import SessionManager

logger = get_logger(__name__)


class AddressService:
    """CRUD over the user's delivery addresses"""

    def __init__(self, api_client: StorefrontApiClient, session_manager: SessionManager):
        self._api = api_client
        self._session = session_manager
        logger.info("AddressService initialized")

    def _require_session(self) -> None:
        if not self._session.is_authenticated:
            raise AuthenticationError("Please login to manage addresses")

    async def list_addresses(self) -> List[Address]:
        """
        Fetch saved addresses

        Raises:
            AuthenticationError: no live session
            StorefrontError: gateway failure
        """
        self._require_session()
        response = await self._api.get_addresses()
        addresses = _parse_addresses(response)
        logger.info(f"[Address] Loaded {len(addresses)} address(es)")
        return addresses

    async def add_address(self, address: Address) -> List[Address]:
        """Save a new address; returns the updated list"""
        self._require_session()
        response = await self._api.add_address(address.to_payload())
        logger.info(f"[Address] Added address for {address.full_name}")
        return await self._list_from(response)

    async def update_address(self, address: Address) -> List[Address]:
        """Overwrite an existing address; returns the updated list"""
        self._require_session()
        response = await self._api.update_address(address.id, address.to_payload())
        logger.info(f"[Address] Updated address {address.id}")
        return await self._list_from(response)

    async def delete_address(self, address_id: str) -> List[Address]:
        self._require_session()
        response = await self._api.delete_address(address_id)
        logger.info(f"[Address] Deleted address {address_id}")
        return await self._list_from(response)

    async def _list_from(self, response: Any) -> List[Address]:
        # Mutations may or may not echo the list back
        if isinstance(response, dict) and isinstance(response.get('addresses'), list):
            return _parse_addresses(response)
        return await self.list_addresses()


def _parse_addresses(response: Any) -> List[Address]:
    if isinstance(response, dict):
        raw = response.get('addresses') or []
    elif isinstance(response, list):
        raw = response
    else:
        raw = []

    addresses = []
    for entry in raw:
        try:
            addresses.append(Address.from_dict(entry))
        except (ValueError, AttributeError) as e:
            logger.warning(f"[Address] Skipping malformed address entry: {e}")
    return addresses
