"""
Storefront API Client

Every outbound call to the storefront backend goes through this client.
It injects the live session's bearer token and observes 401 responses:
a rejected token that is still the live one forces exactly one logout.
"""

import httpx
import json
import shlex
from typing import Dict, Optional, Any, TYPE_CHECKING
from urllib.parse import urlencode

from .config import APIConfig
from .errors import ApiError, AuthenticationError, TransportError
from .utils.logger import get_logger, mask_token

if TYPE_CHECKING:
    from .services.session_manager import SessionManager

logger = get_logger(__name__)


class StorefrontApiClient:
    """Authenticated request gateway for the storefront backend"""

    def __init__(self, api_config: APIConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Initialize the storefront API client

        Args:
            api_config: API section of the client configuration
            transport: Optional httpx transport (tests inject httpx.MockTransport)
        """
        if not api_config.backend_endpoint:
            raise ValueError("STOREFRONT_BACKEND_URL or api_config.backend_endpoint is required")

        self.config = api_config
        self.base_url = api_config.base_url
        self.debug_curl = api_config.debug_curl
        self._transport = transport
        self._session_manager: Optional['SessionManager'] = None

        # HTTP client configuration
        self.timeout = httpx.Timeout(api_config.timeout)
        self.limits = httpx.Limits(
            max_keepalive_connections=api_config.max_keepalive_connections,
            max_connections=api_config.max_connections
        )

        logger.info(f"StorefrontApiClient initialized with base_url: {self.base_url}")
        if self.debug_curl:
            logger.info("CURL logging enabled for API calls")

    def bind_session_manager(self, session_manager: 'SessionManager') -> None:
        """Attach the Session Manager whose token is injected and whose logout is forced on 401"""
        self._session_manager = session_manager

    def _generate_curl_command(self, method: str, url: str, headers: Dict,
                               params: Optional[Dict], json_data: Optional[Dict]) -> str:
        """Generate curl command for debugging"""
        curl_parts = ['curl', '-X', method.upper()]

        for key, value in headers.items():
            if key.lower() == 'authorization':
                value = f"Bearer {mask_token(value[len('Bearer '):])}"
            curl_parts.extend(['-H', shlex.quote(f'{key}: {value}')])

        if json_data:
            curl_parts.extend(['-d', shlex.quote(json.dumps(json_data, separators=(',', ':')))])

        if params:
            url = f"{url}?{urlencode(params)}"

        curl_parts.append(shlex.quote(url))
        return ' '.join(curl_parts)

    def _current_token(self) -> Optional[str]:
        if self._session_manager is None:
            return None
        return self._session_manager.token

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict] = None,
        json_data: Optional[Dict] = None,
        auth_token: Optional[str] = None
    ) -> Any:
        """
        Make HTTP request to the storefront backend

        Args:
            method: HTTP method
            endpoint: Path below the backend URL
            params: Query parameters
            json_data: JSON body
            auth_token: Explicit token; defaults to the live session's token

        Returns:
            Parsed JSON body ({} for an empty body)

        Raises:
            AuthenticationError: 401 from the server
            ApiError: any other non-2xx status
            TransportError: network failure or timeout
        """
        url = f"{self.base_url}{endpoint}"
        request_headers = dict(self.config.default_headers)

        token = auth_token or self._current_token()
        if token:
            request_headers["Authorization"] = f"Bearer {token}"

        if self.debug_curl:
            curl_cmd = self._generate_curl_command(method, url, request_headers, params, json_data)
            logger.info(f"CURL: {curl_cmd}")

        logger.info(f"[REQUEST] {method.upper()} {endpoint} (auth: {mask_token(token)})")
        if json_data:
            logger.debug(f"[REQUEST] Body keys: {list(json_data.keys())}")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, limits=self.limits,
                                         transport=self._transport) as client:
                response = await client.request(
                    method=method.upper(),
                    url=url,
                    params=params,
                    json=json_data,
                    headers=request_headers
                )
        except httpx.TimeoutException as e:
            logger.error(f"Timeout for {endpoint}: {e}")
            raise TransportError(endpoint, f"timed out ({e.__class__.__name__})") from e
        except httpx.HTTPError as e:
            logger.error(f"Network/connection error for {endpoint}: {e}. Check backend availability.")
            raise TransportError(endpoint, str(e) or e.__class__.__name__) from e

        logger.debug(f"{method.upper()} {url} -> {response.status_code}")

        if response.status_code == 401:
            logger.warning(f"[Gateway] 401 Unauthorized for {endpoint}")
            self._on_unauthenticated(token)
            raise AuthenticationError(
                f"Unauthorized for {endpoint}",
                {"endpoint": endpoint, "status_code": 401}
            )

        if not response.is_success:
            server_message = self._extract_error_message(response)
            logger.error(f"HTTP {response.status_code} for {endpoint}: {server_message or response.text[:500]}")
            raise ApiError(endpoint, response.status_code, server_message)

        if not response.content:
            return {}
        try:
            return response.json()
        except json.JSONDecodeError:
            return {"success": True, "data": response.text}

    def _on_unauthenticated(self, request_token: Optional[str]) -> None:
        """
        React to a 401: force logout only if the rejected token is still the live one.

        Simultaneous failures from the same token find the session already
        cleared after the first one, so logout runs once.
        """
        manager = self._session_manager
        if manager is None or not request_token:
            return
        if not manager.is_authenticated or manager.token != request_token:
            logger.debug("[Gateway] 401 for a token that is no longer live; ignoring")
            return
        logger.warning(f"[Gateway] Server rejected live token {mask_token(request_token)}; forcing logout")
        manager.logout(reason="token-rejected")

    @staticmethod
    def _extract_error_message(response: httpx.Response) -> Optional[str]:
        try:
            body = response.json()
        except (json.JSONDecodeError, ValueError):
            return response.text[:200] or None
        if isinstance(body, dict):
            return body.get('message') or body.get('error')
        return None

    # ================================
    # AUTH APIs
    # ================================

    def identity_login_url(self) -> str:
        """Identity-provider redirect URL; the browser navigates away and back with a token"""
        return f"{self.base_url}{self.config.identity_login_path}"

    async def get_profile(self, auth_token: Optional[str] = None) -> Dict:
        """Get user profile -> {user}"""
        return await self._make_request("GET", "/auth/profile", auth_token=auth_token)

    # ================================
    # CART MANAGEMENT APIs
    # ================================

    async def get_cart(self) -> Dict:
        """Get cart contents -> {items, total}"""
        return await self._make_request("GET", "/cart")

    async def add_to_cart(self, cart_data: Dict) -> Dict:
        """Add item to cart"""
        return await self._make_request("POST", "/cart/add", json_data=cart_data)

    async def update_cart_item(self, item_id: str, quantity: int) -> Dict:
        """Set cart item quantity"""
        return await self._make_request("PUT", f"/cart/update/{item_id}", json_data={"quantity": quantity})

    async def remove_cart_item(self, item_id: str) -> Dict:
        """Remove specific item from cart"""
        return await self._make_request("DELETE", f"/cart/remove/{item_id}")

    # ================================
    # ADDRESS MANAGEMENT APIs
    # ================================

    async def get_addresses(self) -> Dict:
        """Get delivery addresses -> {addresses}"""
        return await self._make_request("GET", "/address")

    async def add_address(self, address_data: Dict) -> Dict:
        """Add delivery address"""
        return await self._make_request("POST", "/address", json_data=address_data)

    async def update_address(self, address_id: str, address_data: Dict) -> Dict:
        """Update delivery address"""
        return await self._make_request("PUT", f"/address/{address_id}", json_data=address_data)

    async def delete_address(self, address_id: str) -> Dict:
        """Delete delivery address"""
        return await self._make_request("DELETE", f"/address/{address_id}")

    # ================================
    # PAYMENT APIs
    # ================================

    async def create_payment_order(self, amount: float) -> Dict:
        """Create gateway order for one checkout attempt -> {orderId, amount, currency}"""
        return await self._make_request("POST", "/payment/create-order", json_data={"amount": amount})

    async def verify_payment(self, verification_data: Dict) -> Dict:
        """Verify gateway-signed payment identifiers and create the order"""
        return await self._make_request("POST", "/payment/verify", json_data=verification_data)

    # ================================
    # ORDER APIs
    # ================================

    async def get_my_orders(self) -> Any:
        """List the current user's orders"""
        return await self._make_request("GET", "/orders/my-orders")
