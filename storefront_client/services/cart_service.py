"""Cart service: keeps the local cart in step with the server cart

The server cart is the only source of truth. Every mutation is a full
round trip and the cart in the response replaces the local one; when a
mutation fails the whole cart is fetched again rather than guessed.
Mutations against the same item are serialized so quantity writes cannot
land out of order.
"""

import asyncio
from typing import Any, Dict, List, Optional, Tuple

from ..errors import AuthenticationError, StorefrontError
from ..models.cart import Cart, CartSnapshot
from ..models.session import SessionSnapshot
from ..storefront_api_client import StorefrontApiClient
from ..utils.logger import get_logger
from .event_bus import EventBus, Subscription, Topic
from .session_manager import SessionManager

logger = get_logger(__name__)


class CartService:
    """Owner of the authoritative local cart snapshot"""

    def __init__(self, api_client: StorefrontApiClient, session_manager: SessionManager,
                 bus: EventBus, shipping_fee: float = 0.0):
        """
        Initialize cart service

        Args:
            api_client: Gateway for cart endpoints
            session_manager: Source of the session state the cart follows
            bus: Event bus; the service listens for session signals and publishes cart-changed
            shipping_fee: Fixed fee added to the subtotal
        """
        self._api = api_client
        self._session = session_manager
        self._bus = bus
        self.shipping_fee = shipping_fee

        self._cart: Optional[Cart] = None
        self._item_locks: Dict[str, asyncio.Lock] = {}
        self._subscriptions: List[Subscription] = [
            bus.subscribe(Topic.SESSION_ACQUIRED, self._on_session_acquired),
            bus.subscribe(Topic.SESSION_CLEARED, self._on_session_cleared),
        ]
        logger.info(f"CartService initialized (shipping fee: {shipping_fee})")

    # ================================
    # READ-ONLY VIEW
    # ================================

    @property
    def cart(self) -> Optional[Cart]:
        """Current cart; None until the first successful load"""
        return self._cart

    @property
    def loaded(self) -> bool:
        return self._cart is not None

    def snapshot(self) -> CartSnapshot:
        return CartSnapshot.of(self._cart)

    def close(self) -> None:
        """Detach from the event bus"""
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []

    # ================================
    # SESSION SIGNALS
    # ================================

    async def _on_session_acquired(self, snapshot: SessionSnapshot) -> None:
        await self.load_for_session()

    def _on_session_cleared(self, snapshot: SessionSnapshot) -> None:
        had_cart = self._cart is not None
        self._cart = None
        self._item_locks.clear()
        if had_cart:
            logger.info("[Cart] Session cleared; local cart dropped")
        self._publish()

    # ================================
    # LOAD
    # ================================

    async def load_for_session(self) -> bool:
        """
        Replace the local cart with the server cart

        Waits for session restoration to settle first, so a load triggered
        early runs against the restored token rather than a stale or
        missing one. On failure the previous cart is kept.

        Returns:
            True if the cart was refreshed
        """
        await self._session.wait_until_settled()
        if not self._session.is_authenticated:
            logger.debug("[Cart] Not authenticated; skipping cart load")
            return False

        token = self._session.token
        try:
            response = await self._api.get_cart()
            cart = Cart.from_api(response, self.shipping_fee)
        except StorefrontError as e:
            logger.error(f"[Cart] Failed to load cart ({e.kind.value}): {e.message}")
            return False
        except ValueError as e:
            logger.error(f"[Cart] Unreadable cart response: {e}")
            return False

        if self._session.token != token:
            # Session changed underneath the request
            logger.info("[Cart] Discarding cart fetched for a session that is no longer live")
            return False

        self._replace(cart)
        logger.info(f"[Cart] Loaded cart: {cart.item_count} item(s), subtotal {cart.subtotal:.2f}")
        return True

    # ================================
    # MUTATIONS
    # ================================

    async def add(self, product_id: str, quantity: int, unit_price: float,
                  size: Optional[str] = None, color: Optional[str] = None,
                  image: Optional[str] = None) -> Tuple[bool, str]:
        """
        Add a product to the cart

        Args:
            product_id: Product to add
            quantity: Units to add (>= 1)
            unit_price: Price snapshot at the time of adding
            size: Variant size
            color: Variant colour
            image: Image URL shown in the cart

        Returns:
            Tuple of (success, message)
        """
        if not _positive_int(quantity):
            logger.debug(f"[Cart] Ignoring add of {product_id} with quantity {quantity!r}")
            return False, "Quantity must be at least 1"

        payload = {
            "productId": product_id,
            "quantity": quantity,
            "priceAtTimeOfAddition": unit_price,
            "size": size,
            "color": color,
            "image": image or ""
        }
        # An existing variant line shares its lock with set_quantity/remove
        line = self._cart.find_variant(product_id, size, color) if self._cart else None
        key = line.id if line else f"add:{product_id}:{size}:{color}"
        return await self._mutate(key, "add", lambda: self._api.add_to_cart(payload))

    async def set_quantity(self, item_id: str, quantity: int) -> Tuple[bool, str]:
        """
        Set the quantity of a cart item

        Non-positive or non-integer quantities are a no-op: no request is
        sent and the local cart is untouched.

        Returns:
            Tuple of (success, message)
        """
        if not _positive_int(quantity):
            logger.debug(f"[Cart] Ignoring quantity {quantity!r} for item {item_id}")
            return False, "Quantity must be at least 1"

        return await self._mutate(item_id, "update",
                                  lambda: self._api.update_cart_item(item_id, quantity))

    async def remove(self, item_id: str) -> Tuple[bool, str]:
        """Remove an item from the cart"""
        return await self._mutate(item_id, "remove", lambda: self._api.remove_cart_item(item_id))

    async def _mutate(self, key: str, operation: str, call) -> Tuple[bool, str]:
        if not self._session.is_authenticated:
            return False, "Please login to update your cart"

        lock = self._item_locks.setdefault(key, asyncio.Lock())
        async with lock:
            token = self._session.token
            try:
                response = await call()
            except AuthenticationError:
                # The gateway has already forced logout; nothing to reconcile
                return False, "Your session has expired. Please login again"
            except StorefrontError as e:
                logger.error(f"[Cart] {operation} failed for {key} ({e.kind.value}): {e.message}; re-fetching cart")
                await self.load_for_session()
                return False, f"Could not {operation} cart item: {e.message}"

            if self._session.token != token:
                return False, "Session changed while updating the cart"

            if not await self._apply_response(response):
                return False, f"Could not {operation} cart item"

            logger.info(f"[Cart] {operation} succeeded for {key}")
            return True, f"Cart updated ({self._cart.item_count} item(s))"

    async def _apply_response(self, response: Any) -> bool:
        """Adopt the cart carried by a mutation response, or fetch it when absent"""
        if isinstance(response, dict) and isinstance(response.get("items"), list):
            try:
                self._replace(Cart.from_api(response, self.shipping_fee))
                return True
            except ValueError as e:
                logger.warning(f"[Cart] Unreadable cart in mutation response: {e}")
        return await self.load_for_session()

    def _replace(self, cart: Cart) -> None:
        self._cart = cart
        self._publish()

    def _publish(self) -> None:
        self._bus.publish(Topic.CART_CHANGED, self.snapshot())


def _positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 1
