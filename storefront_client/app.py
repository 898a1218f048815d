"""
Storefront client composition root

Builds one instance of each component and wires them through a shared
event bus. Components never look each other up globally; the app object
holds the only references.
"""

from typing import Any, Callable, Optional

import httpx

from .config import Config, get_config
from .services.address_service import AddressService
from .services.cart_service import CartService
from .services.checkout_service import CheckoutService
from .services.event_bus import EventBus
from .services.order_service import OrderService
from .services.payment_service import PaymentService
from .services.payment_widget import MockPaymentWidget, PaymentWidget
from .services.session_manager import SessionManager
from .services.session_persistence import SessionStore, create_session_store
from .storefront_api_client import StorefrontApiClient
from .utils.logger import get_logger, setup_logging

logger = get_logger(__name__)


class StorefrontApp:
    """All client components for one storefront session"""

    def __init__(
        self,
        config: Config,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        payment_widget: Optional[PaymentWidget] = None,
        session_store: Optional[SessionStore] = None,
        navigate: Optional[Callable[[str], Any]] = None
    ):
        self.config = config
        self.bus = EventBus()
        self.store = session_store or create_session_store(config.session)
        self.api_client = StorefrontApiClient(config.api, transport=transport)
        self.session = SessionManager(self.store, self.bus, self.api_client)
        self.cart = CartService(self.api_client, self.session, self.bus,
                                shipping_fee=config.checkout.shipping_fee)
        self.addresses = AddressService(self.api_client, self.session)
        self.orders = OrderService(self.api_client, self.session)
        self.payments = PaymentService(self.api_client, config.payment)

        if payment_widget is None and config.payment.mock_mode:
            logger.warning(f"Payment mock mode enabled (outcome: {config.payment.mock_outcome})")
            payment_widget = MockPaymentWidget(outcome=config.payment.mock_outcome)

        self.checkout = CheckoutService(
            self.payments,
            self.cart,
            self.session,
            self.bus,
            config.payment,
            config.checkout,
            widget=payment_widget,
            navigate=navigate
        )

    async def start(self):
        """Restore the persisted session; cart loading follows via session-acquired"""
        snapshot = await self.session.restore()
        logger.info(f"Storefront client started (session: {snapshot.state.value})")
        return snapshot

    async def close(self) -> None:
        """Detach services from the bus and let pending handlers finish"""
        await self.bus.drain()
        self.checkout.close()
        self.cart.close()


def create_app(
    config: Optional[Config] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    payment_widget: Optional[PaymentWidget] = None,
    session_store: Optional[SessionStore] = None,
    navigate: Optional[Callable[[str], Any]] = None,
    configure_logging: bool = False
) -> StorefrontApp:
    """Create a StorefrontApp from the given or process configuration"""
    config = config or get_config()
    if configure_logging:
        setup_logging(config.logging)
    if not config.validate():
        logger.warning("Configuration has errors; some features may be unavailable")
    return StorefrontApp(config, transport=transport, payment_widget=payment_widget,
                         session_store=session_store, navigate=navigate)
