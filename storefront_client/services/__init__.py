"""Services for session, cart and checkout logic"""

from .event_bus import EventBus, Subscription, Topic
from .session_manager import SessionManager
from .cart_service import CartService
from .address_service import AddressService
from .order_service import OrderService
from .payment_service import PaymentService
from .payment_widget import MockPaymentWidget, PaymentWidget, WidgetOptions
from .checkout_service import CheckoutService

__all__ = [
    'EventBus',
    'Subscription',
    'Topic',
    'SessionManager',
    'CartService',
    'AddressService',
    'OrderService',
    'PaymentService',
    'MockPaymentWidget',
    'PaymentWidget',
    'WidgetOptions',
    'CheckoutService'
]
