"""Data models for the storefront client"""

from .session import (
    SessionState,
    UserProfile,
    Session,
    SessionSnapshot,
    Notification
)
from .cart import (
    Cart,
    CartItem,
    CartSnapshot
)
from .checkout import (
    Address,
    CheckoutResult,
    CheckoutStage,
    FailureReason,
    GatewayCallback,
    Order,
    OrderLine,
    OrderStatus,
    PaymentSession
)

__all__ = [
    'SessionState',
    'UserProfile',
    'Session',
    'SessionSnapshot',
    'Notification',
    'Cart',
    'CartItem',
    'CartSnapshot',
    'Address',
    'CheckoutResult',
    'CheckoutStage',
    'FailureReason',
    'GatewayCallback',
    'Order',
    'OrderLine',
    'OrderStatus',
    'PaymentSession'
]
