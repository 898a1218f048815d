"""
Storefront client

Session lifecycle, server-authoritative cart and gateway-verified checkout
for a storefront backend.
"""

from .app import StorefrontApp, create_app
from .config import Config, get_config
from .errors import (
    ApiError,
    AuthenticationError,
    CheckoutGuardError,
    ErrorKind,
    IntegrityError,
    PaymentError,
    StorefrontError,
    TransportError
)
from .services.event_bus import EventBus, Topic

__version__ = "0.1.0"

__all__ = [
    'StorefrontApp',
    'create_app',
    'Config',
    'get_config',
    'ApiError',
    'AuthenticationError',
    'CheckoutGuardError',
    'ErrorKind',
    'IntegrityError',
    'PaymentError',
    'StorefrontError',
    'TransportError',
    'EventBus',
    'Topic'
]
