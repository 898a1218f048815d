"""Configuration management for the storefront client"""

import os
import logging
from dataclasses import dataclass
from typing import Optional, Dict, Any
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def _env_optional_float(name: str) -> Optional[float]:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return None
    return float(value)


@dataclass
class APIConfig:
    """Remote storefront API configuration"""
    backend_endpoint: str
    timeout: float = 30.0
    max_keepalive_connections: int = 5
    max_connections: int = 10
    identity_login_path: str = "/auth/google"
    debug_curl: bool = False

    @property
    def base_url(self) -> str:
        """Backend endpoint without a trailing slash"""
        return self.backend_endpoint.rstrip("/")

    @property
    def default_headers(self) -> Dict[str, str]:
        """Default headers for API requests"""
        return {
            "Content-Type": "application/json",
            "Accept": "application/json"
        }


@dataclass
class SessionConfig:
    """Persisted session store configuration"""
    store_type: str = "file"  # memory, file, redis
    store_path: str = "~/.storefront-client"
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_key_prefix: str = "storefront"


@dataclass
class PaymentConfig:
    """Payment gateway widget configuration"""
    key_id: Optional[str] = None
    currency: str = "INR"
    merchant_name: str = "IRAXA FASHION MART"
    description: str = "Order Payment"
    theme_color: str = "#8b5cf6"
    # Seconds to wait for the widget callback; None waits until dismissed
    callback_timeout: Optional[float] = None
    # Development only: resolve the widget locally instead of opening it
    mock_mode: bool = False
    mock_outcome: str = "success"  # success, dismiss, failure


@dataclass
class CheckoutConfig:
    """Checkout amounts and navigation"""
    shipping_fee: float = 50.0
    order_confirmation_path: str = "/orders"


@dataclass
class LoggingConfig:
    """Logging configuration"""
    level: str = "INFO"
    file: Optional[str] = None
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class Config:
    """Main configuration class"""

    def __init__(self):
        self.api = APIConfig(
            backend_endpoint=os.getenv("STOREFRONT_BACKEND_URL", "http://localhost:5000"),
            timeout=float(os.getenv("STOREFRONT_API_TIMEOUT", "30")),
            identity_login_path=os.getenv("STOREFRONT_LOGIN_PATH", "/auth/google"),
            debug_curl=_env_bool("DEBUG_CURL_LOGGING", "false")
        )

        self.session = SessionConfig(
            store_type=os.getenv("SESSION_STORE", "file"),
            store_path=os.path.expanduser(os.getenv("SESSION_STORE_PATH", "~/.storefront-client")),
            redis_host=os.getenv("REDIS_HOST", "localhost"),
            redis_port=int(os.getenv("REDIS_PORT", "6379")),
            redis_db=int(os.getenv("REDIS_DB", "0")),
            redis_key_prefix=os.getenv("REDIS_KEY_PREFIX", "storefront")
        )

        self.payment = PaymentConfig(
            key_id=os.getenv("RAZORPAY_KEY_ID"),
            currency=os.getenv("PAYMENT_CURRENCY", "INR"),
            merchant_name=os.getenv("PAYMENT_MERCHANT_NAME", "IRAXA FASHION MART"),
            callback_timeout=_env_optional_float("PAYMENT_CALLBACK_TIMEOUT"),
            mock_mode=_env_bool("PAYMENT_MOCK_MODE", "false"),
            mock_outcome=os.getenv("MOCK_PAYMENT_OUTCOME", "success")
        )

        self.checkout = CheckoutConfig(
            shipping_fee=float(os.getenv("SHIPPING_FEE", "50")),
            order_confirmation_path=os.getenv("ORDER_CONFIRMATION_PATH", "/orders")
        )

        self.logging = LoggingConfig(
            level=os.getenv("LOG_LEVEL", "INFO"),
            file=os.getenv("LOG_FILE")
        )

    def validate(self) -> bool:
        """Validate configuration"""
        errors = []

        if not self.api.backend_endpoint:
            errors.append("STOREFRONT_BACKEND_URL is required")
        if self.session.store_type not in ("memory", "file", "redis"):
            errors.append(f"SESSION_STORE must be memory, file or redis, got {self.session.store_type}")
        if not self.payment.mock_mode and not self.payment.key_id:
            errors.append("RAZORPAY_KEY_ID is required unless PAYMENT_MOCK_MODE is enabled")
        if self.checkout.shipping_fee < 0:
            errors.append("SHIPPING_FEE cannot be negative")
        if self.payment.mock_outcome not in ("success", "dismiss", "failure"):
            errors.append("MOCK_PAYMENT_OUTCOME must be success, dismiss or failure")

        if errors:
            for error in errors:
                logger.error(f"Configuration error: {error}")
            return False

        return True

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary"""
        return {
            "api": {
                "backend_endpoint": self.api.backend_endpoint,
                "timeout": self.api.timeout,
                "identity_login_path": self.api.identity_login_path
            },
            "session": {
                "store_type": self.session.store_type,
                "store_path": self.session.store_path
            },
            "payment": {
                "currency": self.payment.currency,
                "merchant_name": self.payment.merchant_name,
                "callback_timeout": self.payment.callback_timeout,
                "mock_mode": self.payment.mock_mode
            },
            "checkout": {
                "shipping_fee": self.checkout.shipping_fee,
                "order_confirmation_path": self.checkout.order_confirmation_path
            },
            "logging": {
                "level": self.logging.level,
                "file": self.logging.file
            }
        }


_config: Optional[Config] = None


def get_config() -> Config:
    """Get the process configuration, creating it on first use"""
    global _config
    if _config is None:
        _config = Config()
    return _config
