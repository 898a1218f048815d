"""
Payment widget contract

The hosted payment widget is opened with the gateway order created for
this attempt and reports back only through its callbacks: `on_success`
with the signed identifiers, `on_dismiss` when the user closes it, and
`on_failure` when the gateway declines the payment.

MockPaymentWidget resolves those callbacks locally for development and
tests; it never talks to a real gateway.
"""

import asyncio
import hashlib
import hmac
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ..utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class WidgetOptions:
    """Everything the widget needs to take one payment"""
    key_id: Optional[str]
    amount: int                 # minor units (paise)
    currency: str
    gateway_order_id: str
    name: str
    description: str
    on_success: Callable[[Dict[str, Any]], None]
    on_dismiss: Callable[[], None]
    on_failure: Callable[[Dict[str, Any]], None]
    prefill: Dict[str, str] = field(default_factory=dict)
    theme_color: Optional[str] = None


class PaymentWidget(ABC):
    """Host-provided bridge to the external payment widget"""

    @abstractmethod
    def open(self, options: WidgetOptions) -> None:
        """Show the widget; must return without waiting for the payment"""


class MockPaymentWidget(PaymentWidget):
    """
    MOCK WIDGET - resolves the payment locally

    Outcomes:
        success: on_success with generated payment id and HMAC signature
        dismiss: on_dismiss
        failure: on_failure with a gateway-style error
        manual:  nothing; the caller drives `succeed()` / `dismiss()` / `fail()`
    """

    def __init__(self, outcome: str = "success", signing_secret: str = "mock_secret"):
        self.outcome = outcome
        self.signing_secret = signing_secret
        self.opened: List[WidgetOptions] = []

    @property
    def last_options(self) -> Optional[WidgetOptions]:
        return self.opened[-1] if self.opened else None

    def open(self, options: WidgetOptions) -> None:
        self.opened.append(options)
        logger.info(f"[MOCK WIDGET] Opened for order {options.gateway_order_id} "
                    f"({options.amount} {options.currency}), outcome: {self.outcome}")
        if self.outcome == "manual":
            return
        # Callbacks arrive later, like a real widget
        loop = asyncio.get_running_loop()
        if self.outcome == "success":
            loop.call_soon(self.succeed)
        elif self.outcome == "dismiss":
            loop.call_soon(self.dismiss)
        else:
            loop.call_soon(self.fail)

    def sign(self, gateway_order_id: str, payment_id: str) -> str:
        """Gateway-style signature over `order_id|payment_id`"""
        message = f"{gateway_order_id}|{payment_id}".encode("utf-8")
        return hmac.new(self.signing_secret.encode("utf-8"), message, hashlib.sha256).hexdigest()

    def callback_payload(self, options: Optional[WidgetOptions] = None) -> Dict[str, str]:
        options = options or self.last_options
        payment_id = f"pay_{uuid.uuid4().hex[:14]}"
        return {
            "razorpay_order_id": options.gateway_order_id,
            "razorpay_payment_id": payment_id,
            "razorpay_signature": self.sign(options.gateway_order_id, payment_id)
        }

    def succeed(self, payload: Optional[Dict[str, Any]] = None) -> None:
        options = self.last_options
        options.on_success(payload or self.callback_payload(options))

    def dismiss(self) -> None:
        self.last_options.on_dismiss()

    def fail(self, error: Optional[Dict[str, Any]] = None) -> None:
        self.last_options.on_failure(error or {
            "code": "BAD_REQUEST_ERROR",
            "description": "Payment declined by mock gateway"
        })
