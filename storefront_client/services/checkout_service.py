"""
Checkout Service

Drives one checkout attempt through:

    IDLE -> ADDRESS_SELECTED -> CREATING_PAYMENT_SESSION
         -> AWAITING_GATEWAY_CALLBACK -> VERIFYING -> {SUCCEEDED, FAILED}

The payment widget answers out of band, through callbacks. While waiting
the service holds a future that only those callbacks, cancel(), a cleared
session or the optional callback timeout can resolve.
"""

import asyncio
from typing import Any, Callable, Optional, Tuple

from ..config import CheckoutConfig, PaymentConfig
from ..errors import (
    AuthenticationError,
    CheckoutGuardError,
    StorefrontError,
    TransportError
)
from ..models.cart import Cart
from ..models.checkout import (
    Address,
    CheckoutResult,
    CheckoutStage,
    FailureReason,
    GatewayCallback,
    PaymentSession
)
from ..models.session import Notification, SessionSnapshot
from ..utils.logger import get_logger
from .cart_service import CartService
from .event_bus import EventBus, Topic
from .payment_service import PaymentService
from .payment_widget import PaymentWidget, WidgetOptions
from .session_manager import SessionManager

logger = get_logger(__name__)

IN_FLIGHT_STAGES = (
    CheckoutStage.CREATING_PAYMENT_SESSION,
    CheckoutStage.AWAITING_GATEWAY_CALLBACK,
    CheckoutStage.VERIFYING,
)

# Widget outcomes
_SUCCESS = "success"
_DISMISSED = "dismissed"
_DECLINED = "declined"
_CANCELLED = "cancelled"
_SESSION_CLEARED = "session-cleared"
_TIMED_OUT = "timed-out"


class CheckoutService:
    """Checkout orchestrator: address, amount, payment session, callback, verification"""

    def __init__(
        self,
        payment_service: PaymentService,
        cart_service: CartService,
        session_manager: SessionManager,
        bus: EventBus,
        payment_config: PaymentConfig,
        checkout_config: CheckoutConfig,
        widget: Optional[PaymentWidget] = None,
        navigate: Optional[Callable[[str], Any]] = None
    ):
        """
        Initialize checkout service

        Args:
            payment_service: Creates and verifies payment sessions
            cart_service: Source of the cart being paid for
            session_manager: Live session (checkout requires one)
            bus: Event bus for notifications and session-cleared
            payment_config: Widget key, currency, callback timeout
            checkout_config: Shipping fee, order-confirmation path
            widget: Bridge to the hosted payment widget
            navigate: Called with the order-confirmation path on success
        """
        self._payments = payment_service
        self._cart = cart_service
        self._session = session_manager
        self._bus = bus
        self.payment_config = payment_config
        self.checkout_config = checkout_config
        self.widget = widget
        self._navigate = navigate

        self._stage = CheckoutStage.IDLE
        self._address: Optional[Address] = None
        self._payment_session: Optional[PaymentSession] = None
        self._callback: Optional[asyncio.Future] = None
        self.last_result: Optional[CheckoutResult] = None

        self._subscription = bus.subscribe(Topic.SESSION_CLEARED, self._on_session_cleared)
        logger.info("CheckoutService initialized")

    # ================================
    # READ-ONLY VIEW
    # ================================

    @property
    def stage(self) -> CheckoutStage:
        return self._stage

    @property
    def selected_address(self) -> Optional[Address]:
        return self._address

    @property
    def payment_session(self) -> Optional[PaymentSession]:
        """Payment session of the attempt in flight, if any"""
        return self._payment_session

    @property
    def in_progress(self) -> bool:
        return self._stage in IN_FLIGHT_STAGES

    def compute_amount(self, cart: Cart) -> float:
        """Amount charged: cart subtotal plus the shipping fee"""
        return round(cart.subtotal + self.checkout_config.shipping_fee, 2)

    def close(self) -> None:
        self._subscription.unsubscribe()

    # ================================
    # ADDRESS
    # ================================

    def select_address(self, address: Address) -> None:
        """Choose the delivery address for the next attempt"""
        if self.in_progress:
            raise CheckoutGuardError("Cannot change the address while a payment is in progress")
        self._address = address
        self._stage = CheckoutStage.ADDRESS_SELECTED
        logger.info(f"[Checkout] Address selected: {address.id}")

    def clear_address(self) -> None:
        if self.in_progress:
            raise CheckoutGuardError("Cannot clear the address while a payment is in progress")
        self._address = None
        self._stage = CheckoutStage.IDLE

    # ================================
    # PLACE ORDER
    # ================================

    def _check_guards(self) -> Tuple[Cart, Address]:
        if self.in_progress:
            raise CheckoutGuardError("A checkout attempt is already in progress")
        if not self._session.is_authenticated:
            raise CheckoutGuardError("Please login to checkout")
        cart = self._cart.cart
        if cart is None or cart.is_empty():
            raise CheckoutGuardError("Your cart is empty")
        if self._address is None:
            raise CheckoutGuardError("Please select a delivery address")
        if self.widget is None:
            raise CheckoutGuardError("No payment widget is available")
        return cart, self._address

    async def place_order(self) -> CheckoutResult:
        """
        Run one checkout attempt to a terminal outcome

        Returns:
            CheckoutResult. A payment-session failure returns to IDLE; every
            other outcome is SUCCEEDED or FAILED with a reason.

        Raises:
            CheckoutGuardError: no session, empty or unloaded cart, no
                address, no widget, or an attempt already in progress
        """
        cart, address = self._check_guards()
        amount = self.compute_amount(cart)

        # A new payment session for every attempt
        self._stage = CheckoutStage.CREATING_PAYMENT_SESSION
        self._payment_session = None
        payment_session: Optional[PaymentSession] = None
        logger.info(f"[Checkout] Creating payment session for {amount} "
                    f"({cart.item_count} item(s), address {address.id})")
        try:
            try:
                payment_session = await self._payments.create_payment_session(amount)
            except StorefrontError as e:
                logger.error(f"[Checkout] Payment session creation failed ({e.kind.value}): {e.message}")
                self._stage = CheckoutStage.IDLE
                result = CheckoutResult(
                    stage=CheckoutStage.IDLE,
                    success=False,
                    message=f"Could not start payment: {e.message}",
                    reason=FailureReason.PAYMENT_SESSION_FAILED,
                    amount=amount
                )
                self._notify("Payment failed", result.message, "error")
                self.last_result = result
                return result

            self._payment_session = payment_session
            if not self._session.is_authenticated:
                return self._fail(FailureReason.SESSION_CLEARED, "Session ended before payment", amount)

            outcome, payload = await self._await_gateway(payment_session, address)

            if outcome == _DISMISSED or outcome == _CANCELLED:
                return self._fail(FailureReason.USER_CANCELLED, "Payment cancelled", amount)
            if outcome == _SESSION_CLEARED:
                return self._fail(FailureReason.SESSION_CLEARED, "Session ended during payment", amount)
            if outcome == _DECLINED:
                description = (payload or {}).get("description") or "Payment declined"
                return self._fail(FailureReason.PAYMENT_FAILED, description, amount)
            if outcome == _TIMED_OUT:
                return self._fail(FailureReason.CALLBACK_TIMEOUT, "Payment window timed out", amount)

            return await self._verify(payment_session, payload, cart, address, amount)
        finally:
            if self.in_progress:
                self._abandon(amount)
            if payment_session is not None and not payment_session.consumed:
                self._payments.discard(payment_session, self._stage.value)
            self._payment_session = None
            self._callback = None

    def _abandon(self, amount: float) -> None:
        """Settle an attempt that was interrupted (task cancelled or unexpected error)"""
        interrupted = self._stage
        logger.error(f"[Checkout] Attempt interrupted during {interrupted.value}")
        if interrupted == CheckoutStage.CREATING_PAYMENT_SESSION:
            self._stage = CheckoutStage.IDLE
            self.last_result = CheckoutResult(
                stage=CheckoutStage.IDLE,
                success=False,
                message="Could not start payment",
                reason=FailureReason.PAYMENT_SESSION_FAILED,
                amount=amount
            )
            return
        reason = (FailureReason.VERIFICATION_UNAVAILABLE if interrupted == CheckoutStage.VERIFYING
                  else FailureReason.USER_CANCELLED)
        self._stage = CheckoutStage.FAILED
        self.last_result = CheckoutResult(
            stage=CheckoutStage.FAILED,
            success=False,
            message="Payment was interrupted",
            reason=reason,
            amount=amount
        )

    async def _await_gateway(self, payment_session: PaymentSession,
                             address: Address) -> Tuple[str, Any]:
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        self._callback = future
        attempt_id = payment_session.attempt_id

        def resolve(outcome: str, payload: Any = None) -> None:
            if self._callback is not future or future.done():
                logger.warning(f"[Checkout] Ignoring late '{outcome}' callback for attempt {attempt_id}")
                return
            future.set_result((outcome, payload))

        options = WidgetOptions(
            key_id=self.payment_config.key_id,
            amount=payment_session.minor_amount,
            currency=payment_session.currency,
            gateway_order_id=payment_session.gateway_order_id,
            name=self.payment_config.merchant_name,
            description=self.payment_config.description,
            on_success=lambda payload: resolve(_SUCCESS, payload),
            on_dismiss=lambda: resolve(_DISMISSED),
            on_failure=lambda error: resolve(_DECLINED, error),
            prefill={"name": address.full_name, "contact": address.phone},
            theme_color=self.payment_config.theme_color
        )

        self._stage = CheckoutStage.AWAITING_GATEWAY_CALLBACK
        logger.info(f"[Checkout] Opening payment widget for order {payment_session.gateway_order_id}")
        try:
            self.widget.open(options)
        except Exception as e:
            logger.error(f"[Checkout] Payment widget failed to open: {e}")
            return _DECLINED, {"description": f"Payment window could not open: {e}"}

        timeout = self.payment_config.callback_timeout
        if timeout is None:
            return await future
        try:
            return await asyncio.wait_for(asyncio.shield(future), timeout)
        except asyncio.TimeoutError:
            logger.warning(f"[Checkout] No widget callback within {timeout}s")
            return _TIMED_OUT, None

    async def _verify(self, payment_session: PaymentSession, payload: Any, cart: Cart,
                      address: Address, amount: float) -> CheckoutResult:
        try:
            callback = GatewayCallback.from_dict(payload or {})
        except ValueError as e:
            logger.error(f"[Checkout] Malformed gateway callback: {e}")
            return self._fail(FailureReason.PAYMENT_FAILED, "Payment response was incomplete", amount)

        self._stage = CheckoutStage.VERIFYING
        try:
            response = await self._payments.verify_payment(payment_session, callback, cart, address.id)
        except AuthenticationError:
            return self._fail(FailureReason.UNAUTHENTICATED, "Session expired during verification", amount)
        except TransportError as e:
            return self._fail(FailureReason.VERIFICATION_UNAVAILABLE,
                              f"Could not confirm payment: {e.message}", amount)
        except StorefrontError as e:
            return self._fail(FailureReason.VERIFICATION_REJECTED,
                              f"Payment could not be verified: {e.message}", amount)

        order = response.get("order") if isinstance(response.get("order"), dict) else {}
        order_id = response.get("orderId") or order.get("_id") or order.get("id")

        self._stage = CheckoutStage.SUCCEEDED
        redirect_to = self.checkout_config.order_confirmation_path
        result = CheckoutResult(
            stage=CheckoutStage.SUCCEEDED,
            success=True,
            message="Payment successful! Order placed.",
            amount=amount,
            order_id=str(order_id) if order_id else None,
            redirect_to=redirect_to
        )
        self.last_result = result
        logger.info(f"[Checkout] Order placed (order id: {result.order_id})")

        # The server turned the cart into an order
        await self._cart.load_for_session()
        self._notify("Order placed", result.message, "success")
        if self._navigate is not None:
            try:
                self._navigate(redirect_to)
            except Exception as e:
                logger.error(f"[Checkout] Navigation to {redirect_to} failed: {e}")
        return result

    def _fail(self, reason: FailureReason, message: str, amount: Optional[float]) -> CheckoutResult:
        self._stage = CheckoutStage.FAILED
        result = CheckoutResult(
            stage=CheckoutStage.FAILED,
            success=False,
            message=message,
            reason=reason,
            amount=amount
        )
        self.last_result = result
        logger.info(f"[Checkout] Attempt failed: {reason.value} ({message})")
        level = "info" if reason == FailureReason.USER_CANCELLED else "error"
        self._notify("Payment not completed", message, level)
        return result

    # ================================
    # CANCELLATION
    # ================================

    def cancel(self) -> bool:
        """
        User-level cancellation of the attempt waiting on the widget

        Returns:
            True if a waiting attempt was cancelled
        """
        future = self._callback
        if self._stage != CheckoutStage.AWAITING_GATEWAY_CALLBACK or future is None or future.done():
            return False
        future.set_result((_CANCELLED, None))
        logger.info("[Checkout] Payment cancelled by user")
        return True

    def _on_session_cleared(self, snapshot: SessionSnapshot) -> None:
        future = self._callback
        if self._stage == CheckoutStage.AWAITING_GATEWAY_CALLBACK and future is not None and not future.done():
            future.set_result((_SESSION_CLEARED, None))
        elif not self.in_progress:
            self._address = None
            self._stage = CheckoutStage.IDLE

    def _notify(self, title: str, description: str, level: str) -> None:
        self._bus.publish(Topic.NOTIFICATION, Notification(title=title, description=description, level=level))
