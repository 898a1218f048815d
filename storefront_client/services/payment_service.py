"""
Payment Service

Creates the single-use payment session for a checkout attempt and sends
the gateway's signed callback to the server for verification. Whether a
payment is genuine is decided by the server only.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..config import PaymentConfig
from ..errors import IntegrityError, PaymentError, StorefrontError
from ..models.cart import Cart
from ..models.checkout import GatewayCallback, PaymentSession
from ..storefront_api_client import StorefrontApiClient
from ..utils.logger import get_logger

logger = get_logger(__name__)


class PaymentService:
    """Server-side half of the payment handshake"""

    def __init__(self, api_client: StorefrontApiClient, payment_config: PaymentConfig):
        """
        Initialize payment service

        Args:
            api_client: Gateway for the payment endpoints
            payment_config: Currency and gateway settings
        """
        self._api = api_client
        self.config = payment_config
        self.attempts: List[Dict[str, Any]] = []  # audit trail, one entry per payment session
        logger.info(f"PaymentService initialized (currency: {payment_config.currency})")

    async def create_payment_session(self, amount: float) -> PaymentSession:
        """
        Create a gateway order scoped to `amount`

        Args:
            amount: Cart subtotal plus shipping

        Returns:
            Fresh PaymentSession

        Raises:
            StorefrontError: transport/auth/server failure from the gateway
            PaymentError: the response carries no gateway order id
        """
        logger.info(f"[Payment] Creating payment session for amount: {amount}")
        result = await self._api.create_payment_order(amount)

        order_id = None
        gateway_amount = None
        currency = self.config.currency
        if isinstance(result, dict):
            order = result.get('order') if isinstance(result.get('order'), dict) else result
            order_id = order.get('orderId') or order.get('id')
            gateway_amount = order.get('amount')
            currency = order.get('currency') or currency

        if not order_id:
            logger.error(f"[Payment] Payment session response has no order id: {result}")
            raise PaymentError("Payment order creation returned no gateway order id")

        if gateway_amount is not None:
            try:
                # Minor units; some gateways send "405000.00"
                gateway_amount = int(round(float(gateway_amount)))
            except (TypeError, ValueError) as e:
                logger.error(f"[Payment] Unreadable gateway amount: {gateway_amount!r}")
                raise PaymentError(f"Payment order creation returned an invalid amount: {gateway_amount!r}") from e

        session = PaymentSession(
            gateway_order_id=str(order_id),
            amount=amount,
            currency=currency,
            gateway_amount=gateway_amount
        )
        self.attempts.append({
            "attempt_id": session.attempt_id,
            "gateway_order_id": session.gateway_order_id,
            "amount": amount,
            "currency": currency,
            "status": "created",
            "created_at": session.created_at
        })
        logger.info(f"[Payment] Payment session created: {session.gateway_order_id}")
        return session

    async def verify_payment(self, payment_session: PaymentSession, callback: GatewayCallback,
                             cart: Cart, address_id: str) -> Dict[str, Any]:
        """
        Ask the server to verify the widget's signed identifiers and create the order

        The payment session is consumed before the request, so it can
        never back a second verification.

        Raises:
            PaymentError: the payment session was already used
            IntegrityError: callback does not belong to this session, or the server rejected it
            StorefrontError: transport/auth/server failure from the gateway
        """
        try:
            payment_session.consume()
        except ValueError as e:
            raise PaymentError(str(e)) from e

        if callback.gateway_order_id != payment_session.gateway_order_id:
            self._record(payment_session, "rejected", error="order id mismatch")
            raise IntegrityError(
                "Gateway callback does not match the active payment session",
                {"expected": payment_session.gateway_order_id, "received": callback.gateway_order_id}
            )

        verification_data = callback.to_payload()
        verification_data.update({
            "cart": cart.to_dict(),
            "addressId": address_id
        })

        logger.info(f"[Payment] Verifying payment {callback.payment_id} for order {callback.gateway_order_id}")
        try:
            result = await self._api.verify_payment(verification_data)
        except StorefrontError as e:
            self._record(payment_session, "failed", error=str(e))
            raise

        if isinstance(result, dict) and result.get('success') is False:
            message = result.get('message') or 'Verification rejected'
            self._record(payment_session, "rejected", error=message)
            raise IntegrityError(f"Payment verification failed: {message}")

        self._record(payment_session, "verified", payment_id=callback.payment_id)
        logger.info(f"[Payment] Payment verified: {callback.payment_id}")
        return result if isinstance(result, dict) else {"data": result}

    def discard(self, payment_session: PaymentSession, reason: str) -> None:
        """Record that an attempt ended without verification"""
        self._record(payment_session, "discarded", error=reason)

    def _record(self, payment_session: PaymentSession, status: str, **details: Any) -> None:
        for attempt in self.attempts:
            if attempt["attempt_id"] == payment_session.attempt_id:
                attempt["status"] = status
                attempt["updated_at"] = datetime.now(timezone.utc)
                attempt.update({k: v for k, v in details.items() if v is not None})
                return
