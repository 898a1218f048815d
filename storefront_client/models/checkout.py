"""Checkout data models: addresses, payment sessions, gateway callbacks and orders"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Any, Tuple
import uuid


class CheckoutStage(Enum):
    """Checkout orchestration stages"""
    IDLE = "idle"
    ADDRESS_SELECTED = "address_selected"
    CREATING_PAYMENT_SESSION = "creating_payment_session"
    AWAITING_GATEWAY_CALLBACK = "awaiting_gateway_callback"
    VERIFYING = "verifying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class FailureReason(Enum):
    """Why a checkout attempt did not succeed"""
    PAYMENT_SESSION_FAILED = "payment-session-failed"
    USER_CANCELLED = "user-cancelled"
    PAYMENT_FAILED = "payment-failed"
    CALLBACK_TIMEOUT = "callback-timeout"
    SESSION_CLEARED = "session-cleared"
    VERIFICATION_REJECTED = "verification-rejected"
    VERIFICATION_UNAVAILABLE = "verification-unavailable"
    UNAUTHENTICATED = "unauthenticated"


@dataclass(frozen=True)
class Address:
    """Delivery address"""
    id: str
    full_name: str
    phone: str
    pincode: str
    state: str
    city: str
    address_line1: str
    address_line2: Optional[str] = None
    landmark: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        """Convert to the API's address body (without id)"""
        payload = {
            'fullName': self.full_name,
            'phone': self.phone,
            'pincode': self.pincode,
            'state': self.state,
            'city': self.city,
            'addressLine1': self.address_line1
        }
        if self.address_line2:
            payload['addressLine2'] = self.address_line2
        if self.landmark:
            payload['landmark'] = self.landmark
        return payload

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Address':
        address_id = data.get('_id') or data.get('id')
        if not address_id:
            raise ValueError("Address is missing an id")
        return cls(
            id=str(address_id),
            full_name=data.get('fullName', ''),
            phone=str(data.get('phone', '')),
            pincode=str(data.get('pincode', '')),
            state=data.get('state', ''),
            city=data.get('city', ''),
            address_line1=data.get('addressLine1', ''),
            address_line2=data.get('addressLine2') or None,
            landmark=data.get('landmark') or None
        )


@dataclass
class PaymentSession:
    """Server-issued, single-use handle for one checkout attempt"""
    gateway_order_id: str
    amount: float
    currency: str
    gateway_amount: Optional[int] = None  # minor units as issued by the gateway
    attempt_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    consumed: bool = False

    def consume(self) -> None:
        """Mark the session used by a verification call"""
        if self.consumed:
            raise ValueError(f"Payment session {self.gateway_order_id} was already used")
        self.consumed = True

    @property
    def minor_amount(self) -> int:
        """Amount in minor units for the widget"""
        if self.gateway_amount is not None:
            return self.gateway_amount
        return int(round(self.amount * 100))


@dataclass(frozen=True)
class GatewayCallback:
    """Signed identifiers reported by the payment widget on success"""
    gateway_order_id: str
    payment_id: str
    signature: str

    def to_payload(self) -> Dict[str, str]:
        return {
            'razorpay_order_id': self.gateway_order_id,
            'razorpay_payment_id': self.payment_id,
            'razorpay_signature': self.signature
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'GatewayCallback':
        """Create from the widget's success handler payload"""
        try:
            return cls(
                gateway_order_id=data['razorpay_order_id'],
                payment_id=data['razorpay_payment_id'],
                signature=data['razorpay_signature']
            )
        except KeyError as e:
            raise ValueError(f"Gateway callback is missing {e.args[0]}") from e


class OrderStatus(Enum):
    """Server-owned order status"""
    PENDING = "pending"
    PAID = "paid"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    FAILED = "failed"


@dataclass(frozen=True)
class OrderLine:
    product_id: str
    name: Optional[str]
    quantity: int
    price: float
    size: Optional[str] = None
    color: Optional[str] = None


@dataclass(frozen=True)
class Order:
    """Read-only order record"""
    id: str
    status: OrderStatus
    total_amount: float
    items: Tuple[OrderLine, ...] = ()
    shipping_address: Optional[Dict[str, Any]] = field(default=None, compare=False, hash=False)
    created_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Order':
        order_id = data.get('_id') or data.get('id')
        if not order_id:
            raise ValueError("Order is missing an id")
        raw_items: List[Dict[str, Any]] = data.get('items') or []
        lines = []
        for item in raw_items:
            product = item.get('product')
            if isinstance(product, dict):
                product_id = product.get('_id') or product.get('id')
                name = item.get('name') or product.get('name')
                price = item.get('price', product.get('price', 0))
            else:
                product_id = product
                name = item.get('name')
                price = item.get('price', item.get('priceAtTimeOfAddition', 0))
            lines.append(OrderLine(
                product_id=str(product_id),
                name=name,
                quantity=int(item.get('quantity', 1)),
                price=float(price or 0),
                size=item.get('size'),
                color=item.get('color')
            ))
        return cls(
            id=str(order_id),
            status=OrderStatus(data.get('status', 'pending')),
            total_amount=float(data.get('totalAmount', 0)),
            items=tuple(lines),
            shipping_address=data.get('shippingAddress'),
            created_at=data.get('createdAt')
        )


@dataclass(frozen=True)
class CheckoutResult:
    """Terminal (or returned-to-idle) outcome of a place_order() call"""
    stage: CheckoutStage
    success: bool
    message: str
    reason: Optional[FailureReason] = None
    amount: Optional[float] = None
    order_id: Optional[str] = None
    redirect_to: Optional[str] = None
