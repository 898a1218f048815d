"""Cart data models with derived totals"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Any, Tuple


@dataclass(frozen=True)
class CartItem:
    """One cart line, priced at the moment it was added"""
    id: str
    product_id: str
    quantity: int
    unit_price: float
    name: Optional[str] = None
    size: Optional[str] = None
    color: Optional[str] = None
    image: Optional[str] = None

    def __post_init__(self):
        if not isinstance(self.quantity, int) or self.quantity < 1:
            raise ValueError(f"Cart item {self.id} has invalid quantity {self.quantity!r}")

    @property
    def subtotal(self) -> float:
        """Calculate subtotal for this item"""
        return self.unit_price * self.quantity

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the API's cart item shape"""
        return {
            '_id': self.id,
            'product': self.product_id,
            'name': self.name,
            'quantity': self.quantity,
            'priceAtTimeOfAddition': self.unit_price,
            'size': self.size,
            'color': self.color,
            'image': self.image
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CartItem':
        """Create CartItem from a GET /cart item.

        `product` is either a populated product object or a bare id.
        The price snapshot wins over the product's current price.
        """
        item_id = data.get('_id') or data.get('id')
        if not item_id:
            raise ValueError("Cart item is missing an id")

        product = data.get('product')
        name = data.get('name')
        product_price = None
        image = data.get('image')
        if isinstance(product, dict):
            product_id = product.get('_id') or product.get('id')
            name = name or product.get('name')
            product_price = product.get('price')
            if not image:
                images = product.get('images') or []
                if images:
                    first = images[0]
                    image = first.get('url') if isinstance(first, dict) else first
        else:
            product_id = product or data.get('productId')

        price = data.get('priceAtTimeOfAddition')
        if price is None:
            price = product_price
        if price is None:
            raise ValueError(f"Cart item {item_id} has no price")

        return cls(
            id=str(item_id),
            product_id=str(product_id or item_id),
            quantity=int(data.get('quantity', 0)),
            unit_price=float(price),
            name=name,
            size=data.get('size'),
            color=data.get('color'),
            image=image or None
        )


@dataclass(frozen=True)
class Cart:
    """Authoritative local copy of the server cart"""
    items: Tuple[CartItem, ...] = ()
    shipping_fee: float = 0.0
    server_total: Optional[float] = None

    @property
    def subtotal(self) -> float:
        """Sum of quantity x unit price over all items"""
        return round(sum(item.subtotal for item in self.items), 2)

    @property
    def total(self) -> float:
        """Subtotal plus the fixed shipping fee"""
        return round(self.subtotal + self.shipping_fee, 2)

    @property
    def item_count(self) -> int:
        """Total units in the cart (badge counter)"""
        return sum(item.quantity for item in self.items)

    def is_empty(self) -> bool:
        return len(self.items) == 0

    def find_item(self, item_id: str) -> Optional[CartItem]:
        """Find item in cart by ID"""
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def find_variant(self, product_id: str, size: Optional[str] = None,
                     color: Optional[str] = None) -> Optional[CartItem]:
        """Find the line holding a product variant; the server adds to it"""
        for item in self.items:
            if item.product_id == product_id and item.size == size and item.color == color:
                return item
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for the verification payload"""
        return {
            'items': [item.to_dict() for item in self.items],
            'subtotal': self.subtotal,
            'shipping': self.shipping_fee,
            'total': self.total
        }

    @classmethod
    def from_api(cls, data: Dict[str, Any], shipping_fee: float = 0.0) -> 'Cart':
        """Create Cart from a `{items, total}` API response"""
        if not isinstance(data, dict):
            raise ValueError(f"Cart response must be an object, got {type(data).__name__}")
        raw_items: List[Dict[str, Any]] = data.get('items') or []
        items = tuple(CartItem.from_dict(item) for item in raw_items)
        server_total = data.get('total')
        return cls(
            items=items,
            shipping_fee=shipping_fee,
            server_total=float(server_total) if server_total is not None else None
        )


@dataclass(frozen=True)
class CartSnapshot:
    """Cart view published on `cart-changed`"""
    loaded: bool
    items: Tuple[CartItem, ...] = ()
    item_count: int = 0
    subtotal: float = 0.0
    total: float = 0.0

    @classmethod
    def of(cls, cart: Optional[Cart]) -> 'CartSnapshot':
        if cart is None:
            return cls(loaded=False)
        return cls(
            loaded=True,
            items=cart.items,
            item_count=cart.item_count,
            subtotal=cart.subtotal,
            total=cart.total
        )
