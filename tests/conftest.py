"""Shared fixtures: a scriptable backend behind httpx.MockTransport and wired services"""

import asyncio
import inspect
import json
from typing import Any, Dict, List, Optional, Tuple

import httpx
import pytest

from storefront_client.config import APIConfig, CheckoutConfig, Config, PaymentConfig, SessionConfig
from storefront_client.services.cart_service import CartService
from storefront_client.services.event_bus import EventBus, Topic
from storefront_client.services.session_manager import SessionManager
from storefront_client.services.session_persistence import MemorySessionStore
from storefront_client.storefront_api_client import StorefrontApiClient

BACKEND_URL = "http://backend.test/api"
TOKEN = "tok_live_0123456789abcdef"
USER = {"_id": "u-1", "name": "Asha Rao", "email": "asha@example.com"}


class FakeBackend:
    """Storefront backend double; routes are keyed by (method, path)"""

    def __init__(self):
        self.routes: Dict[Tuple[str, str], Any] = {}
        self.requests: List[httpx.Request] = []
        self.gates: Dict[Tuple[str, str], asyncio.Event] = {}

    def on(self, method: str, path: str, status: int = 200, json: Any = None, handler=None) -> None:
        self.routes[(method, "/api" + path)] = handler or (status, json)

    def hold(self, method: str, path: str) -> asyncio.Event:
        """Block matching requests until the returned event is set"""
        gate = asyncio.Event()
        self.gates[(method, "/api" + path)] = gate
        return gate

    def calls(self, method: str, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == "/api" + path]

    def last_json(self, method: str, path: str) -> Optional[Dict[str, Any]]:
        calls = self.calls(method, path)
        return json.loads(calls[-1].content) if calls else None

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)
        gate = self.gates.get(key)
        if gate is not None:
            await gate.wait()

        route = self.routes.get(key)
        if route is None:
            return httpx.Response(404, json={"message": f"No route for {key[0]} {key[1]}"})
        if callable(route):
            result = route(request)
            if inspect.isawaitable(result):
                result = await result
            return result
        status, body = route
        if body is None:
            return httpx.Response(status)
        return httpx.Response(status, json=body)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


class Recorder:
    """Collects bus payloads per topic"""

    def __init__(self, bus: EventBus):
        self.events: Dict[Topic, List[Any]] = {topic: [] for topic in Topic}
        for topic in Topic:
            bus.subscribe(topic, self.events[topic].append)

    def __getitem__(self, topic: Topic) -> List[Any]:
        return self.events[topic]


def cart_item(item_id: str, price: float, quantity: int, name: str = "Cotton Tee") -> Dict[str, Any]:
    return {
        "_id": item_id,
        "product": {"_id": f"p-{item_id}", "name": name, "price": price, "images": [f"https://img.test/{item_id}.jpg"]},
        "quantity": quantity,
        "priceAtTimeOfAddition": price,
        "size": "M",
        "color": "Black"
    }


def cart_body(*items: Dict[str, Any]) -> Dict[str, Any]:
    total = sum(item["priceAtTimeOfAddition"] * item["quantity"] for item in items)
    return {"items": list(items), "total": total}


# Two tees at 1000 and a jacket at 2000: subtotal 4000
DEFAULT_CART = cart_body(cart_item("i-1", 1000, 2), cart_item("i-2", 2000, 1, name="Denim Jacket"))


@pytest.fixture
def backend():
    fake = FakeBackend()
    fake.on("GET", "/auth/profile", json={"user": USER})
    fake.on("GET", "/cart", json=DEFAULT_CART)
    return fake


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def recorder(bus):
    return Recorder(bus)


@pytest.fixture
def store():
    return MemorySessionStore()


@pytest.fixture
def api_config():
    return APIConfig(backend_endpoint=BACKEND_URL)


@pytest.fixture
def api_client(api_config, backend):
    return StorefrontApiClient(api_config, transport=backend.transport())


@pytest.fixture
def session_manager(store, bus, api_client):
    return SessionManager(store, bus, api_client)


@pytest.fixture
def cart_service(api_client, session_manager, bus):
    service = CartService(api_client, session_manager, bus, shipping_fee=50.0)
    yield service
    service.close()


@pytest.fixture
async def logged_in(session_manager, cart_service, bus):
    """Authenticated session with the default cart loaded"""
    await session_manager.complete_login(TOKEN)
    await bus.drain()
    assert cart_service.loaded
    return session_manager


@pytest.fixture
def config(tmp_path):
    cfg = Config()
    cfg.api = APIConfig(backend_endpoint=BACKEND_URL)
    cfg.session = SessionConfig(store_type="memory", store_path=str(tmp_path))
    cfg.payment = PaymentConfig(key_id="rzp_test_key")
    cfg.checkout = CheckoutConfig(shipping_fee=50.0)
    return cfg
