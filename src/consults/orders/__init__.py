"""Order adapter registry. Defaults to InMemoryOrderBook."""

from consults.orders.fake_adapter import InMemoryOrderBook
from consults.orders.port import OrderPort

_current_orders: OrderPort | None = None


def get_orders() -> OrderPort:
    global _current_orders
    if _current_orders is None:
        _current_orders = InMemoryOrderBook()
    return _current_orders


def set_orders(orders: OrderPort) -> None:
    global _current_orders
    _current_orders = orders


def reset_orders() -> None:
    global _current_orders
    _current_orders = None
