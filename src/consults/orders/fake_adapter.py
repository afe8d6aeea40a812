"""In-memory order book with the platform's order transition table."""

from dataclasses import replace

from protean.exceptions import ObjectNotFoundError, ValidationError

from consults.orders.port import OrderLine, OrderPort, OrderSnapshot

ORDER_TRANSITIONS = {
    "pending": {"processing", "cancelled"},
    "processing": {"fulfilled", "cancelled"},
    "fulfilled": {"delivered"},
    "delivered": set(),
    "cancelled": set(),
}


class InMemoryOrderBook(OrderPort):
    def __init__(self):
        self.orders: dict[str, OrderSnapshot] = {}
        self.transitions: list[tuple[str, str, str]] = []

    def add_order(self, order_id, business_id, customer_id, lines=(), status="pending", metadata=None):
        order = OrderSnapshot(
            id=str(order_id),
            business_id=business_id,
            customer_id=customer_id,
            status=status,
            lines=tuple(line if isinstance(line, OrderLine) else OrderLine(**line) for line in lines),
            metadata=dict(metadata or {}),
        )
        self.orders[order.id] = order
        return order

    def get_order(self, order_id):
        try:
            return self.orders[str(order_id)]
        except KeyError:
            raise ObjectNotFoundError({"order_id": [f"Order {order_id} not found"]}) from None

    def transition_status(self, order_id, to_status, actor=None):
        order = self.get_order(order_id)
        if to_status not in ORDER_TRANSITIONS.get(order.status, set()):
            raise ValidationError({"status": [f"Cannot transition order from {order.status} to {to_status}"]})
        updated = replace(order, status=to_status)
        self.orders[updated.id] = updated
        self.transitions.append((updated.id, order.status, to_status))
        return updated

    def reset(self):
        self.orders.clear()
        self.transitions.clear()
