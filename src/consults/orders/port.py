"""Order port — read order metadata and move orders between statuses.

The commerce platform owns orders and validates its own transition table;
consults only reads what the fulfillment gate needs and asks for the move.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass(frozen=True)
class OrderLine:
    product_id: str | None
    variant_id: str | None = None
    # Product metadata when the platform already loaded it with the line, else None
    product_metadata: dict | None = None


@dataclass(frozen=True)
class OrderSnapshot:
    id: str
    business_id: str | None
    customer_id: str | None
    status: str
    lines: tuple[OrderLine, ...] = ()
    metadata: dict = field(default_factory=dict)


class OrderPort(ABC):
    @abstractmethod
    def get_order(self, order_id: str) -> OrderSnapshot:
        """Load an order. Raises ``ObjectNotFoundError`` for unknown ids."""
        ...

    @abstractmethod
    def transition_status(self, order_id: str, to_status: str, actor: str | None = None) -> OrderSnapshot:
        """Move the order to ``to_status`` or raise ``ValidationError`` for an invalid edge."""
        ...
