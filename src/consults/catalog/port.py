"""Catalog port — what the gates need to know about products."""

from abc import ABC, abstractmethod

_TRUTHY = (True, "true", "True", "TRUE", "1", 1)


def requires_consult_flag(metadata: dict | None) -> bool:
    """Read the consult-required flag from product metadata (bool or string form)."""
    if not metadata:
        return False
    return metadata.get("requires_consult") in _TRUTHY or metadata.get("requires_consultation") in _TRUTHY


class CatalogPort(ABC):
    @abstractmethod
    def product_requires_consult(self, product_id: str) -> bool:
        """Whether a consultation approval is required to buy the product."""
        ...

    @abstractmethod
    def resolve_product_id(self, variant_id: str) -> str | None:
        """Map a variant to its product, or None when the variant is unknown."""
        ...
