"""Catalog adapter registry.

The storefront's product service is the source of truth; consults only asks
it two questions. ``InMemoryCatalog`` is used until a real adapter is set.
"""

from consults.catalog.fake_adapter import InMemoryCatalog
from consults.catalog.port import CatalogPort

_current_catalog: CatalogPort | None = None


def get_catalog() -> CatalogPort:
    global _current_catalog
    if _current_catalog is None:
        _current_catalog = InMemoryCatalog()
    return _current_catalog


def set_catalog(catalog: CatalogPort) -> None:
    global _current_catalog
    _current_catalog = catalog


def reset_catalog() -> None:
    global _current_catalog
    _current_catalog = None
