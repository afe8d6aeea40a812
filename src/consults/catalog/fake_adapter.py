"""In-memory catalog — products and variants registered by tests or local setups."""

from consults.catalog.port import CatalogPort, requires_consult_flag


class InMemoryCatalog(CatalogPort):
    def __init__(self):
        self.products: dict[str, dict] = {}
        self.variants: dict[str, str] = {}
        self.lookups: list[str] = []
        self.should_fail = False

    def configure(self, should_fail: bool = False):
        self.should_fail = should_fail

    def add_product(self, product_id, requires_consult=False, variant_ids=(), metadata=None):
        meta = dict(metadata or {})
        if requires_consult:
            meta["requires_consult"] = True
        self.products[str(product_id)] = meta
        for variant_id in variant_ids:
            self.variants[str(variant_id)] = str(product_id)

    def product_requires_consult(self, product_id):
        if self.should_fail:
            raise RuntimeError("Catalog unavailable")
        self.lookups.append(str(product_id))
        return requires_consult_flag(self.products.get(str(product_id)))

    def resolve_product_id(self, variant_id):
        if self.should_fail:
            raise RuntimeError("Catalog unavailable")
        return self.variants.get(str(variant_id))

    def reset(self):
        self.products.clear()
        self.variants.clear()
        self.lookups.clear()
        self.should_fail = False
