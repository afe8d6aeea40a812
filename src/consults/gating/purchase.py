"""Purchase gate — block cart mutations that add consult-required products.

Every storefront request that can put a product into a cart is matched
against ``CART_MUTATION_ENDPOINTS``. Candidate items are pulled out of the
request body, resolved to products through the catalog, and each
consult-required product must be backed by a live approval for the exact
(business, customer, product) key. One failing item blocks the request.
"""

import re
from dataclasses import dataclass, field

import structlog
from protean.utils.globals import current_domain

from consults.approval.approval import ConsultApproval
from consults.approval.validity import is_live_for_gate
from consults.catalog import get_catalog
from consults.errors import ConsultRequired, GatingError, Unauthorized

logger = structlog.get_logger(__name__)

_CART = r"/store/carts"
_CART_ID = r"/store/carts/[^/]+"
_LINES = r"(?:line-items|items)"

CART_MUTATION_ENDPOINTS = (
    # Cart creation with preloaded items
    (("POST",), re.compile(rf"^{_CART}/?$")),
    # Single and batch add
    (("POST",), re.compile(rf"^{_CART_ID}/{_LINES}/?$")),
    (("POST",), re.compile(rf"^{_CART_ID}/{_LINES}/batch/?$")),
    # Cart update
    (("POST", "PUT"), re.compile(rf"^{_CART_ID}/?$")),
    # Line update
    (("POST", "PUT"), re.compile(rf"^{_CART_ID}/{_LINES}/[^/]+/?$")),
)


def match_cart_mutation(method: str, path: str) -> bool:
    method = (method or "").upper()
    return any(method in methods and pattern.match(path or "") for methods, pattern in CART_MUTATION_ENDPOINTS)


@dataclass(frozen=True)
class CandidateItem:
    product_id: str | None = None
    variant_id: str | None = None


@dataclass
class GateReport:
    valid: bool = True
    violations: list[dict] = field(default_factory=list)

    def add(self, error: GatingError) -> None:
        self.valid = False
        self.violations.append(error.to_dict())

    def to_dict(self) -> dict:
        return {"valid": self.valid, "violations": list(self.violations)}


def _candidate(raw) -> CandidateItem | None:
    if not isinstance(raw, dict):
        return None
    product_id = raw.get("product_id")
    variant_id = raw.get("variant_id")
    if not product_id and not variant_id:
        return None
    return CandidateItem(
        product_id=str(product_id) if product_id else None,
        variant_id=str(variant_id) if variant_id else None,
    )


def extract_cart_items(body) -> list[CandidateItem]:
    """Candidate items from ``items[]``, ``line_items[]`` and a top-level product/variant."""
    if not isinstance(body, dict):
        return []

    raw_items = []
    for key in ("items", "line_items"):
        value = body.get(key)
        if isinstance(value, list):
            raw_items.extend(value)
    raw_items.append(body)

    candidates = []
    for raw in raw_items:
        candidate = _candidate(raw)
        if candidate is not None:
            candidates.append(candidate)
    return candidates


def _resolve_product_id(item: CandidateItem, catalog) -> str | None:
    if item.product_id:
        return item.product_id
    if item.variant_id:
        return catalog.resolve_product_id(item.variant_id)
    return None


def _denial_for(product_id, business_id, customer_id, now) -> GatingError | None:
    if not customer_id:
        return Unauthorized(product_id)

    approval = current_domain.repository_for(ConsultApproval).latest_approved(business_id, customer_id, product_id)
    if not is_live_for_gate(approval, now=now):
        return ConsultRequired(product_id)
    return None


def _denials(business_id, customer_id, items, now):
    catalog = get_catalog()
    for item in items:
        product_id = _resolve_product_id(item, catalog)
        if not product_id:
            logger.debug("Skipping unresolvable cart item", variant_id=item.variant_id)
            continue
        if not catalog.product_requires_consult(product_id):
            continue

        denial = _denial_for(product_id, business_id, customer_id, now)
        if denial is not None:
            logger.info(
                "Cart item denied by purchase gate",
                code=denial.code,
                product_id=product_id,
                business_id=business_id,
                customer_id=customer_id,
            )
            yield denial


def check_cart_items(business_id, customer_id, items, now=None) -> None:
    """Raise the first ``Unauthorized``/``ConsultRequired`` among ``items``."""
    for denial in _denials(business_id, customer_id, items, now):
        raise denial


def validate_cart_items(business_id, customer_id, items, now=None) -> GateReport:
    """Collect every violation instead of stopping at the first."""
    report = GateReport()
    for denial in _denials(business_id, customer_id, items, now):
        report.add(denial)
    return report
