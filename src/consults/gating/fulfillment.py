"""Fulfillment gate — re-check approvals whenever an order enters a fulfillment stage.

Approvals can expire between checkout and fulfillment, so the purchase gate is
not enough: the gate runs again on every transition into a fulfillment stage
and nothing is cached between attempts. Whenever the required products
cannot be determined the gate fails closed.
"""

import json

import structlog
from protean.fields import Identifier, String
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from consults.approval.approval import ConsultApproval
from consults.approval.validity import is_live_for_gate
from consults.audit import RiskLevel, record_audit_event
from consults.catalog import get_catalog
from consults.catalog.port import requires_consult_flag
from consults.config import get_config
from consults.domain import consults
from consults.errors import ConsultApprovalRequiredForFulfillment
from consults.orders import get_orders
from consults.orders.port import OrderSnapshot

logger = structlog.get_logger(__name__)

EXPLICIT_PRODUCTS_KEY = "consult_required_product_ids"

MISSING_APPROVAL = "missing approval"
EXPIRED_APPROVAL = "expired approval"
MISSING_PARTIES = "missing business or customer"
UNKNOWN_PRODUCTS = "cannot determine consult-required products"


def _dedupe(values) -> list[str]:
    seen = []
    for value in values:
        if value is None:
            continue
        value = str(value).strip()
        if value and value not in seen:
            seen.append(value)
    return seen


def parse_product_id_list(value) -> list[str]:
    """Normalize a product id list stored as a list, JSON, comma string or mapping."""
    if value is None:
        return []
    if isinstance(value, dict):
        flattened = []
        for item in value.values():
            flattened.extend(parse_product_id_list(item))
        return _dedupe(flattened)
    if isinstance(value, (list, tuple, set)):
        return _dedupe(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return []
        if text[0] in "[{":
            try:
                return parse_product_id_list(json.loads(text))
            except json.JSONDecodeError:
                logger.warning("Unparseable consult-required product list", value=text[:200])
                return []
        return _dedupe(text.split(","))
    return _dedupe([value])


def order_requires_consultation(order: OrderSnapshot) -> bool:
    return requires_consult_flag(order.metadata)


def _line_product_ids(order: OrderSnapshot, catalog) -> list[str]:
    ids = []
    for line in order.lines:
        product_id = line.product_id or (catalog.resolve_product_id(line.variant_id) if line.variant_id else None)
        ids.append(product_id)
    return _dedupe(ids)


def resolve_required_products(order: OrderSnapshot, catalog=None) -> list[str]:
    """Products on the order that need an approval, in resolution order.

    The explicit list on the order wins. Otherwise each line's loaded product
    metadata is used, falling back to the catalog for lines loaded without it.
    """
    explicit = parse_product_id_list(order.metadata.get(EXPLICIT_PRODUCTS_KEY))
    if explicit:
        return explicit

    catalog = catalog or get_catalog()
    required = []
    for line in order.lines:
        product_id = line.product_id or (catalog.resolve_product_id(line.variant_id) if line.variant_id else None)
        if not product_id:
            continue
        if line.product_metadata is not None:
            flagged = requires_consult_flag(line.product_metadata)
        else:
            flagged = catalog.product_requires_consult(product_id)
        if flagged:
            required.append(product_id)
    return _dedupe(required)


def assert_fulfillment_allowed(order: OrderSnapshot, now=None) -> list[str]:
    """Raise ``ConsultApprovalRequiredForFulfillment`` unless every required product is approved.

    Returns the product ids that were checked.
    """
    catalog = get_catalog()
    try:
        required = resolve_required_products(order, catalog)
        if not required and order_requires_consultation(order):
            required = _line_product_ids(order, catalog)
    except Exception as exc:
        logger.warning("Catalog lookup failed during fulfillment gate", order_id=order.id, error=str(exc))
        raise ConsultApprovalRequiredForFulfillment(reason=UNKNOWN_PRODUCTS, order_id=order.id) from exc

    if not required and order_requires_consultation(order):
        raise ConsultApprovalRequiredForFulfillment(reason=UNKNOWN_PRODUCTS, order_id=order.id)

    if not required:
        return []

    if not order.business_id or not order.customer_id:
        raise ConsultApprovalRequiredForFulfillment(product_id=required[0], reason=MISSING_PARTIES, order_id=order.id)

    repo = current_domain.repository_for(ConsultApproval)
    for product_id in required:
        approval = repo.latest_approved(order.business_id, order.customer_id, product_id)
        if approval is None:
            raise ConsultApprovalRequiredForFulfillment(product_id, reason=MISSING_APPROVAL, order_id=order.id)
        if not is_live_for_gate(approval, now=now):
            raise ConsultApprovalRequiredForFulfillment(product_id, reason=EXPIRED_APPROVAL, order_id=order.id)

    return required


@consults.command(part_of="ConsultApproval")
class TransitionOrderStatus:
    order_id = Identifier(required=True)
    to_status = String(required=True, max_length=50)
    actor = String(max_length=255)


@consults.command_handler(part_of=ConsultApproval)
class OrderFulfillmentHandler:
    @handle(TransitionOrderStatus)
    def transition_order_status(self, command):
        orders = get_orders()
        order = orders.get_order(command.order_id)
        from_status = order.status

        checked = []
        if command.to_status in get_config().fulfillment_stages:
            try:
                checked = assert_fulfillment_allowed(order)
            except ConsultApprovalRequiredForFulfillment as exc:
                logger.warning(
                    "Order fulfillment blocked",
                    order_id=order.id,
                    to_status=command.to_status,
                    product_id=exc.product_id,
                    reason=exc.reason,
                )
                raise

        updated = orders.transition_status(order.id, command.to_status, actor=command.actor)

        record_audit_event(
            action="order.status_changed",
            entity_type="order",
            entity_id=order.id,
            business_id=order.business_id,
            actor=command.actor,
            risk_level=RiskLevel.MEDIUM.value if checked else RiskLevel.LOW.value,
            changes={"from": from_status, "to": updated.status, "consult_products_checked": checked},
        )
        logger.info("Order status changed", order_id=order.id, from_status=from_status, to_status=updated.status)
        return {"order_id": updated.id, "status": updated.status, "consult_products_checked": checked}
