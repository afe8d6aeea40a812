"""HTTP middleware that runs the purchase gate in front of storefront cart routes.

The gate keys approvals on the shopper's business and customer ids. An
authentication middleware installed outside the gate should put them on
``request.state.business_id`` / ``request.state.customer_id``; those values
win. Otherwise the gate reads the ``X-Business-Id`` / ``X-Customer-Id``
headers, which is only safe behind a gateway that strips any client-supplied
copies and sets them from the authenticated session.
"""

import json

import structlog
from fastapi import FastAPI, Request

from consults.api.errors import gating_error_response
from consults.errors import GatingError
from consults.gating.purchase import check_cart_items, extract_cart_items, match_cart_mutation

logger = structlog.get_logger(__name__)


async def _json_body(request: Request):
    raw = await request.body()
    if not raw:
        return None
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None


def shopper_identity(request: Request) -> tuple[str | None, str | None]:
    """``(business_id, customer_id)`` for the request, authenticated state first."""
    business_id = getattr(request.state, "business_id", None) or request.headers.get("x-business-id")
    customer_id = getattr(request.state, "customer_id", None) or request.headers.get("x-customer-id")
    return business_id, customer_id


def install_consult_gating(app: FastAPI) -> None:
    """Register the gate. Must be installed before the domain-context middleware."""

    @app.middleware("http")
    async def consult_gating_middleware(request: Request, call_next):
        if not match_cart_mutation(request.method, request.url.path):
            return await call_next(request)

        items = extract_cart_items(await _json_body(request))
        if items:
            business_id, customer_id = shopper_identity(request)
            try:
                check_cart_items(business_id, customer_id, items)
            except GatingError as exc:
                logger.info("Cart mutation blocked", path=request.url.path, code=exc.code, product_id=exc.product_id)
                return gating_error_response(exc)

        return await call_next(request)
