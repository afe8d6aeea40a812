"""Integration tests for the consults API and the purchase-gate middleware via TestClient."""

from datetime import timedelta

import pytest
from consults.api.errors import register_exception_handlers
from consults.api.gating import install_consult_gating
from consults.api.routes import consult_router
from consults.approval.approval import ApprovalStatus, ConsultApproval
from consults.consultation.consultation import Consultation, ConsultationStatus
from consults.domain import consults
from consults.outbox.event import OutboxEvent, OutboxStatus
from consults.utils.clock import utc_now
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient
from protean import current_domain

CUSTOMER = {"X-Business-Id": "biz-1", "X-Customer-Id": "cust-1"}


@pytest.fixture()
def storefront_catalog(catalog):
    catalog.add_product("prod-rx", requires_consult=True, variant_ids=["var-rx-30"])
    catalog.add_product("prod-otc", variant_ids=["var-otc"])
    return catalog


def _storefront_app(session_identity=None):
    app = FastAPI()
    install_consult_gating(app)

    @app.middleware("http")
    async def domain_context_middleware(request: Request, call_next):
        with consults.domain_context():
            return await call_next(request)

    if session_identity is not None:
        # Stand-in for an authentication layer in front of the gate
        @app.middleware("http")
        async def authenticate(request: Request, call_next):
            request.state.business_id, request.state.customer_id = session_identity
            return await call_next(request)

    register_exception_handlers(app)
    app.include_router(consult_router)

    # Stand-ins for the storefront's cart routes behind the gate
    @app.post("/store/carts")
    async def create_cart():
        return {"cart": "created"}

    @app.post("/store/carts/{cart_id}/line-items")
    async def add_line_item(cart_id: str):
        return {"cart": cart_id}

    return app


@pytest.fixture()
def client(storefront_catalog):
    return TestClient(_storefront_app())


def _submit(client, product_id="prod-rx", **overrides):
    body = {
        "product_id": product_id,
        "email": "Patient@Example.com",
        "first_name": "Pat",
        "last_name": "Doe",
        "eligibility_answers": {"age_over_18": True},
    }
    body.update(overrides)
    return client.post("/consults/businesses/biz-1/submissions", json=body, headers={"X-Customer-Id": "cust-1"})


def _in_progress(client):
    consultation_id = _submit(client).json()["consultation_id"]
    scheduled_at = (utc_now() + timedelta(hours=2)).isoformat()
    response = client.put(f"/consults/consultations/{consultation_id}/schedule", json={"scheduled_at": scheduled_at})
    assert response.status_code == 200
    response = client.put(f"/consults/consultations/{consultation_id}/start", json={"actor": "clinician-1"})
    assert response.status_code == 200
    return consultation_id


class TestSubmissionEndpoint:
    def test_submit_creates_records(self, client):
        response = _submit(client)
        assert response.status_code == 201
        data = response.json()
        assert data["created"] is True

        approval = current_domain.repository_for(ConsultApproval).get(data["approval_id"])
        assert approval.status == ApprovalStatus.PENDING.value
        assert approval.customer_id == "cust-1"

    def test_identical_submission_returns_same_records(self, client):
        first = _submit(client).json()
        second = _submit(client).json()
        assert second["created"] is False
        assert second["consultation_id"] == first["consultation_id"]
        assert second["approval_id"] == first["approval_id"]

    def test_invalid_email_is_rejected(self, client):
        response = _submit(client, email="not-an-email")
        assert response.status_code == 400


class TestApprovalQuery:
    def test_requires_customer(self, client):
        response = client.get("/consults/approvals", params={"product_id": "prod-rx"})
        assert response.status_code == 401
        assert response.json()["code"] == "UNAUTHORIZED"

    def test_reports_valid_approval(self, client, make_approval):
        approval = make_approval(approved_days_ago=10)
        response = client.get("/consults/approvals", params={"product_id": "prod-rx"}, headers=CUSTOMER)
        assert response.status_code == 200
        data = response.json()
        assert data["has_valid_approval"] is True
        assert data["approval_id"] == str(approval.id)

    def test_reports_missing_approval(self, client):
        response = client.get("/consults/approvals", params={"product_id": "prod-rx"}, headers=CUSTOMER)
        assert response.json() == {
            "has_valid_approval": False,
            "approval_id": None,
            "approved_at": None,
            "expires_at": None,
        }


class TestCartValidation:
    def test_lists_every_violation(self, client):
        response = client.post(
            "/consults/cart-validation",
            json={"items": [{"product_id": "prod-rx"}, {"variant_id": "var-otc"}, {"variant_id": "var-rx-30"}]},
            headers=CUSTOMER,
        )
        assert response.status_code == 200
        data = response.json()
        assert data["valid"] is False
        assert [v["code"] for v in data["violations"]] == ["CONSULT_REQUIRED", "CONSULT_REQUIRED"]

    def test_valid_with_live_approval(self, client, make_approval):
        make_approval()
        response = client.post(
            "/consults/cart-validation", json={"items": [{"product_id": "prod-rx"}]}, headers=CUSTOMER
        )
        assert response.json() == {"valid": True, "violations": []}


class TestPurchaseGateMiddleware:
    def test_anonymous_add_is_unauthorized(self, client):
        response = client.post("/store/carts/cart-1/line-items", json={"variant_id": "var-rx-30", "quantity": 1})
        assert response.status_code == 401
        assert response.json()["code"] == "UNAUTHORIZED"
        assert response.json()["product_id"] == "prod-rx"

    def test_add_without_approval_is_forbidden(self, client):
        response = client.post("/store/carts/cart-1/line-items", json={"product_id": "prod-rx"}, headers=CUSTOMER)
        assert response.status_code == 403
        assert response.json()["code"] == "CONSULT_REQUIRED"

    def test_cart_creation_with_preloaded_items_is_gated(self, client):
        response = client.post("/store/carts", json={"items": [{"variant_id": "var-rx-30"}]}, headers=CUSTOMER)
        assert response.status_code == 403

    def test_expired_approval_is_forbidden(self, client, make_approval):
        make_approval(approved_days_ago=120)
        response = client.post("/store/carts/cart-1/line-items", json={"product_id": "prod-rx"}, headers=CUSTOMER)
        assert response.status_code == 403

    def test_approved_customer_passes_through(self, client, make_approval):
        make_approval()
        response = client.post("/store/carts/cart-1/line-items", json={"product_id": "prod-rx"}, headers=CUSTOMER)
        assert response.status_code == 200
        assert response.json() == {"cart": "cart-1"}

    def test_non_consult_product_passes_through(self, client):
        response = client.post("/store/carts/cart-1/line-items", json={"variant_id": "var-otc"})
        assert response.status_code == 200

    def test_session_identity_wins_over_client_headers(self, storefront_catalog, make_approval):
        make_approval(customer_id="cust-1")
        client = TestClient(_storefront_app(session_identity=("biz-1", "cust-2")))

        # cust-2 is signed in but claims to be the approved cust-1
        response = client.post("/store/carts/cart-1/line-items", json={"product_id": "prod-rx"}, headers=CUSTOMER)

        assert response.status_code == 403
        assert response.json()["code"] == "CONSULT_REQUIRED"

    def test_session_identity_without_headers(self, storefront_catalog, make_approval):
        make_approval(customer_id="cust-2")
        client = TestClient(_storefront_app(session_identity=("biz-1", "cust-2")))

        response = client.post("/store/carts/cart-1/line-items", json={"product_id": "prod-rx"})

        assert response.status_code == 200



class TestConsultationEndpoints:
    def test_full_approval_flow(self, client, directory, transport):
        directory.register("biz-1", fulfillment_webhook_url="https://partner.test/hook")
        consultation_id = _in_progress(client)

        response = client.put(
            f"/consults/consultations/{consultation_id}/complete",
            json={"outcome": "approved", "actor": "clinician-1"},
        )
        assert response.status_code == 200
        assert response.json()["outcome"] == "approved"
        assert len(response.json()["approval_ids"]) == 1

        consultation = current_domain.repository_for(Consultation).get(consultation_id)
        assert consultation.status == ConsultationStatus.COMPLETED.value

        # The customer can now add the product
        response = client.post("/store/carts/cart-1/line-items", json={"product_id": "prod-rx"}, headers=CUSTOMER)
        assert response.status_code == 200

    def test_rejection_needs_reason(self, client):
        consultation_id = _in_progress(client)
        response = client.put(f"/consults/consultations/{consultation_id}/complete", json={"outcome": "rejected"})
        assert response.status_code == 400

    def test_completing_a_draft_conflicts(self, client):
        consultation_id = _submit(client).json()["consultation_id"]
        response = client.put(f"/consults/consultations/{consultation_id}/complete", json={"outcome": "approved"})
        assert response.status_code == 409
        assert response.json()["consultation_id"] == consultation_id

    def test_invalid_transition_conflicts(self, client):
        consultation_id = _submit(client).json()["consultation_id"]
        response = client.put(f"/consults/consultations/{consultation_id}/status", json={"to_status": "completed"})
        assert response.status_code == 409

    def test_cancel(self, client):
        consultation_id = _submit(client).json()["consultation_id"]
        response = client.put(f"/consults/consultations/{consultation_id}/cancel", json={"reason": "Changed mind"})
        assert response.status_code == 200
        consultation = current_domain.repository_for(Consultation).get(consultation_id)
        assert consultation.status == ConsultationStatus.CANCELLED.value

    def test_unknown_consultation_is_404(self, client):
        response = client.put("/consults/consultations/missing/start", json={})
        assert response.status_code == 404

    def test_register_and_assign_clinician(self, client):
        response = client.post(
            "/consults/clinicians",
            json={"business_id": "biz-1", "first_name": "Cleo", "last_name": "Nician", "email": "cleo@clinic.test"},
        )
        assert response.status_code == 201
        clinician_id = response.json()["clinician_id"]

        consultation_id = _submit(client).json()["consultation_id"]
        response = client.put(
            f"/consults/consultations/{consultation_id}/clinician", json={"clinician_id": clinician_id}
        )
        assert response.status_code == 200
        assert current_domain.repository_for(Consultation).get(consultation_id).clinician_id == clinician_id


class TestOrderStatusEndpoint:
    def test_fulfillment_without_approval_conflicts(self, client, orders):
        orders.add_order("order-1", "biz-1", "cust-1", lines=[{"product_id": "prod-rx"}])
        response = client.post("/consults/orders/order-1/status", json={"to_status": "processing"})
        assert response.status_code == 409
        data = response.json()
        assert data["code"] == "CONSULT_APPROVAL_REQUIRED_FOR_FULFILLMENT"
        assert data["product_id"] == "prod-rx"
        assert orders.get_order("order-1").status == "pending"

    def test_fulfillment_with_approval(self, client, orders, make_approval):
        make_approval()
        orders.add_order("order-1", "biz-1", "cust-1", lines=[{"product_id": "prod-rx"}])
        response = client.post("/consults/orders/order-1/status", json={"to_status": "processing"})
        assert response.status_code == 200
        assert response.json() == {
            "order_id": "order-1",
            "status": "processing",
            "consult_products_checked": ["prod-rx"],
        }


class TestOutboxDispatchEndpoint:
    def test_dispatch_reconciles_and_delivers(self, client, directory, transport, make_approval):
        directory.register("biz-1", fulfillment_webhook_url="https://partner.test/hook")
        make_approval()

        response = client.post("/consults/outbox/dispatch", json={})
        assert response.status_code == 200
        assert response.json()["reconciled"] == 1
        assert response.json()["delivered"] == 1

        events = current_domain.repository_for(OutboxEvent)._dao.query.all().items
        assert [e.status for e in events] == [OutboxStatus.DELIVERED.value]
