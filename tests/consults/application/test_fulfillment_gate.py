"""Application tests for the fulfillment gate and TransitionOrderStatus."""

import pytest
from consults.errors import ConsultApprovalRequiredForFulfillment
from consults.gating.fulfillment import TransitionOrderStatus, assert_fulfillment_allowed
from consults.orders.port import OrderLine
from protean import current_domain
from protean.exceptions import ValidationError


@pytest.fixture()
def rx_catalog(catalog):
    catalog.add_product("prod-rx", requires_consult=True, variant_ids=["var-rx"])
    catalog.add_product("prod-rx-2", requires_consult=True)
    catalog.add_product("prod-otc")
    return catalog


def _transition(order_id, to_status):
    return current_domain.process(
        TransitionOrderStatus(order_id=order_id, to_status=to_status, actor="warehouse"),
        asynchronous=False,
    )


class TestTransitionOrderStatus:
    def test_denied_until_approved_then_succeeds_on_retry(self, rx_catalog, orders, make_approval):
        orders.add_order("order-1", "biz-1", "cust-1", lines=[{"product_id": "prod-rx"}])

        with pytest.raises(ConsultApprovalRequiredForFulfillment) as exc:
            _transition("order-1", "processing")
        assert exc.value.product_id == "prod-rx"
        assert exc.value.reason == "missing approval"
        assert exc.value.order_id == "order-1"
        assert orders.get_order("order-1").status == "pending"

        make_approval()
        result = _transition("order-1", "processing")
        assert result == {"order_id": "order-1", "status": "processing", "consult_products_checked": ["prod-rx"]}
        assert orders.transitions == [("order-1", "pending", "processing")]

    def test_gate_reruns_at_every_fulfillment_stage(self, rx_catalog, orders, make_approval):
        orders.add_order("order-2", "biz-1", "cust-1", lines=[{"product_id": "prod-rx"}], status="processing")
        make_approval(approved_days_ago=100, validity_days=90)

        with pytest.raises(ConsultApprovalRequiredForFulfillment) as exc:
            _transition("order-2", "fulfilled")
        assert exc.value.reason == "expired approval"

    def test_non_fulfillment_stage_is_not_gated(self, rx_catalog, orders):
        orders.add_order("order-3", "biz-1", "cust-1", lines=[{"product_id": "prod-rx"}])
        assert _transition("order-3", "cancelled")["status"] == "cancelled"

    def test_order_without_consult_products(self, rx_catalog, orders):
        orders.add_order("order-4", "biz-1", "cust-1", lines=[{"product_id": "prod-otc"}])
        assert _transition("order-4", "processing")["consult_products_checked"] == []

    def test_invalid_order_edge_is_rejected_by_order_port(self, rx_catalog, orders):
        orders.add_order("order-5", "biz-1", "cust-1", lines=[{"product_id": "prod-otc"}])
        with pytest.raises(ValidationError):
            _transition("order-5", "delivered")

    def test_transition_is_audited(self, rx_catalog, orders, make_approval, audit_log):
        orders.add_order("order-6", "biz-1", "cust-1", lines=[{"product_id": "prod-rx"}])
        make_approval()
        _transition("order-6", "processing")
        entry = audit_log.entries[-1]
        assert entry["action"] == "order.status_changed"
        assert entry["changes"]["to"] == "processing"


class TestRequiredProductResolution:
    def test_explicit_list_on_order_wins(self, rx_catalog, orders, make_approval):
        make_approval(product_id="prod-rx")
        order = orders.add_order(
            "order-10",
            "biz-1",
            "cust-1",
            lines=[{"product_id": "prod-rx"}, {"product_id": "prod-otc"}],
            metadata={"consult_required_product_ids": '["prod-otc"]'},
        )
        with pytest.raises(ConsultApprovalRequiredForFulfillment) as exc:
            assert_fulfillment_allowed(order)
        assert exc.value.product_id == "prod-otc"

    def test_loaded_product_metadata_is_used(self, rx_catalog, orders):
        order = orders.add_order(
            "order-11",
            "biz-1",
            "cust-1",
            lines=[OrderLine(product_id="prod-otc", product_metadata={"requires_consult": "true"})],
        )
        with pytest.raises(ConsultApprovalRequiredForFulfillment) as exc:
            assert_fulfillment_allowed(order)
        assert exc.value.product_id == "prod-otc"

    def test_catalog_lookup_for_lines_without_metadata(self, rx_catalog, orders):
        order = orders.add_order("order-12", "biz-1", "cust-1", lines=[{"variant_id": "var-rx"}])
        with pytest.raises(ConsultApprovalRequiredForFulfillment) as exc:
            assert_fulfillment_allowed(order)
        assert exc.value.product_id == "prod-rx"

    def test_every_required_product_needs_approval(self, rx_catalog, orders, make_approval):
        make_approval(product_id="prod-rx")
        order = orders.add_order(
            "order-13", "biz-1", "cust-1", lines=[{"product_id": "prod-rx"}, {"product_id": "prod-rx-2"}]
        )
        with pytest.raises(ConsultApprovalRequiredForFulfillment) as exc:
            assert_fulfillment_allowed(order)
        assert exc.value.product_id == "prod-rx-2"

        make_approval(product_id="prod-rx-2")
        assert assert_fulfillment_allowed(order) == ["prod-rx", "prod-rx-2"]


class TestFailClosed:
    def test_missing_customer(self, rx_catalog, orders):
        order = orders.add_order("order-20", "biz-1", None, lines=[{"product_id": "prod-rx"}])
        with pytest.raises(ConsultApprovalRequiredForFulfillment) as exc:
            assert_fulfillment_allowed(order)
        assert exc.value.reason == "missing business or customer"

    def test_flagged_order_falls_back_to_all_lines(self, rx_catalog, orders):
        order = orders.add_order(
            "order-21",
            "biz-1",
            "cust-1",
            lines=[{"product_id": "prod-otc"}],
            metadata={"requires_consultation": True},
        )
        with pytest.raises(ConsultApprovalRequiredForFulfillment) as exc:
            assert_fulfillment_allowed(order)
        assert exc.value.product_id == "prod-otc"

    def test_flagged_order_without_products(self, rx_catalog, orders):
        order = orders.add_order("order-22", "biz-1", "cust-1", lines=[], metadata={"requires_consult": "true"})
        with pytest.raises(ConsultApprovalRequiredForFulfillment) as exc:
            assert_fulfillment_allowed(order)
        assert exc.value.reason == "cannot determine consult-required products"
        assert exc.value.product_id is None

    def test_catalog_outage_blocks_the_transition(self, rx_catalog, orders, make_approval):
        orders.add_order("order-23", "biz-1", "cust-1", lines=[{"product_id": "prod-rx"}])
        make_approval()
        rx_catalog.configure(should_fail=True)

        with pytest.raises(ConsultApprovalRequiredForFulfillment) as exc:
            _transition("order-23", "processing")

        assert exc.value.reason == "cannot determine consult-required products"
        assert exc.value.order_id == "order-23"
        assert orders.get_order("order-23").status == "pending"
        assert orders.transitions == []

    def test_catalog_outage_on_variant_lookup(self, rx_catalog, orders):
        order = orders.add_order("order-24", "biz-1", "cust-1", lines=[{"variant_id": "var-rx"}])
        rx_catalog.configure(should_fail=True)

        with pytest.raises(ConsultApprovalRequiredForFulfillment) as exc:
            assert_fulfillment_allowed(order)
        assert exc.value.reason == "cannot determine consult-required products"
