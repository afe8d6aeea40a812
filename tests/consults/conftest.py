from datetime import timedelta

import pytest
from protean.integrations.pytest import DomainFixture


@pytest.fixture(scope="session")
def consults_bed():
    from consults.domain import consults
    from consults.utils.db import drop_db, setup_db

    bed = DomainFixture(consults)
    bed.setup()
    setup_db(consults)
    yield bed
    drop_db(consults)
    bed.teardown()


def _reset_adapters():
    from consults.audit import reset_audit_log
    from consults.business import reset_business_directory
    from consults.catalog import reset_catalog
    from consults.channel import reset_email_channel
    from consults.config import reset_config
    from consults.orders import reset_orders
    from consults.outbox.transport import reset_transport

    reset_audit_log()
    reset_business_directory()
    reset_catalog()
    reset_email_channel()
    reset_config()
    reset_orders()
    reset_transport()


@pytest.fixture(autouse=True)
def _ctx(consults_bed):
    # Providers and the event store are reset when the context exits
    with consults_bed.domain_context():
        yield
    _reset_adapters()


# ---------------------------------------------------------------------------
# Fake adapters, installed into their registries
# ---------------------------------------------------------------------------
@pytest.fixture()
def catalog():
    from consults.catalog import set_catalog
    from consults.catalog.fake_adapter import InMemoryCatalog

    fake = InMemoryCatalog()
    set_catalog(fake)
    return fake


@pytest.fixture()
def orders():
    from consults.orders import set_orders
    from consults.orders.fake_adapter import InMemoryOrderBook

    fake = InMemoryOrderBook()
    set_orders(fake)
    return fake


@pytest.fixture()
def audit_log():
    from consults.audit import set_audit_log
    from consults.audit.fake_adapter import InMemoryAuditLog

    fake = InMemoryAuditLog()
    set_audit_log(fake)
    return fake


@pytest.fixture()
def directory():
    from consults.business import set_business_directory
    from consults.business.fake_adapter import InMemoryBusinessDirectory

    fake = InMemoryBusinessDirectory()
    set_business_directory(fake)
    return fake


@pytest.fixture()
def email_channel():
    from consults.channel import set_email_channel
    from consults.channel.fake_email import FakeEmailAdapter

    fake = FakeEmailAdapter()
    set_email_channel(fake)
    return fake


@pytest.fixture()
def transport():
    from consults.outbox.transport import set_transport
    from consults.outbox.transport.fake_adapter import FakeWebhookTransport

    fake = FakeWebhookTransport()
    set_transport(fake)
    return fake


# ---------------------------------------------------------------------------
# Data builders
# ---------------------------------------------------------------------------
@pytest.fixture()
def make_approval():
    """Persist an approval, approved ``approved_days_ago`` days before now unless ``pending``."""
    from protean import current_domain

    from consults.approval.approval import ConsultApproval
    from consults.utils.clock import utc_now

    def _make(
        business_id="biz-1",
        customer_id="cust-1",
        product_id="prod-rx",
        approved_days_ago=0,
        validity_days=90,
        pending=False,
        consultation_id="consult-seed",
    ):
        approval = ConsultApproval.request(
            business_id=business_id,
            customer_id=customer_id,
            product_id=product_id,
            consultation_id=consultation_id,
        )
        if not pending:
            approval.approve(
                consultation_id=consultation_id,
                approved_by="clinician-seed",
                validity_days=validity_days,
                now=utc_now() - timedelta(days=approved_days_ago),
            )
        current_domain.repository_for(ConsultApproval).add(approval)
        return approval

    return _make


@pytest.fixture()
def intake():
    """Submit a consult request with sensible defaults."""
    from consults.intake.deduplication import submit_consult_request

    def _submit(**overrides):
        defaults = {
            "business_id": "biz-1",
            "customer_id": "cust-1",
            "product_id": "prod-rx",
            "email": "Patient@Example.com",
            "first_name": "Pat",
            "last_name": "Doe",
            "eligibility_answers": {"age_over_18": True, "conditions": ["asthma"]},
        }
        defaults.update(overrides)
        return submit_consult_request(**defaults)

    return _submit
