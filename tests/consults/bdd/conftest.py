"""Shared BDD fixtures and step definitions for consult gating."""

import pytest
from pytest_bdd import given, parsers


@pytest.fixture()
def outcome():
    """Container for the result or denial of the step under test."""
    return {"error": None, "result": None}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('product "{product_id}" requires a consultation'))
def consult_required_product(catalog, product_id):
    catalog.add_product(product_id, requires_consult=True)


@given(parsers.cfparse('product "{product_id}" does not require a consultation'))
def ordinary_product(catalog, product_id):
    catalog.add_product(product_id)


@given(parsers.cfparse('customer "{customer_id}" was approved for "{product_id}" {days:d} days ago'))
def approved_customer(make_approval, customer_id, product_id, days):
    make_approval(customer_id=customer_id, product_id=product_id, approved_days_ago=days)
