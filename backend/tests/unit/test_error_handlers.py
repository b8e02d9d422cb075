"""Unit tests for tenancy error responses

Tests cover:
- Status code and body for each error kind
- Ownership failures never reveal the owning tenant or the reason
- Unknown ids collapse to ownership failures unless disabled
"""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from uuid import uuid4

from tenancy.errors import (
    AmbiguousTenantError,
    EntityNotFoundError,
    OwnershipViolation,
    TenantAccessDeniedError,
    TenantBindingError,
    TenantContextMissingError,
    TenantImmutableError,
    TenantInactiveError,
    TenantOwnershipError,
)
from tenancy.handlers import register_exception_handlers

EXPECTED_TENANT = uuid4()
FOREIGN_PRODUCT = uuid4()
MISSING_SCHOOL = uuid4()

ERRORS = {
    "missing": TenantContextMissingError(),
    "ambiguous": AmbiguousTenantError(3),
    "denied": TenantAccessDeniedError(),
    "inactive": TenantInactiveError(EXPECTED_TENANT, "suspended"),
    "ownership": TenantOwnershipError(
        [OwnershipViolation("product", FOREIGN_PRODUCT, "foreign_tenant")], EXPECTED_TENANT
    ),
    "not_found": EntityNotFoundError(
        [OwnershipViolation("school", MISSING_SCHOOL, "not_found")], EXPECTED_TENANT
    ),
    "immutable": TenantImmutableError("School", uuid4()),
    "binding": TenantBindingError(3),
}


@pytest.fixture
def error_client():
    app = FastAPI()
    register_exception_handlers(app)

    @app.get("/raise/{name}")
    def raise_error(name: str):
        raise ERRORS[name]

    return TestClient(app)


@pytest.mark.parametrize("name, status_code, error_kind", [
    ("missing", 400, "tenant_context_missing"),
    ("ambiguous", 400, "tenant_ambiguous"),
    ("denied", 403, "tenant_access_denied"),
    ("inactive", 403, "tenant_inactive"),
    ("ownership", 403, "tenant_ownership"),
    ("immutable", 409, "tenant_immutable"),
    ("binding", 503, "tenant_binding_unavailable"),
])
def test_error_status_and_kind(error_client, name, status_code, error_kind):
    response = error_client.get(f"/raise/{name}")

    assert response.status_code == status_code
    body = response.json()
    assert body["error"] == error_kind
    assert "message" in body
    assert "request_id" in body


def test_ownership_body_names_reference_only(error_client):
    body = error_client.get("/raise/ownership").json()

    assert body["details"]["violations"] == [{"kind": "product", "id": str(FOREIGN_PRODUCT)}]
    assert "foreign_tenant" not in str(body)


def test_not_found_collapses_to_ownership_by_default(error_client):
    response = error_client.get("/raise/not_found")

    assert response.status_code == 403
    body = response.json()
    assert body["error"] == "tenant_ownership"
    assert body["details"]["violations"] == [{"kind": "school", "id": str(MISSING_SCHOOL)}]


def test_not_found_reported_when_collapse_disabled(error_client, override_settings):
    override_settings(OWNERSHIP_COLLAPSE_NOT_FOUND="false")

    response = error_client.get("/raise/not_found")

    assert response.status_code == 404
    assert response.json()["error"] == "entity_not_found"


def test_ownership_error_exposes_first_reference():
    error = ERRORS["ownership"]

    assert error.kind == "product"
    assert error.entity_id == FOREIGN_PRODUCT
    assert error.expected_tenant == EXPECTED_TENANT
