import pytest

from app.auth.jwt import issue_jwt
from app.config import settings

_ROLE_BY_KEY = {
    "owner_a": "OWNER",
    "owner_b": "OWNER",
    "rider_a": "RIDER",
    "spare_rider_a": "RIDER",
    "rider_b": "RIDER",
    "customer": "CUSTOMER",
    "other_customer": "CUSTOMER",
}


@pytest.fixture
def auth_headers(seeded_parties):
    def _headers(role: str, sub: str) -> dict[str, str]:
        token = issue_jwt({"sub": sub, "role": role}, settings.jwt_secret)
        return {"Authorization": f"Bearer {token}"}

    return {key: _headers(role, str(seeded_parties[key])) for key, role in _ROLE_BY_KEY.items()}


@pytest.fixture
def create_order(client, auth_headers, seeded_parties):
    def _create(*, org: str = "org_a", owner: str = "owner_a", rider: str | None = "rider_a"):
        body = {
            "org_id": str(seeded_parties[org]),
            "package_description": "Spare phone and charger",
            "customer_id": str(seeded_parties["customer"]),
        }
        if rider is not None:
            body["rider_id"] = str(seeded_parties[rider])
        response = client.post("/api/v1/orders", json=body, headers=auth_headers[owner])
        assert response.status_code == 201, response.text
        return response.json()

    return _create


@pytest.fixture
def tenant_orders(create_order):
    return {
        "a": create_order(),
        "b": create_order(org="org_b", owner="owner_b", rider="rider_b"),
    }
