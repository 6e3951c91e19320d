import re
from decimal import Decimal
from uuid import UUID

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from school_admin.core.models import FeePayment, MiscellaneousCharge


@pytest.fixture()
async def category(client: AsyncClient, admin_headers: dict) -> dict:
    response = await client.post(
        "/api/v1/charges/categories",
        json={"name": "Uniform", "description": "School uniform sets"},
        headers=admin_headers,
    )
    assert response.status_code == 201
    return response.json()


@pytest.fixture()
async def charge(client: AsyncClient, accountant_headers: dict, category: dict, bus_student: dict) -> dict:
    response = await client.post(
        "/api/v1/charges",
        json={
            "student_id": bus_student["id"],
            "charge_category_id": category["id"],
            "description": "Two uniform sets",
            "amount": "1200",
            "charge_date": "2025-06-10",
        },
        headers=accountant_headers,
    )
    assert response.status_code == 201, response.text
    return response.json()


async def test_categories(client: AsyncClient, admin_headers: dict, accountant_headers: dict, category: dict) -> None:
    duplicate = await client.post("/api/v1/charges/categories", json={"name": "uniform"}, headers=admin_headers)
    assert duplicate.status_code == 409
    forbidden = await client.post("/api/v1/charges/categories", json={"name": "Books"}, headers=accountant_headers)
    assert forbidden.status_code == 403

    await client.put(f"/api/v1/charges/categories/{category['id']}", json={"is_active": False}, headers=admin_headers)
    active = await client.get("/api/v1/charges/categories", headers=accountant_headers)
    assert active.json() == []
    everything = await client.get("/api/v1/charges/categories", params={"active_only": False}, headers=accountant_headers)
    assert [c["name"] for c in everything.json()] == ["Uniform"]


async def test_create_charge(charge: dict, bus_student: dict, current_year: dict) -> None:
    assert charge["is_paid"] is False
    assert charge["payment_id"] is None
    assert charge["category_name"] == "Uniform"
    assert charge["student_name"] == bus_student["student_name"]
    assert charge["academic_year_id"] == current_year["id"]


async def test_inactive_category_rejected(client: AsyncClient, admin_headers: dict, category: dict, bus_student: dict) -> None:
    await client.put(f"/api/v1/charges/categories/{category['id']}", json={"is_active": False}, headers=admin_headers)
    response = await client.post(
        "/api/v1/charges",
        json={"student_id": bus_student["id"], "charge_category_id": category["id"], "description": "x", "amount": "10"},
        headers=admin_headers,
    )
    assert response.status_code == 404


async def test_pay_charge(client: AsyncClient, accountant_headers: dict, charge: dict, bus_student: dict) -> None:
    response = await client.post(
        f"/api/v1/charges/{charge['id']}/pay",
        json={"payment_method": "online", "transaction_id": "UPI-9", "payment_date": "2025-06-12"},
        headers=accountant_headers,
    )
    assert response.status_code == 200, response.text
    data = response.json()
    assert re.fullmatch(r"RC-MISC-[A-Z0-9]{6}", data["receipt_number"])
    assert Decimal(data["amount_paid"]) == Decimal("1200")
    assert data["charge"]["is_paid"] is True
    assert data["charge"]["payment_id"] == data["payment_id"]

    payment = (await client.get(f"/api/v1/payments/{data['payment_id']}", headers=accountant_headers)).json()
    assert payment["charge_type"] == "miscellaneous"
    assert payment["notes"] == "Payment for: Two uniform sets"
    assert payment["allocation"] is None

    # misc payments do not count towards bus/school fees
    status = (await client.get(f"/api/v1/fees/students/{bus_student['id']}/status", headers=accountant_headers)).json()
    assert Decimal(status["total_paid"]) == Decimal("0")

    again = await client.post(f"/api/v1/charges/{charge['id']}/pay", json={}, headers=accountant_headers)
    assert again.status_code == 409


async def test_paid_charge_is_locked(client: AsyncClient, accountant_headers: dict, charge: dict) -> None:
    paid = (await client.post(f"/api/v1/charges/{charge['id']}/pay", json={}, headers=accountant_headers)).json()

    assert (await client.put(f"/api/v1/charges/{charge['id']}", json={"amount": "5"}, headers=accountant_headers)).status_code == 409
    assert (await client.delete(f"/api/v1/charges/{charge['id']}", headers=accountant_headers)).status_code == 409

    amount_change = await client.put(
        f"/api/v1/payments/{paid['payment_id']}", json={"amount_paid": "10"}, headers=accountant_headers
    )
    assert amount_change.status_code == 400

    unpaid = await client.get("/api/v1/charges", params={"is_paid": False}, headers=accountant_headers)
    assert unpaid.json() == []


async def test_deleting_payment_reopens_charge(client: AsyncClient, admin_headers: dict, charge: dict) -> None:
    paid = (await client.post(f"/api/v1/charges/{charge['id']}/pay", json={}, headers=admin_headers)).json()
    response = await client.delete(f"/api/v1/payments/{paid['payment_id']}", headers=admin_headers)
    assert response.status_code == 204

    (reopened,) = (await client.get("/api/v1/charges", params={"is_paid": False}, headers=admin_headers)).json()
    assert reopened["id"] == charge["id"]
    assert reopened["payment_id"] is None


async def test_update_and_delete_unpaid_charge(client: AsyncClient, accountant_headers: dict, charge: dict) -> None:
    updated = await client.put(
        f"/api/v1/charges/{charge['id']}",
        json={"amount": "900", "due_date": "2025-07-01"},
        headers=accountant_headers,
    )
    assert Decimal(updated.json()["amount"]) == Decimal("900")
    assert updated.json()["due_date"] == "2025-07-01"

    deleted = await client.delete(f"/api/v1/charges/{charge['id']}", headers=accountant_headers)
    assert deleted.status_code == 204


async def test_charge_paid_elsewhere_is_not_paid_twice(
    client: AsyncClient, accountant_headers: dict, db_session: AsyncSession, charge: dict
) -> None:
    first = await client.post(f"/api/v1/charges/{charge['id']}/pay", json={}, headers=accountant_headers)
    assert first.status_code == 200

    # A second request that read the charge before the first one committed still sees it unpaid
    loaded = await db_session.get(MiscellaneousCharge, UUID(charge["id"]))
    set_committed_value(loaded, "is_paid", False)

    second = await client.post(f"/api/v1/charges/{charge['id']}/pay", json={}, headers=accountant_headers)
    assert second.status_code == 409

    payments = await db_session.scalar(
        select(func.count()).select_from(FeePayment).where(FeePayment.charge_type == "miscellaneous")
    )
    assert payments == 1
