from decimal import Decimal

from httpx import AsyncClient


async def _collect(client: AsyncClient, headers: dict, student_id: str, amount: str, method: str = "cash") -> dict:
    response = await client.post(
        "/api/v1/payments",
        json={
            "student_id": student_id,
            "amount_paid": amount,
            "payment_date": "2025-07-01",
            "payment_method": method,
            "transaction_id": "UPI-1" if method == "online" else None,
        },
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()


async def test_year_end_report_is_saved(
    client: AsyncClient, admin_headers: dict, accountant_headers: dict, bus_student: dict
) -> None:
    await _collect(client, accountant_headers, bus_student["id"], "4000")

    response = await client.post("/api/v1/reports/year-end", headers=admin_headers)
    assert response.status_code == 200, response.text
    report = response.json()
    assert report["year_name"] == "2025-2026"
    assert report["student_stats"] == {
        "total_students": 1,
        "active_students": 1,
        "new_admissions": 1,
        "with_bus_service": 1,
    }
    assert Decimal(report["fee_collection"]["total_collection"]) == Decimal("4000")
    assert Decimal(report["fee_collection"]["pending_fees"]) == Decimal("5000")
    assert report["fee_collection"]["cash_payments"] == 1
    assert report["fee_collection"]["online_payments"] == 0
    assert report["promotion_summary"]["total_promoted"] == 0
    class_rows = {row["class_name"]: row for row in report["class_wise_report"]}
    assert class_rows["1"]["total_students"] == 1
    assert class_rows["UKG"]["total_students"] == 0

    saved = await client.get(
        f"/api/v1/academic-years/{report['academic_year_id']}/settings/year_end_reports",
        headers=admin_headers,
    )
    assert saved.status_code == 200
    assert saved.json()["setting_value"]["year_name"] == "2025-2026"

    # Generating again replaces the stored report
    again = await client.post("/api/v1/reports/year-end", headers=admin_headers)
    assert again.status_code == 200


async def test_year_end_report_needs_admin(client: AsyncClient, accountant_headers: dict, current_year: dict) -> None:
    response = await client.post("/api/v1/reports/year-end", headers=accountant_headers)
    assert response.status_code == 403


async def test_daily_collection_groups_by_method(
    client: AsyncClient, accountant_headers: dict, bus_student: dict
) -> None:
    await _collect(client, accountant_headers, bus_student["id"], "4000")
    await _collect(client, accountant_headers, bus_student["id"], "500", method="online")

    response = await client.get(
        "/api/v1/reports/daily-collection",
        params={"report_date": "2025-07-01"},
        headers=accountant_headers,
    )
    assert response.status_code == 200, response.text
    report = response.json()
    assert report["payment_count"] == 2
    assert Decimal(report["total_amount"]) == Decimal("4500")

    methods = {m["payment_method"]: m for m in report["by_method"]}
    assert Decimal(methods["cash"]["bus_amount"]) == Decimal("3000")
    assert Decimal(methods["cash"]["school_amount"]) == Decimal("1000")
    assert Decimal(methods["online"]["school_amount"]) == Decimal("500")
    assert {p["admission_number"] for p in report["payments"]} == {"B001"}

    empty = await client.get(
        "/api/v1/reports/daily-collection",
        params={"report_date": "2025-07-02"},
        headers=accountant_headers,
    )
    assert empty.json()["payment_count"] == 0


async def test_outstanding_by_class(
    client: AsyncClient, accountant_headers: dict, teacher_headers: dict, bus_student: dict
) -> None:
    await _collect(client, accountant_headers, bus_student["id"], "4000")

    response = await client.get("/api/v1/reports/outstanding", headers=accountant_headers)
    assert response.status_code == 200, response.text
    rows = {row["class_name"]: row for row in response.json()}
    assert rows["1"]["student_count"] == 1
    assert rows["1"]["defaulter_count"] == 1
    assert Decimal(rows["1"]["outstanding_balance"]) == Decimal("5000")
    assert rows["UKG"]["defaulter_count"] == 0

    forbidden = await client.get("/api/v1/reports/outstanding", headers=teacher_headers)
    assert forbidden.status_code == 403


async def test_dashboard_defaulters_for_admin_only(
    client: AsyncClient,
    admin_headers: dict,
    teacher_headers: dict,
    accountant_headers: dict,
    bus_student: dict,
) -> None:
    await _collect(client, accountant_headers, bus_student["id"], "1000")

    admin = await client.get("/api/v1/reports/dashboard", headers=admin_headers)
    assert admin.status_code == 200, admin.text
    stats = admin.json()
    assert stats["year_name"] == "2025-2026"
    assert stats["active_students"] == 1
    assert Decimal(stats["yearly_collection"]) == Decimal("1000")
    assert len(stats["defaulters"]) == 3

    teacher = await client.get("/api/v1/reports/dashboard", headers=teacher_headers)
    assert teacher.status_code == 200
    assert teacher.json()["defaulters"] == []


async def test_dashboard_without_current_year(client: AsyncClient, teacher_headers: dict) -> None:
    response = await client.get("/api/v1/reports/dashboard", headers=teacher_headers)
    assert response.status_code == 200
    stats = response.json()
    assert stats["academic_year_id"] is None
    assert Decimal(stats["yearly_collection"]) == Decimal("0")
