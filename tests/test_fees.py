from decimal import Decimal

from httpx import AsyncClient


def D(value) -> Decimal:
    return Decimal(str(value))


async def test_fee_types(client: AsyncClient, admin_headers: dict, teacher_headers: dict) -> None:
    created = await client.post(
        "/api/v1/fees/types",
        json={"name": "Transport", "category": "bus", "frequency": "monthly"},
        headers=admin_headers,
    )
    assert created.status_code == 201
    duplicate = await client.post("/api/v1/fees/types", json={"name": "transport"}, headers=admin_headers)
    assert duplicate.status_code == 409

    school_only = await client.get("/api/v1/fees/types", params={"category": "school"}, headers=teacher_headers)
    assert school_only.json() == []

    updated = await client.put(
        f"/api/v1/fees/types/{created.json()['id']}",
        json={"description": "School bus"},
        headers=admin_headers,
    )
    assert updated.json()["description"] == "School bus"
    assert updated.json()["category"] == "bus"

    deleted = await client.delete(f"/api/v1/fees/types/{created.json()['id']}", headers=admin_headers)
    assert deleted.status_code == 204


async def test_fee_type_effective_range(client: AsyncClient, admin_headers: dict) -> None:
    response = await client.post(
        "/api/v1/fees/types",
        json={"name": "Exam", "effective_from": "2026-01-01", "effective_to": "2025-01-01"},
        headers=admin_headers,
    )
    assert response.status_code == 422


async def test_fee_type_in_use_cannot_be_deleted(client: AsyncClient, admin_headers: dict, fee_setup: dict) -> None:
    response = await client.delete(f"/api/v1/fees/types/{fee_setup['exam_type']['id']}", headers=admin_headers)
    assert response.status_code == 409


async def test_structure_listing_and_replacement(client: AsyncClient, admin_headers: dict, teacher_headers: dict, fee_setup: dict) -> None:
    class_id = fee_setup["class"]["id"]
    lines = (await client.get("/api/v1/fees/structure", params={"class_id": class_id}, headers=teacher_headers)).json()
    assert sorted((line["fee_type_name"], D(line["amount"])) for line in lines) == [("Exam", D(1000)), ("Tuition", D(500))]
    assert {line["class_name"] for line in lines} == {"1"}

    replaced = await client.put(
        "/api/v1/fees/structure",
        json={"lines": [{"class_id": class_id, "fee_type_id": fee_setup["tuition_type"]["id"], "amount": "600", "is_recurring_monthly": True}]},
        headers=admin_headers,
    )
    assert replaced.status_code == 200
    assert [D(line["amount"]) for line in replaced.json()] == [D(600)]


async def test_structure_rejects_bus_fee_types_and_duplicates(client: AsyncClient, admin_headers: dict, fee_setup: dict) -> None:
    bus_type = await client.post("/api/v1/fees/types", json={"name": "Bus", "category": "bus"}, headers=admin_headers)
    class_id = fee_setup["class"]["id"]

    response = await client.put(
        "/api/v1/fees/structure",
        json={"lines": [{"class_id": class_id, "fee_type_id": bus_type.json()["id"], "amount": "100"}]},
        headers=admin_headers,
    )
    assert response.status_code == 400

    tuition_id = fee_setup["tuition_type"]["id"]
    duplicate = await client.put(
        "/api/v1/fees/structure",
        json={
            "lines": [
                {"class_id": class_id, "fee_type_id": tuition_id, "amount": "100"},
                {"class_id": class_id, "fee_type_id": tuition_id, "amount": "200"},
            ]
        },
        headers=admin_headers,
    )
    assert duplicate.status_code == 400


async def test_student_fee_status(client: AsyncClient, accountant_headers: dict, bus_student: dict) -> None:
    response = await client.get(f"/api/v1/fees/students/{bus_student['id']}/status", headers=accountant_headers)
    assert response.status_code == 200, response.text
    data = response.json()
    assert data["months_in_year"] == 10
    assert data["bus_months"] == 10
    assert D(data["total_school_fee"]) == D(6000)
    assert D(data["total_bus_fee"]) == D(3000)
    assert D(data["monthly_school_fee"]) == D(500)
    assert D(data["monthly_bus_fee"]) == D(300)
    assert D(data["outstanding"]) == D(9000)
    assert data["status"] == "pending"
    assert data["last_payment_date"] is None


async def test_bus_fee_counts_from_bus_start_month(client: AsyncClient, accountant_headers: dict, fee_setup: dict, make_student) -> None:
    student = await make_student(
        "A001",
        village_id=fee_setup["village"]["id"],
        has_school_bus=True,
        bus_start_date="2025-11-15",
    )
    data = (await client.get(f"/api/v1/fees/students/{student['id']}/status", headers=accountant_headers)).json()
    assert data["bus_months"] == 5
    assert D(data["total_bus_fee"]) == D(1500)
    # no class: no school fee
    assert D(data["total_school_fee"]) == D(0)


async def test_new_student_only_lines(client: AsyncClient, admin_headers: dict, fee_setup: dict, make_student) -> None:
    admission = await client.post("/api/v1/fees/types", json={"name": "Admission"}, headers=admin_headers)
    class_id = fee_setup["class"]["id"]
    await client.put(
        "/api/v1/fees/structure",
        json={
            "lines": [
                {"class_id": class_id, "fee_type_id": fee_setup["tuition_type"]["id"], "amount": "500", "is_recurring_monthly": True},
                {"class_id": class_id, "fee_type_id": admission.json()["id"], "amount": "2000", "applicable_to_new_students_only": True},
            ]
        },
        headers=admin_headers,
    )
    new = await make_student("A001", class_id=class_id)
    continuing = await make_student("A002", class_id=class_id, registration_type="continuing")

    new_status = (await client.get(f"/api/v1/fees/students/{new['id']}/status", headers=admin_headers)).json()
    old_status = (await client.get(f"/api/v1/fees/students/{continuing['id']}/status", headers=admin_headers)).json()
    assert D(new_status["total_school_fee"]) == D(7000)
    assert D(old_status["total_school_fee"]) == D(5000)


async def test_class_fee_status(client: AsyncClient, accountant_headers: dict, fee_setup: dict, bus_student: dict, make_student) -> None:
    await make_student("A002", class_id=fee_setup["class"]["id"])
    response = await client.get(f"/api/v1/fees/classes/{fee_setup['class']['id']}/status", headers=accountant_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["total_students"] == 2
    assert D(data["total_fees"]) == D(15000)
    assert data["pending_count"] == 2
    assert data["collection_percentage"] == 0.0


async def test_fee_status_is_fee_staff_only(client: AsyncClient, teacher_headers: dict, bus_student: dict) -> None:
    response = await client.get(f"/api/v1/fees/students/{bus_student['id']}/status", headers=teacher_headers)
    assert response.status_code == 403


async def test_copy_from_previous_year(client: AsyncClient, admin_headers: dict, fee_setup: dict) -> None:
    next_year = (
        await client.post(
            "/api/v1/academic-years",
            json={"year_name": "2026-2027", "start_date": "2026-06-01", "end_date": "2027-03-31"},
            headers=admin_headers,
        )
    ).json()
    next_class = (
        await client.post(
            "/api/v1/classes",
            json={"name": "1", "academic_year_id": next_year["id"]},
            headers=admin_headers,
        )
    ).json()

    drafts = await client.get(
        "/api/v1/fees/structure/copy-previous",
        params={"academic_year_id": next_year["id"]},
        headers=admin_headers,
    )
    assert drafts.status_code == 200
    lines = drafts.json()
    assert len(lines) == 2
    assert {line["class_id"] for line in lines} == {next_class["id"]}
    assert {line["academic_year_id"] for line in lines} == {next_year["id"]}

    # drafts are not saved
    saved = await client.get("/api/v1/fees/structure", params={"academic_year_id": next_year["id"]}, headers=admin_headers)
    assert saved.json() == []

    bus = await client.get(
        "/api/v1/fees/bus/copy-previous",
        params={"academic_year_id": next_year["id"]},
        headers=admin_headers,
    )
    (draft,) = bus.json()
    assert D(draft["fee_amount"]) == D(300)
    assert draft["effective_from_date"] == "2026-06-01"


async def test_copy_without_previous_year(client: AsyncClient, admin_headers: dict, fee_setup: dict) -> None:
    response = await client.get("/api/v1/fees/structure/copy-previous", headers=admin_headers)
    assert response.status_code == 404


async def test_bus_fee_replaces_active_row(client: AsyncClient, admin_headers: dict, fee_setup: dict) -> None:
    village_id = fee_setup["village"]["id"]
    await client.put(
        "/api/v1/fees/bus",
        json={"fees": [{"village_id": village_id, "fee_amount": "320"}]},
        headers=admin_headers,
    )
    rows = (await client.get("/api/v1/fees/bus", headers=admin_headers)).json()
    assert len(rows) == 1
    assert D(rows[0]["fee_amount"]) == D(320)
    assert rows[0]["effective_from_date"] == "2025-06-01"
    assert rows[0]["effective_to_date"] == "2026-03-31"
