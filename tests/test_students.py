from httpx import AsyncClient


async def test_register_student_with_class(client: AsyncClient, admin_headers: dict, classes: dict, village: dict, make_student) -> None:
    student = await make_student(
        "A001",
        class_id=classes["1"]["id"],
        village_id=village["id"],
        has_school_bus=True,
        phone_number="98765 43219",
        student_aadhar="1234 5678 9012",
    )
    assert student["class_name"] == "1"
    assert student["village_name"] == "Rampur"
    assert student["status"] == "active"
    assert student["registration_type"] == "new"
    assert student["phone_number"] == "9876543219"
    assert student["student_aadhar"] == "123456789012"
    assert student["last_registration_date"] == "2025-06-01"

    history = await client.get(f"/api/v1/students/{student['id']}/academic-history", headers=admin_headers)
    assert history.status_code == 200
    (row,) = history.json()
    assert row["class_id"] == classes["1"]["id"]
    assert row["is_active_in_year"] is True


async def test_duplicate_admission_number(client: AsyncClient, admin_headers: dict, make_student) -> None:
    await make_student("A001")
    response = await client.post(
        "/api/v1/students",
        json={"admission_number": "A001", "student_name": "Other"},
        headers=admin_headers,
    )
    assert response.status_code == 409


async def test_bus_service_requires_village(client: AsyncClient, admin_headers: dict) -> None:
    response = await client.post(
        "/api/v1/students",
        json={"admission_number": "A001", "student_name": "Kiran", "has_school_bus": True},
        headers=admin_headers,
    )
    assert response.status_code == 422


async def test_invalid_phone_and_aadhar(client: AsyncClient, admin_headers: dict) -> None:
    for field, value in (("phone_number", "12345"), ("father_aadhar", "1234")):
        response = await client.post(
            "/api/v1/students",
            json={"admission_number": "A001", "student_name": "Kiran", field: value},
            headers=admin_headers,
        )
        assert response.status_code == 422


async def test_teacher_cannot_register(client: AsyncClient, teacher_headers: dict) -> None:
    response = await client.post(
        "/api/v1/students",
        json={"admission_number": "A001", "student_name": "Kiran"},
        headers=teacher_headers,
    )
    assert response.status_code == 403


async def test_list_students_filters_and_pages(client: AsyncClient, teacher_headers: dict, classes: dict, village: dict, make_student) -> None:
    await make_student("A001", student_name="Anil", class_id=classes["1"]["id"])
    await make_student("A002", student_name="Bhavya", class_id=classes["1"]["id"], section="B")
    await make_student("A003", student_name="Chitra", class_id=classes["2"]["id"], village_id=village["id"], has_school_bus=True)

    everyone = await client.get("/api/v1/students", params={"page_size": 2}, headers=teacher_headers)
    data = everyone.json()
    assert data["total"] == 3
    assert data["total_pages"] == 2
    assert [s["student_name"] for s in data["items"]] == ["Anil", "Bhavya"]

    by_class = await client.get("/api/v1/students", params={"class_id": classes["1"]["id"], "section": "B"}, headers=teacher_headers)
    assert [s["admission_number"] for s in by_class.json()["items"]] == ["A002"]

    by_search = await client.get("/api/v1/students", params={"search": "a00"}, headers=teacher_headers)
    assert by_search.json()["total"] == 3
    by_name = await client.get("/api/v1/students", params={"search": "CHIT"}, headers=teacher_headers)
    assert [s["village_name"] for s in by_name.json()["items"]] == ["Rampur"]

    bus = await client.get("/api/v1/students", params={"has_school_bus": True}, headers=teacher_headers)
    assert bus.json()["total"] == 1
    inactive = await client.get("/api/v1/students", params={"status": "inactive"}, headers=teacher_headers)
    assert inactive.json()["total"] == 0


async def test_mark_student_inactive(client: AsyncClient, admin_headers: dict, classes: dict, make_student) -> None:
    student = await make_student("A001", class_id=classes["1"]["id"])
    url = f"/api/v1/students/{student['id']}"

    missing_exit = await client.put(url, json={"status": "inactive"}, headers=admin_headers)
    assert missing_exit.status_code == 400

    response = await client.put(url, json={"status": "inactive", "exit_date": "2025-12-01"}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "inactive"

    history = (await client.get(f"{url}/academic-history", headers=admin_headers)).json()
    assert history[0]["is_active_in_year"] is False

    back = await client.put(url, json={"status": "active"}, headers=admin_headers)
    assert back.json()["exit_date"] is None


async def test_update_moves_class_and_history(client: AsyncClient, admin_headers: dict, classes: dict, make_student) -> None:
    student = await make_student("A001", class_id=classes["1"]["id"])
    response = await client.put(
        f"/api/v1/students/{student['id']}",
        json={"class_id": classes["2"]["id"], "section": "C"},
        headers=admin_headers,
    )
    assert response.json()["class_name"] == "2"
    (row,) = (await client.get(f"/api/v1/students/{student['id']}/academic-history", headers=admin_headers)).json()
    assert row["class_id"] == classes["2"]["id"]
    assert row["section"] == "C"


async def test_update_bus_without_village_rejected(client: AsyncClient, admin_headers: dict, make_student) -> None:
    student = await make_student("A001")
    response = await client.put(
        f"/api/v1/students/{student['id']}", json={"has_school_bus": True}, headers=admin_headers
    )
    assert response.status_code == 400


async def test_delete_student(client: AsyncClient, admin_headers: dict, classes: dict, make_student) -> None:
    student = await make_student("A001", class_id=classes["1"]["id"])
    response = await client.delete(f"/api/v1/students/{student['id']}", headers=admin_headers)
    assert response.status_code == 204
    assert (await client.get(f"/api/v1/students/{student['id']}", headers=admin_headers)).status_code == 404


async def test_bulk_admission(client: AsyncClient, admin_headers: dict, classes: dict, village: dict, make_student) -> None:
    await make_student("A001")
    base = {"student_name": "Imported", "father_name": "F", "mother_name": "M", "address": "Street"}
    rows = [
        {**base, "admission_number": "A100", "promoted_class": "1", "village_name": "rampur", "has_school_bus": "Yes", "gender": "Female"},
        {**base, "admission_number": "A101", "mother_name": ""},
        {**base, "admission_number": "A100"},
        {**base, "admission_number": "A001"},
        {**base, "admission_number": "A102", "phone_number": "12345"},
    ]
    response = await client.post("/api/v1/students/bulk-admission", json={"rows": rows}, headers=admin_headers)
    assert response.status_code == 200, response.text
    result = response.json()
    assert result["total_processed"] == 5
    assert result["successful_imports"] == 1
    assert result["failed_imports"] == 3
    assert result["duplicates"] == 1
    assert result["validation_errors"] == 3

    problems = {(e["row"], e["field"], e["severity"]) for e in result["errors"]}
    assert (3, "mother_name", "error") in problems
    assert (4, "admission_number", "error") in problems
    assert (5, "admission_number", "warning") in problems
    assert (6, "phone_number", "error") in problems

    imported = (await client.get("/api/v1/students", params={"search": "A100"}, headers=admin_headers)).json()["items"]
    (student,) = imported
    assert student["class_name"] == "1"
    assert student["village_name"] == "Rampur"
    assert student["has_school_bus"] is True
    assert student["gender"] == "female"
    assert student["registration_type"] == "continuing"


async def test_bulk_admission_is_admin_only(client: AsyncClient, accountant_headers: dict) -> None:
    response = await client.post(
        "/api/v1/students/bulk-admission",
        json={"rows": [{"admission_number": "A1"}]},
        headers=accountant_headers,
    )
    assert response.status_code == 403
