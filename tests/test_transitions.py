from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import UUID

from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from school_admin.api.v1.transitions import service as transition_service
from school_admin.core.config import settings
from school_admin.core.models import AcademicYearTransition, StudentPromotionHistory


async def _next_year(client: AsyncClient, headers: dict, class_names=("1", "2")) -> dict:
    response = await client.post(
        "/api/v1/academic-years",
        json={"year_name": "2026-2027", "start_date": "2026-06-01", "end_date": "2027-03-31"},
        headers=headers,
    )
    assert response.status_code == 201, response.text
    year = response.json()
    year["classes"] = {}
    for order, name in enumerate(class_names):
        created = await client.post(
            "/api/v1/classes",
            json={"name": name, "display_order": order, "academic_year_id": year["id"]},
            headers=headers,
        )
        assert created.status_code == 201, created.text
        year["classes"][name] = created.json()
    return year


async def _create_transition(client: AsyncClient, headers: dict, from_id: str, to_id: str, expected: int = 201) -> dict:
    response = await client.post(
        "/api/v1/transitions",
        json={"from_year_id": from_id, "to_year_id": to_id},
        headers=headers,
    )
    assert response.status_code == expected, response.text
    return response.json()


async def test_run_transition_promotes_students(
    client: AsyncClient, admin_headers: dict, current_year: dict, classes: dict, make_student
) -> None:
    ukg = await make_student("T001", class_id=classes["UKG"]["id"])
    first = await make_student("T002", class_id=classes["1"]["id"])
    retained = await make_student("T003", class_id=classes["2"]["id"])
    leaving = await make_student("T004", class_id=classes["1"]["id"])
    no_class = await make_student("T005", class_id=classes["2"]["id"])

    next_year = await _next_year(client, admin_headers)
    transition = await _create_transition(client, admin_headers, current_year["id"], next_year["id"])
    assert transition["status"] == "pending"

    response = await client.post(
        f"/api/v1/transitions/{transition['id']}/run",
        json={
            "class_mapping": {"UKG": "1"},
            "student_overrides": [
                {"student_id": retained["id"], "promotion_status": "retained"},
                {"student_id": leaving["id"], "promotion_status": "transferred_out"},
            ],
        },
        headers=admin_headers,
    )
    assert response.status_code == 200, response.text
    body = response.json()
    result = body["transition"]
    assert result["status"] == "completed"
    assert result["total_students"] == 5
    assert result["promoted_students"] == 2
    assert result["retained_students"] == 1
    assert result["transferred_students"] == 1
    assert result["dropped_students"] == 0
    assert result["skipped_students"] == 1
    assert result["completed_at"] is not None
    assert [s["student_id"] for s in body["skipped"]] == [no_class["id"]]
    assert "'2'" in body["skipped"][0]["reason"]

    new_classes = next_year["classes"]
    moved = (await client.get(f"/api/v1/students/{ukg['id']}", headers=admin_headers)).json()
    assert moved["class_id"] == new_classes["1"]["id"]
    assert moved["registration_type"] == "continuing"

    promoted = (await client.get(f"/api/v1/students/{first['id']}", headers=admin_headers)).json()
    assert promoted["class_id"] == new_classes["2"]["id"]

    kept = (await client.get(f"/api/v1/students/{retained['id']}", headers=admin_headers)).json()
    assert kept["class_id"] == new_classes["2"]["id"]

    gone = (await client.get(f"/api/v1/students/{leaving['id']}", headers=admin_headers)).json()
    assert gone["status"] == "inactive"
    assert gone["exit_date"] is not None

    history = (await client.get(f"/api/v1/students/{ukg['id']}/academic-history", headers=admin_headers)).json()
    assert [h["academic_year_id"] for h in history] == [current_year["id"], next_year["id"]]
    assert history[0]["promotion_status"] == "promoted"

    current = (await client.get("/api/v1/academic-years/current", headers=admin_headers)).json()
    assert current["id"] == next_year["id"]
    old = (await client.get(f"/api/v1/academic-years/{current_year['id']}", headers=admin_headers)).json()
    assert old["is_current"] is False
    assert old["transition_status"] == "completed"


async def test_completed_transition_cannot_run_again(
    client: AsyncClient, admin_headers: dict, current_year: dict, classes: dict
) -> None:
    next_year = await _next_year(client, admin_headers)
    transition = await _create_transition(client, admin_headers, current_year["id"], next_year["id"])
    url = f"/api/v1/transitions/{transition['id']}/run"

    first = await client.post(url, json={}, headers=admin_headers)
    assert first.status_code == 200, first.text
    assert first.json()["transition"]["total_students"] == 0

    again = await client.post(url, json={}, headers=admin_headers)
    assert again.status_code == 409


async def test_duplicate_and_invalid_transitions(
    client: AsyncClient, admin_headers: dict, current_year: dict
) -> None:
    next_year = await _next_year(client, admin_headers, class_names=())
    await _create_transition(client, admin_headers, current_year["id"], next_year["id"])
    await _create_transition(client, admin_headers, current_year["id"], next_year["id"], expected=409)
    await _create_transition(client, admin_headers, current_year["id"], current_year["id"], expected=400)
    await _create_transition(client, admin_headers, next_year["id"], current_year["id"], expected=400)

    listed = await client.get("/api/v1/transitions", headers=admin_headers)
    assert listed.status_code == 200
    assert len(listed.json()) == 1


async def test_failure_midway_rolls_back_every_student(
    client: AsyncClient,
    admin_headers: dict,
    db_session: AsyncSession,
    current_year: dict,
    classes: dict,
    make_student,
    monkeypatch,
) -> None:
    first = await make_student("T010", class_id=classes["1"]["id"])
    second = await make_student("T011", class_id=classes["1"]["id"])
    next_year = await _next_year(client, admin_headers)
    transition = await _create_transition(client, admin_headers, current_year["id"], next_year["id"])
    url = f"/api/v1/transitions/{transition['id']}/run"

    real_next_class_name = transition_service.next_class_name
    calls = []

    def fail_on_second_student(name, class_mapping=None):
        calls.append(name)
        if len(calls) == 2:
            raise RuntimeError("disk full")
        return real_next_class_name(name, class_mapping)

    monkeypatch.setattr(transition_service, "next_class_name", fail_on_second_student)
    failed = await client.post(url, json={}, headers=admin_headers)
    assert failed.status_code == 500
    assert "disk full" in failed.json()["detail"]
    assert len(calls) == 2

    recorded = (await client.get(f"/api/v1/transitions/{transition['id']}", headers=admin_headers)).json()
    assert recorded["status"] == "failed"
    assert recorded["error_message"] == "disk full"

    # The student handled before the failure keeps no trace of the run
    promotions = await db_session.scalar(
        select(func.count()).select_from(StudentPromotionHistory).where(
            StudentPromotionHistory.student_id == UUID(first["id"])
        )
    )
    assert promotions == 0
    history = (await client.get(f"/api/v1/students/{first['id']}/academic-history", headers=admin_headers)).json()
    assert [h["academic_year_id"] for h in history] == [current_year["id"]]
    assert history[0]["promotion_status"] is None
    unchanged = (await client.get(f"/api/v1/students/{first['id']}", headers=admin_headers)).json()
    assert unchanged["class_id"] == classes["1"]["id"]
    assert unchanged["registration_type"] == "new"
    year = (await client.get(f"/api/v1/academic-years/{current_year['id']}", headers=admin_headers)).json()
    assert year["is_current"] is True

    monkeypatch.undo()
    rerun = await client.post(url, json={}, headers=admin_headers)
    assert rerun.status_code == 200, rerun.text
    assert rerun.json()["transition"]["promoted_students"] == 2
    moved = (await client.get(f"/api/v1/students/{second['id']}", headers=admin_headers)).json()
    assert moved["class_id"] == next_year["classes"]["2"]["id"]


async def test_student_already_in_target_year_is_skipped(
    client: AsyncClient, admin_headers: dict, current_year: dict, classes: dict, make_student
) -> None:
    student = await make_student("T020", class_id=classes["1"]["id"])
    next_year = await _next_year(client, admin_headers)
    moved_early = await client.put(
        f"/api/v1/students/{student['id']}",
        json={"class_id": next_year["classes"]["2"]["id"]},
        headers=admin_headers,
    )
    assert moved_early.status_code == 200, moved_early.text

    transition = await _create_transition(client, admin_headers, current_year["id"], next_year["id"])
    response = await client.post(f"/api/v1/transitions/{transition['id']}/run", json={}, headers=admin_headers)
    assert response.status_code == 200, response.text
    body = response.json()
    assert body["transition"]["total_students"] == 1
    assert body["transition"]["promoted_students"] == 0
    assert body["transition"]["skipped_students"] == 1
    assert body["skipped"][0]["student_id"] == student["id"]
    assert body["skipped"][0]["reason"] == "Already enrolled in target year"

    history = (await client.get(f"/api/v1/students/{student['id']}/academic-history", headers=admin_headers)).json()
    assert len(history) == 2


async def _mark_in_progress(db: AsyncSession, transition_id: str, started_minutes_ago: int) -> None:
    """Leave the transition as a run that started and never reported back."""
    transition = await db.get(AcademicYearTransition, UUID(transition_id))
    transition.status = "in_progress"
    transition.started_at = datetime.now(timezone.utc) - timedelta(minutes=started_minutes_ago)
    await db.commit()


async def test_interrupted_run_can_be_reset(
    client: AsyncClient, admin_headers: dict, db_session: AsyncSession, current_year: dict, classes: dict
) -> None:
    next_year = await _next_year(client, admin_headers)
    transition = await _create_transition(client, admin_headers, current_year["id"], next_year["id"])
    url = f"/api/v1/transitions/{transition['id']}"
    await _mark_in_progress(db_session, transition["id"], started_minutes_ago=1)

    assert (await client.post(f"{url}/run", json={}, headers=admin_headers)).status_code == 409
    await _create_transition(client, admin_headers, current_year["id"], next_year["id"], expected=409)

    reset = await client.post(f"{url}/reset", headers=admin_headers)
    assert reset.status_code == 200, reset.text
    assert reset.json()["status"] == "failed"
    assert reset.json()["error_message"] == "Reset by administrator"

    rerun = await client.post(f"{url}/run", json={}, headers=admin_headers)
    assert rerun.status_code == 200, rerun.text
    assert rerun.json()["transition"]["status"] == "completed"
    assert (await client.post(f"{url}/reset", headers=admin_headers)).status_code == 409


async def test_stale_run_is_recovered_without_reset(
    client: AsyncClient, admin_headers: dict, db_session: AsyncSession, current_year: dict, classes: dict
) -> None:
    next_year = await _next_year(client, admin_headers)
    stuck = await _create_transition(client, admin_headers, current_year["id"], next_year["id"])
    await _mark_in_progress(db_session, stuck["id"], started_minutes_ago=settings.transition_stale_minutes + 5)

    # A new transition for the same year replaces the abandoned one
    replacement = await _create_transition(client, admin_headers, current_year["id"], next_year["id"])
    abandoned = (await client.get(f"/api/v1/transitions/{stuck['id']}", headers=admin_headers)).json()
    assert abandoned["status"] == "failed"

    await _mark_in_progress(db_session, replacement["id"], started_minutes_ago=settings.transition_stale_minutes + 5)
    rerun = await client.post(f"/api/v1/transitions/{replacement['id']}/run", json={}, headers=admin_headers)
    assert rerun.status_code == 200, rerun.text
    assert rerun.json()["transition"]["status"] == "completed"


async def test_earlier_year_fees_survive_promotion(
    client: AsyncClient, admin_headers: dict, fee_setup: dict, make_student
) -> None:
    admission = await client.post("/api/v1/fees/types", json={"name": "Admission"}, headers=admin_headers)
    assert admission.status_code == 201
    class_id = fee_setup["class"]["id"]
    structure = await client.put(
        "/api/v1/fees/structure",
        json={
            "lines": [
                {"class_id": class_id, "fee_type_id": fee_setup["tuition_type"]["id"], "amount": "500", "is_recurring_monthly": True},
                {"class_id": class_id, "fee_type_id": fee_setup["exam_type"]["id"], "amount": "1000"},
                {
                    "class_id": class_id,
                    "fee_type_id": admission.json()["id"],
                    "amount": "2000",
                    "applicable_to_new_students_only": True,
                },
            ]
        },
        headers=admin_headers,
    )
    assert structure.status_code == 200, structure.text

    student = await make_student("T030", class_id=class_id)
    paid = await client.post(
        "/api/v1/payments",
        json={"student_id": student["id"], "amount_paid": "8000", "payment_date": "2025-07-01"},
        headers=admin_headers,
    )
    assert paid.status_code == 201, paid.text

    old_year_id = fee_setup["year"]["id"]
    status_url = f"/api/v1/fees/students/{student['id']}/status"
    before = (await client.get(status_url, params={"academic_year_id": old_year_id}, headers=admin_headers)).json()
    assert Decimal(before["total_school_fee"]) == Decimal("8000")

    next_year = await _next_year(client, admin_headers)
    transition = await _create_transition(client, admin_headers, old_year_id, next_year["id"])
    run = await client.post(f"/api/v1/transitions/{transition['id']}/run", json={}, headers=admin_headers)
    assert run.json()["transition"]["promoted_students"] == 1

    after = (await client.get(status_url, params={"academic_year_id": old_year_id}, headers=admin_headers)).json()
    assert Decimal(after["total_school_fee"]) == Decimal("8000")
    assert Decimal(after["paid_school_fee"]) == Decimal("8000")
    assert after["status"] == "paid"

    history = (await client.get(f"/api/v1/students/{student['id']}/academic-history", headers=admin_headers)).json()
    assert [h["registration_type"] for h in history] == ["new", "continuing"]

    recalculated = await client.post(
        "/api/v1/payments/recalculate-all", params={"academic_year_id": old_year_id}, headers=admin_headers
    )
    assert recalculated.status_code == 200, recalculated.text


async def test_transitions_are_admin_only(client: AsyncClient, accountant_headers: dict, current_year: dict) -> None:
    response = await client.get("/api/v1/transitions", headers=accountant_headers)
    assert response.status_code == 403


async def test_unknown_transition(client: AsyncClient, admin_headers: dict) -> None:
    missing = "00000000-0000-0000-0000-000000000000"
    assert (await client.get(f"/api/v1/transitions/{missing}", headers=admin_headers)).status_code == 404
    response = await client.post(f"/api/v1/transitions/{missing}/run", json={}, headers=admin_headers)
    assert response.status_code == 404
