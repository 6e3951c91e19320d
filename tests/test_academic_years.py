from httpx import AsyncClient


async def _create_year(client: AsyncClient, headers: dict, name: str, start: str, end: str, **extra):
    return await client.post(
        "/api/v1/academic-years",
        json={"year_name": name, "start_date": start, "end_date": end, **extra},
        headers=headers,
    )


async def test_create_and_get_current(client: AsyncClient, admin_headers: dict, current_year: dict) -> None:
    assert current_year["is_current"] is True
    assert current_year["transition_status"] == "pending"

    response = await client.get("/api/v1/academic-years/current", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["id"] == current_year["id"]


async def test_new_year_links_to_current_year(client: AsyncClient, admin_headers: dict, current_year: dict) -> None:
    response = await _create_year(client, admin_headers, "2026-2027", "2026-06-01", "2027-03-31")
    assert response.status_code == 201
    data = response.json()
    assert data["previous_year_id"] == current_year["id"]
    assert data["is_current"] is False


async def test_set_as_current_unsets_other_years(client: AsyncClient, admin_headers: dict, current_year: dict) -> None:
    created = await _create_year(
        client, admin_headers, "2026-2027", "2026-06-01", "2027-03-31", set_as_current=True
    )
    assert created.json()["is_current"] is True

    years = (await client.get("/api/v1/academic-years", headers=admin_headers)).json()
    assert [y["year_name"] for y in years if y["is_current"]] == ["2026-2027"]

    switched = await client.post(f"/api/v1/academic-years/{current_year['id']}/set-current", headers=admin_headers)
    assert switched.status_code == 200
    current = (await client.get("/api/v1/academic-years/current", headers=admin_headers)).json()
    assert current["year_name"] == "2025-2026"


async def test_duplicate_year_name(client: AsyncClient, admin_headers: dict, current_year: dict) -> None:
    response = await _create_year(client, admin_headers, "2025-2026", "2025-06-01", "2026-03-31")
    assert response.status_code == 409


async def test_end_date_must_follow_start_date(client: AsyncClient, admin_headers: dict) -> None:
    response = await _create_year(client, admin_headers, "2025-2026", "2026-03-31", "2025-06-01")
    assert response.status_code == 400


async def test_no_current_year(client: AsyncClient, admin_headers: dict) -> None:
    response = await client.get("/api/v1/academic-years/current", headers=admin_headers)
    assert response.status_code == 200
    assert response.json() is None


async def test_update_year(client: AsyncClient, admin_headers: dict, current_year: dict) -> None:
    response = await client.put(
        f"/api/v1/academic-years/{current_year['id']}",
        json={"end_date": "2026-04-30"},
        headers=admin_headers,
    )
    assert response.status_code == 200
    assert response.json()["end_date"] == "2026-04-30"

    bad = await client.put(
        f"/api/v1/academic-years/{current_year['id']}",
        json={"previous_year_id": current_year["id"]},
        headers=admin_headers,
    )
    assert bad.status_code == 400


async def test_year_settings(client: AsyncClient, admin_headers: dict, teacher_headers: dict, current_year: dict) -> None:
    url = f"/api/v1/academic-years/{current_year['id']}/settings/working_days"
    assert (await client.get(url, headers=admin_headers)).status_code == 404

    saved = await client.put(url, json={"setting_value": {"days": 220}}, headers=admin_headers)
    assert saved.status_code == 200
    replaced = await client.put(url, json={"setting_value": {"days": 215}}, headers=admin_headers)
    assert replaced.json()["id"] == saved.json()["id"]

    fetched = await client.get(url, headers=teacher_headers)
    assert fetched.json()["setting_value"] == {"days": 215}
    assert (await client.put(url, json={"setting_value": {}}, headers=teacher_headers)).status_code == 403
