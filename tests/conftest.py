import os
from typing import AsyncGenerator

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from school_admin.auth.models import User
from school_admin.auth.security import create_access_token
from school_admin.db.session import Base, get_db
from school_admin.main import app


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

ADMIN_PHONE = "9876543210"
ACCOUNTANT_PHONE = "9876543211"
TEACHER_PHONE = "9876543212"


@pytest.fixture()
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Fresh in-memory database per test; the app shares the test's session."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:

        async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
            yield session

        app.dependency_overrides[get_db] = override_get_db
        yield session

    app.dependency_overrides.clear()
    await engine.dispose()


@pytest.fixture()
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


async def _create_user(db: AsyncSession, name: str, phone_number: str, role: str) -> User:
    user = User(name=name, phone_number=phone_number, role=role, is_active=True)
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


def _headers(user: User) -> dict:
    token = create_access_token(
        subject={"sub": str(user.id), "user_id": str(user.id), "role": user.role},
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
async def admin_user(db_session: AsyncSession) -> User:
    return await _create_user(db_session, "Admin", ADMIN_PHONE, "administrator")


@pytest.fixture()
async def accountant_user(db_session: AsyncSession) -> User:
    return await _create_user(db_session, "Accountant", ACCOUNTANT_PHONE, "accountant")


@pytest.fixture()
async def teacher_user(db_session: AsyncSession) -> User:
    return await _create_user(db_session, "Teacher", TEACHER_PHONE, "teacher")


@pytest.fixture()
def admin_headers(admin_user: User) -> dict:
    return _headers(admin_user)


@pytest.fixture()
def accountant_headers(accountant_user: User) -> dict:
    return _headers(accountant_user)


@pytest.fixture()
def teacher_headers(teacher_user: User) -> dict:
    return _headers(teacher_user)


# ----- Domain data (created through the API, returned as JSON) -----
@pytest.fixture()
async def current_year(client: AsyncClient, admin_headers: dict) -> dict:
    """2025-2026, June to March: ten fee months."""
    response = await client.post(
        "/api/v1/academic-years",
        json={
            "year_name": "2025-2026",
            "start_date": "2025-06-01",
            "end_date": "2026-03-31",
            "set_as_current": True,
        },
        headers=admin_headers,
    )
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture()
async def classes(client: AsyncClient, admin_headers: dict, current_year: dict) -> dict:
    """Classes UKG, 1 and 2 of the current year, keyed by name."""
    created = {}
    for order, name in enumerate(("UKG", "1", "2")):
        response = await client.post(
            "/api/v1/classes",
            json={"name": name, "display_order": order},
            headers=admin_headers,
        )
        assert response.status_code == 201, response.text
        created[name] = response.json()
    return created


@pytest.fixture()
async def village(client: AsyncClient, admin_headers: dict) -> dict:
    response = await client.post(
        "/api/v1/villages",
        json={"name": "Rampur", "distance_from_school": "4.5", "bus_number": "AP-01"},
        headers=admin_headers,
    )
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture()
def make_student(client: AsyncClient, admin_headers: dict):
    async def _make(admission_number: str = "A001", **overrides) -> dict:
        payload = {
            "admission_number": admission_number,
            "student_name": f"Student {admission_number}",
            "gender": "male",
            "father_name": "Father",
            "mother_name": "Mother",
            "address": "Main Road",
            "admission_date": "2025-06-01",
        }
        payload.update(overrides)
        response = await client.post("/api/v1/students", json=payload, headers=admin_headers)
        assert response.status_code == 201, response.text
        return response.json()

    return _make


@pytest.fixture()
async def fee_setup(client: AsyncClient, admin_headers: dict, current_year: dict, classes: dict, village: dict) -> dict:
    """
    Class 1: tuition 500 per month (5000 a year) plus a 1000 exam fee.
    Rampur: 300 per month bus fee (3000 a year).
    """
    tuition = await client.post(
        "/api/v1/fees/types",
        json={"name": "Tuition", "frequency": "monthly", "is_monthly": True},
        headers=admin_headers,
    )
    exam = await client.post("/api/v1/fees/types", json={"name": "Exam"}, headers=admin_headers)
    assert tuition.status_code == 201 and exam.status_code == 201

    class_id = classes["1"]["id"]
    structure = await client.put(
        "/api/v1/fees/structure",
        json={
            "lines": [
                {"class_id": class_id, "fee_type_id": tuition.json()["id"], "amount": "500", "is_recurring_monthly": True},
                {"class_id": class_id, "fee_type_id": exam.json()["id"], "amount": "1000"},
            ]
        },
        headers=admin_headers,
    )
    assert structure.status_code == 200, structure.text

    bus = await client.put(
        "/api/v1/fees/bus",
        json={"fees": [{"village_id": village["id"], "fee_amount": "300"}]},
        headers=admin_headers,
    )
    assert bus.status_code == 200, bus.text
    return {
        "year": current_year,
        "class": classes["1"],
        "village": village,
        "tuition_type": tuition.json(),
        "exam_type": exam.json(),
    }


@pytest.fixture()
async def bus_student(make_student, fee_setup: dict) -> dict:
    """Class 1 student on the Rampur bus: 3000 bus + 6000 school outstanding."""
    return await make_student(
        "B001",
        class_id=fee_setup["class"]["id"],
        village_id=fee_setup["village"]["id"],
        has_school_bus=True,
    )
