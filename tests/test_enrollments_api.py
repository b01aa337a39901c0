import pytest
from httpx import AsyncClient

pytestmark = pytest.mark.asyncio


class TestAdmit:
    """Tests for the admission endpoint."""

    async def test_enroll(self, client: AsyncClient, create_class):
        class_id = await create_class(max_students=2)

        response = await client.post(
            "/api/v1/enrollments", json={"class_id": class_id, "student_id": "S1"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["outcome"] == "admitted"
        assert data["status"] == "enrolled"
        assert data["seat_number"] == 1
        assert data["waitlist_position"] is None

    async def test_waitlist_when_full(self, client: AsyncClient, create_class):
        class_id = await create_class(max_students=1)
        await client.post(
            "/api/v1/enrollments", json={"class_id": class_id, "student_id": "S1"}
        )

        response = await client.post(
            "/api/v1/enrollments", json={"class_id": class_id, "student_id": "S2"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "waitlisted"
        assert data["waitlist_position"] == 1

    async def test_duplicate(self, client: AsyncClient, create_class):
        class_id = await create_class(max_students=2)
        payload = {"class_id": class_id, "student_id": "S1"}
        await client.post("/api/v1/enrollments", json=payload)

        response = await client.post("/api/v1/enrollments", json=payload)

        assert response.status_code == 409
        data = response.json()
        assert data["error_code"] == "ALREADY_ENROLLED"
        assert data["message"] == "Student already enrolled"

    async def test_unknown_class(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/enrollments", json={"class_id": "missing", "student_id": "S1"}
        )

        assert response.status_code == 404

    async def test_missing_fields(self, client: AsyncClient):
        response = await client.post("/api/v1/enrollments", json={"class_id": "c1"})

        assert response.status_code == 422


class TestDrop:
    """Tests for the drop endpoint."""

    async def test_drop_promotes(self, client: AsyncClient, create_class):
        class_id = await create_class(max_students=1)
        for student_id in ("S1", "W1"):
            await client.post(
                "/api/v1/enrollments", json={"class_id": class_id, "student_id": student_id}
            )

        response = await client.post(
            "/api/v1/enrollments/drop", json={"class_id": class_id, "student_id": "S1"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["promoted"] is True
        assert data["promoted_student_id"] == "W1"

    async def test_drop_not_enrolled(self, client: AsyncClient, create_class):
        class_id = await create_class(max_students=1)

        response = await client.post(
            "/api/v1/enrollments/drop", json={"class_id": class_id, "student_id": "S1"}
        )

        assert response.status_code == 409
        assert response.json()["error_code"] == "NOT_ENROLLED"


class TestComplete:
    async def test_complete(self, client: AsyncClient, create_class):
        class_id = await create_class(max_students=1)
        await client.post(
            "/api/v1/enrollments", json={"class_id": class_id, "student_id": "S1"}
        )

        response = await client.post(
            "/api/v1/enrollments/complete", json={"class_id": class_id, "student_id": "S1"}
        )

        assert response.status_code == 200
        assert response.json()["outcome"] == "completed"
