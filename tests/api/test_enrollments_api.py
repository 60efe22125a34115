"""Tests for enrollment endpoints."""

from datetime import timedelta
from uuid import uuid4

from fastapi.testclient import TestClient

from learnpath.auth.permissions import UserRole
from learnpath.catalog.models import ContentType


class TestAuthentication:
    """Tests for token handling."""

    def test_missing_token(self, client: TestClient) -> None:
        response = client.get("/v1/enrollments")
        assert response.status_code == 401
        assert response.json()["message"] == "Access token not provided"
        assert response.headers["WWW-Authenticate"] == "Bearer"

    def test_invalid_token(self, client: TestClient) -> None:
        response = client.get(
            "/v1/enrollments", headers={"Authorization": "Bearer not-a-jwt"}
        )
        assert response.status_code == 401
        assert response.json()["message"] == "Invalid or expired token"

    def test_expired_token(self, client: TestClient, token_factory) -> None:
        token = token_factory(uuid4(), expires_in=timedelta(minutes=-1))
        response = client.get(
            "/v1/enrollments", headers={"Authorization": f"Bearer {token}"}
        )
        assert response.status_code == 401

    def test_refresh_token_rejected(self, client: TestClient, token_factory) -> None:
        token = token_factory(uuid4(), token_type="refresh")
        response = client.get(
            "/v1/enrollments", headers={"Authorization": f"Bearer {token}"}
        )
        assert response.status_code == 401


class TestEnrollmentLifecycle:
    """Tests for enroll, pause, resume, complete and drop."""

    def test_enroll_and_list(
        self, client: TestClient, api_catalog, auth_headers, module_factory
    ) -> None:
        module, _ = module_factory(api_catalog, [ContentType.VIDEO] * 2)
        headers = auth_headers(uuid4())

        response = client.post(
            "/v1/enrollments", json={"module_id": str(module.id)}, headers=headers
        )

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "active"
        assert data["progress_percentage"] == 0
        assert data["total_sections"] == 2

        listed = client.get("/v1/enrollments", headers=headers).json()
        assert listed["total"] == 1
        assert listed["items"][0]["id"] == data["id"]

        by_module = client.get(f"/v1/enrollments/module/{module.id}", headers=headers)
        assert by_module.status_code == 200
        assert by_module.json()["id"] == data["id"]

    def test_enroll_unknown_module(self, client: TestClient, auth_headers) -> None:
        response = client.post(
            "/v1/enrollments",
            json={"module_id": str(uuid4())},
            headers=auth_headers(uuid4()),
        )
        assert response.status_code == 404
        assert response.json()["code"] == "module_not_found"

    def test_enroll_twice_conflicts(
        self, client: TestClient, api_catalog, auth_headers, module_factory
    ) -> None:
        module, _ = module_factory(api_catalog, [ContentType.VIDEO])
        headers = auth_headers(uuid4())
        body = {"module_id": str(module.id)}

        client.post("/v1/enrollments", json=body, headers=headers)
        response = client.post("/v1/enrollments", json=body, headers=headers)

        assert response.status_code == 409
        assert response.json()["code"] == "already_enrolled"

    def test_pause_resume_complete(
        self, client: TestClient, api_catalog, auth_headers, module_factory
    ) -> None:
        module, _ = module_factory(api_catalog, [ContentType.VIDEO])
        headers = auth_headers(uuid4())
        enrollment_id = client.post(
            "/v1/enrollments", json={"module_id": str(module.id)}, headers=headers
        ).json()["id"]

        paused = client.put(f"/v1/enrollments/{enrollment_id}/pause", headers=headers)
        assert paused.json()["status"] == "paused"

        resumed = client.put(
            f"/v1/enrollments/{enrollment_id}/resume", headers=headers
        )
        assert resumed.json()["status"] == "active"

        completed = client.put(
            f"/v1/enrollments/{enrollment_id}/complete",
            json={"grade": "A", "feedback": "Great"},
            headers=headers,
        )
        assert completed.status_code == 200
        assert completed.json()["status"] == "completed"
        assert completed.json()["grade"] == "A"

        again = client.put(f"/v1/enrollments/{enrollment_id}/pause", headers=headers)
        assert again.status_code == 409
        assert again.json()["code"] == "invalid_transition"
        assert "completed" in again.json()["message"]

        dropped = client.delete(f"/v1/enrollments/{enrollment_id}", headers=headers)
        assert dropped.status_code == 409

    def test_drop_and_reenroll(
        self, client: TestClient, api_catalog, auth_headers, module_factory
    ) -> None:
        module, _ = module_factory(api_catalog, [ContentType.VIDEO])
        headers = auth_headers(uuid4())
        body = {"module_id": str(module.id)}
        enrollment_id = client.post(
            "/v1/enrollments", json=body, headers=headers
        ).json()["id"]

        dropped = client.delete(f"/v1/enrollments/{enrollment_id}", headers=headers)
        assert dropped.json()["status"] == "dropped"

        again = client.post("/v1/enrollments", json=body, headers=headers)
        assert again.status_code == 201
        assert again.json()["id"] == enrollment_id
        assert again.json()["status"] == "active"

    def test_unknown_enrollment(self, client: TestClient, auth_headers) -> None:
        response = client.get(
            f"/v1/enrollments/{uuid4()}", headers=auth_headers(uuid4())
        )
        assert response.status_code == 404
        assert response.json()["code"] == "enrollment_not_found"


class TestEnrollmentAccess:
    """Tests for owner and admin access."""

    def test_other_user_forbidden(
        self, client: TestClient, api_catalog, auth_headers, module_factory
    ) -> None:
        module, _ = module_factory(api_catalog, [ContentType.VIDEO])
        owner = auth_headers(uuid4())
        stranger = auth_headers(uuid4())
        enrollment_id = client.post(
            "/v1/enrollments", json={"module_id": str(module.id)}, headers=owner
        ).json()["id"]

        read = client.get(f"/v1/enrollments/{enrollment_id}", headers=stranger)
        pause = client.put(f"/v1/enrollments/{enrollment_id}/pause", headers=stranger)

        assert read.status_code == 403
        assert pause.status_code == 403
        assert pause.json()["code"] == "forbidden"

    def test_admin_lists_any_user(
        self, client: TestClient, api_catalog, auth_headers, module_factory
    ) -> None:
        module, _ = module_factory(api_catalog, [ContentType.VIDEO])
        student_id = uuid4()
        client.post(
            "/v1/enrollments",
            json={"module_id": str(module.id)},
            headers=auth_headers(student_id),
        )

        response = client.get(
            f"/v1/enrollments/user/{student_id}",
            headers=auth_headers(uuid4(), UserRole.ADMIN),
        )

        assert response.status_code == 200
        assert response.json()["total"] == 1

    def test_student_cannot_use_admin_listing(
        self, client: TestClient, auth_headers
    ) -> None:
        response = client.get(
            f"/v1/enrollments/user/{uuid4()}", headers=auth_headers(uuid4())
        )
        assert response.status_code == 403
