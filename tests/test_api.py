"""
Tests for Apostilab Backend API endpoints.

Tests cover:
- Health check
- Registration, login and logout
- Current user (profile, password change, account deletion)
- Apostila CRUD and ownership
- PDF rendering and export (with a fake renderer)
- Rate limiting and invalid request bodies
- Request ids and CORS
"""

from datetime import datetime
from uuid import uuid4

import pytest

from apostilab_backend import main, s3_service
from apostilab_backend.middleware import RateLimiter

from conftest import FAKE_PDF, make_credentials, register


class TestHealthCheck:
    """Tests for the /v1/health endpoint."""

    def test_health_check_returns_ok(self, client):
        response = client.get("/v1/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_request_id_is_echoed(self, client):
        response = client.get("/v1/health", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"

    def test_request_id_is_generated(self, client):
        response = client.get("/v1/health")
        assert response.headers.get("X-Request-ID")


class TestRegister:
    def test_register_returns_token(self, client):
        response = client.post("/v1/auth/register", json=make_credentials())
        assert response.status_code == 200

        data = response.json()
        assert set(data) == {"access_token", "expires_at", "issued_at"}
        lifetime = datetime.fromisoformat(data["expires_at"]) - datetime.fromisoformat(data["issued_at"])
        assert lifetime.total_seconds() == 60 * 60

    def test_register_requires_all_fields(self, client):
        credentials = make_credentials()
        credentials["name"] = ""
        response = client.post("/v1/auth/register", json=credentials)
        assert response.status_code == 400
        assert response.json()["detail"] == "name, email and password required"

    def test_register_missing_password(self, client):
        response = client.post("/v1/auth/register", json={"name": "Ana", "email": "ana@example.com"})
        assert response.status_code == 400

    def test_register_duplicate_email(self, client, registered_user):
        credentials = make_credentials()
        credentials["email"] = registered_user["email"].upper()
        response = client.post("/v1/auth/register", json=credentials)
        assert response.status_code == 400
        assert "already registered" in response.json()["detail"]


class TestLogin:
    def test_login_with_valid_credentials(self, client, registered_user):
        response = client.post(
            "/v1/auth/login",
            json={"email": registered_user["email"], "password": registered_user["password"]},
        )
        assert response.status_code == 200
        assert response.json()["access_token"]

    def test_login_email_is_case_insensitive(self, client, registered_user):
        response = client.post(
            "/v1/auth/login",
            json={"email": f"  {registered_user['email'].upper()} ", "password": registered_user["password"]},
        )
        assert response.status_code == 200

    def test_login_wrong_password(self, client, registered_user):
        response = client.post(
            "/v1/auth/login",
            json={"email": registered_user["email"], "password": "wrong"},
        )
        assert response.status_code == 401
        assert response.json()["detail"] == "unauthorized"

    def test_login_unknown_email(self, client):
        response = client.post(
            "/v1/auth/login",
            json={"email": "nobody@example.com", "password": "whatever"},
        )
        assert response.status_code == 401

    def test_login_empty_body(self, client):
        response = client.post("/v1/auth/login", json={})
        assert response.status_code == 401


class TestLogout:
    def test_logout_without_token(self, client):
        response = client.post("/v1/auth/logout")
        assert response.status_code == 204

    def test_logout_revokes_token(self, client, auth_headers):
        assert client.get("/v1/me", headers=auth_headers).status_code == 200

        response = client.post("/v1/auth/logout", headers=auth_headers)
        assert response.status_code == 204

        response = client.get("/v1/me", headers=auth_headers)
        assert response.status_code == 401
        assert "revoked" in response.json()["detail"]

    def test_logout_with_garbage_token(self, client):
        response = client.post("/v1/auth/logout", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 204


class TestMe:
    def test_fetch_user_data(self, client, registered_user, auth_headers):
        response = client.get("/v1/me", headers=auth_headers)
        assert response.status_code == 200

        data = response.json()
        assert data["email"] == registered_user["email"]
        assert data["name"] == registered_user["name"]
        assert "password" not in data
        assert {"id", "created_at", "updated_at"} <= set(data)

    def test_missing_authorization_header(self, client):
        response = client.get("/v1/me")
        assert response.status_code == 401
        assert response.json()["detail"] == "authorization header missing"

    def test_wrong_scheme(self, client, registered_user):
        response = client.get("/v1/me", headers={"Authorization": f"Token {registered_user['token']}"})
        assert response.status_code == 401
        assert response.json()["detail"] == "invalid authorization scheme"

    def test_lowercase_bearer_is_accepted(self, client, registered_user):
        response = client.get("/v1/me", headers={"Authorization": f"bearer {registered_user['token']}"})
        assert response.status_code == 200

    def test_invalid_token(self, client):
        response = client.get("/v1/me", headers={"Authorization": "Bearer abc.def.ghi"})
        assert response.status_code == 401


class TestChangePassword:
    def test_change_password(self, client, registered_user, auth_headers):
        response = client.patch(
            "/v1/me/password",
            json={"current_password": registered_user["password"], "new_password": "a new password"},
            headers=auth_headers,
        )
        assert response.status_code == 204

        old = client.post(
            "/v1/auth/login",
            json={"email": registered_user["email"], "password": registered_user["password"]},
        )
        assert old.status_code == 401

        new = client.post(
            "/v1/auth/login",
            json={"email": registered_user["email"], "password": "a new password"},
        )
        assert new.status_code == 200

    def test_change_password_wrong_current(self, client, auth_headers):
        response = client.patch(
            "/v1/me/password",
            json={"current_password": "nope", "new_password": "whatever"},
            headers=auth_headers,
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "current password is incorrect"

    def test_change_password_requires_auth(self, client):
        response = client.patch(
            "/v1/me/password",
            json={"current_password": "a", "new_password": "b"},
        )
        assert response.status_code == 401


class TestDeleteAccount:
    def test_delete_account(self, client, registered_user, auth_headers, apostila_id):
        response = client.delete("/v1/me", headers=auth_headers)
        assert response.status_code == 204

        assert client.get("/v1/me", headers=auth_headers).status_code == 401
        login = client.post(
            "/v1/auth/login",
            json={"email": registered_user["email"], "password": registered_user["password"]},
        )
        assert login.status_code == 401
        # Owned apostilas go with the account
        assert client.get(f"/v1/apostilas/{apostila_id}").status_code == 404


class TestApostilas:
    def test_add_apostila(self, client, auth_headers):
        new_id = str(uuid4())
        response = client.post("/v1/apostilas", json={"data": new_id}, headers=auth_headers)
        assert response.status_code == 200

        data = response.json()
        assert data["id"] == new_id
        assert data["edited_raw_html"] == ""
        assert isinstance(data["user_id"], int)

    def test_add_apostila_requires_auth(self, client):
        response = client.post("/v1/apostilas", json={"data": str(uuid4())})
        assert response.status_code == 401

    def test_add_apostila_invalid_uuid(self, client, auth_headers):
        response = client.post("/v1/apostilas", json={"data": "not-a-uuid"}, headers=auth_headers)
        assert response.status_code == 400

    def test_add_apostila_duplicate(self, client, auth_headers, apostila_id):
        response = client.post("/v1/apostilas", json={"data": apostila_id}, headers=auth_headers)
        assert response.status_code == 409

    def test_edited_html_defaults_to_empty(self, client, auth_headers, apostila_id):
        response = client.get("/v1/apostilas/edited", params={"id": apostila_id}, headers=auth_headers)
        assert response.status_code == 200
        assert response.json() == {"file": ""}

    def test_edit_and_get_edited_html(self, client, auth_headers, apostila_id, sample_html):
        response = client.put(
            "/v1/apostilas/edited",
            json={"data": {"id": apostila_id, "file": sample_html}},
            headers=auth_headers,
        )
        assert response.status_code == 200

        response = client.get("/v1/apostilas/edited", params={"id": apostila_id}, headers=auth_headers)
        assert response.json() == {"file": sample_html}

        response = client.get(f"/v1/apostilas/{apostila_id}")
        assert response.json()["edited_raw_html"] == sample_html

    def test_get_edited_html_requires_id(self, client, auth_headers):
        response = client.get("/v1/apostilas/edited", headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["detail"] == "id query parameter is required"

    def test_edit_someone_elses_apostila(self, client, other_auth_headers, apostila_id):
        response = client.put(
            "/v1/apostilas/edited",
            json={"data": {"id": apostila_id, "file": "<p>hijack</p>"}},
            headers=other_auth_headers,
        )
        assert response.status_code == 404

        response = client.get("/v1/apostilas/edited", params={"id": apostila_id}, headers=other_auth_headers)
        assert response.status_code == 404

    def test_edit_unknown_apostila(self, client, auth_headers):
        response = client.put(
            "/v1/apostilas/edited",
            json={"data": {"id": str(uuid4()), "file": "<p>x</p>"}},
            headers=auth_headers,
        )
        assert response.status_code == 404

    def test_list_apostilas_is_scoped_to_owner(self, client, auth_headers, other_auth_headers, apostila_id):
        mine = client.get("/v1/apostilas", headers=auth_headers)
        assert mine.status_code == 200
        assert [item["id"] for item in mine.json()] == [apostila_id]

        theirs = client.get("/v1/apostilas", headers=other_auth_headers)
        assert theirs.json() == []

    def test_get_apostila_is_public(self, client, apostila_id):
        response = client.get(f"/v1/apostilas/{apostila_id}")
        assert response.status_code == 200
        assert response.json()["id"] == apostila_id

    def test_get_apostila_rejects_invalid_token(self, client, apostila_id):
        response = client.get(f"/v1/apostilas/{apostila_id}", headers={"Authorization": "Bearer broken"})
        assert response.status_code == 401

    def test_get_apostila_not_found(self, client):
        response = client.get(f"/v1/apostilas/{uuid4()}")
        assert response.status_code == 404

    def test_get_apostila_bad_id(self, client):
        response = client.get("/v1/apostilas/12345")
        assert response.status_code == 400

    def test_delete_apostila(self, client, auth_headers, apostila_id):
        response = client.delete(f"/v1/apostilas/{apostila_id}", headers=auth_headers)
        assert response.status_code == 200
        assert response.json() == {"message": "apostila deleted successfully"}

        again = client.delete(f"/v1/apostilas/{apostila_id}", headers=auth_headers)
        assert again.status_code == 404

    def test_delete_someone_elses_apostila(self, client, other_auth_headers, apostila_id):
        response = client.delete(f"/v1/apostilas/{apostila_id}", headers=other_auth_headers)
        assert response.status_code == 404
        assert client.get(f"/v1/apostilas/{apostila_id}").status_code == 200


class TestRenderPdf:
    def test_render_pdf(self, client, fake_renderer, sample_html):
        response = client.post("/v1/apostilas/render-pdf", json={"data": {"html": sample_html}})
        assert response.status_code == 200
        assert response.content == FAKE_PDF
        assert response.headers["content-type"] == "application/pdf"
        assert response.headers["content-disposition"] == 'attachment; filename="apostila.pdf"'
        assert response.headers["content-length"] == str(len(FAKE_PDF))
        assert fake_renderer.rendered == [sample_html]

    def test_render_pdf_custom_filename(self, client, fake_renderer, sample_html):
        response = client.post(
            "/v1/apostilas/render-pdf",
            json={"data": {"html": sample_html, "filename": "Minha Apostila"}},
        )
        assert response.headers["content-disposition"] == 'attachment; filename="minha-apostila.pdf"'

    def test_render_pdf_empty_html(self, client, fake_renderer):
        response = client.post("/v1/apostilas/render-pdf", json={"data": {"html": "   "}})
        assert response.status_code == 400
        assert fake_renderer.rendered == []

    def test_render_pdf_invalid_input(self, client, fake_renderer):
        response = client.post("/v1/apostilas/render-pdf", json={"html": "<p>x</p>"})
        assert response.status_code == 400
        assert response.json() == {"detail": "Invalid input"}
        assert fake_renderer.rendered == []

    def test_render_pdf_empty_output(self, client, empty_renderer, sample_html):
        response = client.post("/v1/apostilas/render-pdf", json={"data": {"html": sample_html}})
        assert response.status_code == 500
        assert "empty PDF" in response.json()["detail"]


class TestInvalidBodies:
    def test_register_with_null_field(self, client):
        response = client.post("/v1/auth/register", json={"name": None, "email": "a@example.com", "password": "x"})
        assert response.status_code == 400
        assert response.json() == {"detail": "Invalid input"}

    def test_login_with_non_json_body(self, client):
        response = client.post(
            "/v1/auth/login", content=b"email=a@example.com", headers={"Content-Type": "application/json"}
        )
        assert response.status_code == 400
        assert response.json() == {"detail": "Invalid input"}

    def test_add_apostila_with_wrong_type(self, client, auth_headers):
        response = client.post("/v1/apostilas", json={"data": 123}, headers=auth_headers)
        assert response.status_code == 400
        assert response.json() == {"detail": "Invalid input"}


class TestRateLimit:
    @pytest.fixture
    def limited(self, monkeypatch):
        limiter = RateLimiter(requests_per_minute=2)
        monkeypatch.setattr(main, "rate_limiter", limiter)
        return limiter

    def test_limit_exceeded(self, client, fake_renderer, limited):
        payload = {"data": {"html": "<p>oi</p>"}}
        statuses = [client.post("/v1/apostilas/render-pdf", json=payload).status_code for _ in range(3)]
        assert statuses == [200, 200, 429]
        assert fake_renderer.rendered == ["<p>oi</p>", "<p>oi</p>"]

    def test_forwarded_headers_do_not_reset_the_limit(self, client, fake_renderer, limited):
        payload = {"data": {"html": "<p>oi</p>"}}
        statuses = [
            client.post(
                "/v1/apostilas/render-pdf",
                json=payload,
                headers={"X-Forwarded-For": f"10.0.{i}.1", "X-Real-IP": f"10.1.{i}.1"},
            ).status_code
            for i in range(10)
        ]
        assert statuses[:2] == [200, 200]
        assert set(statuses[2:]) == {429}
        assert len(limited.requests) == 1

    def test_login_is_limited(self, client, limited):
        credentials = {"email": "nobody@example.com", "password": "guess"}
        statuses = [client.post("/v1/auth/login", json=credentials).status_code for _ in range(3)]
        assert statuses == [401, 401, 429]


class TestExport:
    def _save_html(self, client, headers, apostila_id, html):
        response = client.put(
            "/v1/apostilas/edited",
            json={"data": {"id": apostila_id, "file": html}},
            headers=headers,
        )
        assert response.status_code == 200

    def test_export_stores_pdf(self, client, fake_renderer, auth_headers, apostila_id, sample_html):
        self._save_html(client, auth_headers, apostila_id, sample_html)

        response = client.post(f"/v1/apostilas/{apostila_id}/export", headers=auth_headers)
        assert response.status_code == 200
        assert response.content == FAKE_PDF
        assert fake_renderer.rendered == [sample_html]
        assert "X-Download-URL" not in response.headers

        stored = client.get(f"/v1/apostilas/{apostila_id}/pdf", headers=auth_headers)
        assert stored.status_code == 200
        assert stored.content == FAKE_PDF
        assert stored.headers["content-disposition"] == f'attachment; filename="apostila-{apostila_id}.pdf"'

    def test_export_without_html(self, client, fake_renderer, auth_headers, apostila_id):
        response = client.post(f"/v1/apostilas/{apostila_id}/export", headers=auth_headers)
        assert response.status_code == 400
        assert fake_renderer.rendered == []

    def test_export_archives_to_s3(self, client, fake_renderer, auth_headers, apostila_id, sample_html, monkeypatch):
        uploads = []

        def fake_upload(pdf, key):
            uploads.append((pdf, key))
            return True

        monkeypatch.setattr(s3_service, "upload_pdf", fake_upload)
        monkeypatch.setattr(s3_service, "generate_presigned_url", lambda key: f"https://s3.example.com/{key}")
        self._save_html(client, auth_headers, apostila_id, sample_html)

        response = client.post(f"/v1/apostilas/{apostila_id}/export", headers=auth_headers)
        assert response.status_code == 200
        assert len(uploads) == 1
        pdf, key = uploads[0]
        assert pdf == FAKE_PDF
        assert key.startswith("apostilas/") and key.endswith(f"/{apostila_id}.pdf")
        assert response.headers["X-Download-URL"] == f"https://s3.example.com/{key}"

    def test_export_someone_elses_apostila(self, client, fake_renderer, other_auth_headers, apostila_id):
        response = client.post(f"/v1/apostilas/{apostila_id}/export", headers=other_auth_headers)
        assert response.status_code == 404

    def test_pdf_before_export(self, client, auth_headers, apostila_id):
        response = client.get(f"/v1/apostilas/{apostila_id}/pdf", headers=auth_headers)
        assert response.status_code == 404

    def test_export_render_failure(self, client, empty_renderer, auth_headers, apostila_id, sample_html):
        self._save_html(client, auth_headers, apostila_id, sample_html)
        response = client.post(f"/v1/apostilas/{apostila_id}/export", headers=auth_headers)
        assert response.status_code == 500

        stored = client.get(f"/v1/apostilas/{apostila_id}/pdf", headers=auth_headers)
        assert stored.status_code == 404


class TestCORS:
    def test_preflight_from_allowed_origin(self, client):
        response = client.options(
            "/v1/health",
            headers={
                "Origin": "http://localhost:5173",
                "Access-Control-Request-Method": "GET",
            },
        )
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "http://localhost:5173"
        assert response.headers["access-control-allow-credentials"] == "true"

    def test_preflight_from_unknown_origin(self, client):
        response = client.options(
            "/v1/health",
            headers={
                "Origin": "http://evil.example.com",
                "Access-Control-Request-Method": "GET",
            },
        )
        assert response.status_code == 400
