"""
Pytest configuration and fixtures for Apostilab Backend tests.
"""

import os
import shutil
import tempfile
from pathlib import Path
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

# Set test environment variables before importing the app
_TEST_DATA_DIR = tempfile.mkdtemp(prefix="apostilab_test_")
os.environ["DATABASE_PATH"] = str(Path(_TEST_DATA_DIR) / "apostilab.db")
os.environ["JWT_SECRET"] = "test-jwt-secret-12345"
os.environ["RATE_LIMIT_PER_MINUTE"] = "0"
os.environ["S3_BUCKET_NAME"] = ""

from apostilab_backend.errors import EmptyPdfError
from apostilab_backend.main import app, get_pdf_renderer

FAKE_PDF = b"%PDF-1.4\n% fake apostila\n%%EOF"


class FakeRenderer:
    """Stands in for headless Chromium; records the HTML it was asked to render."""

    def __init__(self, pdf: bytes = FAKE_PDF, error: Exception = None):
        self.pdf = pdf
        self.error = error
        self.rendered = []

    def render(self, html: str) -> bytes:
        self.rendered.append(html)
        if self.error is not None:
            raise self.error
        return self.pdf


@pytest.fixture(scope="session", autouse=True)
def test_data_dir():
    """Remove the temporary database after the session."""
    yield _TEST_DATA_DIR
    shutil.rmtree(_TEST_DATA_DIR, ignore_errors=True)


@pytest.fixture
def client():
    """Create a test client for the FastAPI app."""
    return TestClient(app)


@pytest.fixture
def fake_renderer():
    renderer = FakeRenderer()
    app.dependency_overrides[get_pdf_renderer] = lambda: renderer
    yield renderer
    app.dependency_overrides.pop(get_pdf_renderer, None)


@pytest.fixture
def empty_renderer():
    renderer = FakeRenderer(error=EmptyPdfError("empty PDF: the HTML did not render any content"))
    app.dependency_overrides[get_pdf_renderer] = lambda: renderer
    yield renderer
    app.dependency_overrides.pop(get_pdf_renderer, None)


def make_credentials(name: str = "Ana Souza") -> dict:
    return {
        "name": name,
        "email": f"user-{uuid4().hex[:12]}@example.com",
        "password": "correct horse battery staple",
    }


def register(client, credentials: dict) -> dict:
    response = client.post("/v1/auth/register", json=credentials)
    assert response.status_code == 200, response.text
    return {**credentials, "token": response.json()["access_token"]}


@pytest.fixture
def registered_user(client):
    """A freshly registered user with a valid access token."""
    return register(client, make_credentials())


@pytest.fixture
def auth_headers(registered_user):
    return {"Authorization": f"Bearer {registered_user['token']}"}


@pytest.fixture
def other_auth_headers(client):
    """Headers for a second, unrelated user."""
    user = register(client, make_credentials(name="Bruno Lima"))
    return {"Authorization": f"Bearer {user['token']}"}


@pytest.fixture
def apostila_id(client, auth_headers):
    """An apostila owned by the registered user."""
    new_id = str(uuid4())
    response = client.post("/v1/apostilas", json={"data": new_id}, headers=auth_headers)
    assert response.status_code == 200, response.text
    return new_id


@pytest.fixture
def sample_html():
    """An apostila page with the interactive bits the PDF cleanup removes."""
    return """<!DOCTYPE html>
<html lang="pt-BR">
<head>
  <meta charset="utf-8"/>
  <title>Apostila de Teste</title>
</head>
<body class="dark">
  <div class="controls"><button>A+</button></div>
  <h2 role="button" aria-expanded="false">Capítulo 1 <span class="toggle-icon">▼</span></h2>
  <button class="ouvir">Ouvir</button>
  <div class="content" hidden>
    <p>Conteúdo do capítulo.</p>
    <details class="spoiler"><summary>Resposta</summary><p>42</p></details>
  </div>
  <script>console.log("editor");</script>
</body>
</html>"""
