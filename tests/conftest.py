"""Pytest configuration and a mock scheduling API served via httpx.MockTransport."""

import sys
from pathlib import Path

import httpx
import pytest

# Ensure the project root is in sys.path for proper imports
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from loadwright.config import RunConfig  # noqa: E402

BASE_URL = "http://api.test"
TOKEN = "t"


def make_api(
    *,
    patients=None,
    patient_status: int = 200,
    register_status: int = 409,
    protected=(),
):
    """Build a request handler imitating the appointments/patients API."""
    if patients is None:
        patients = [{"id": 7, "name": "Ada"}]

    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        auth = request.headers.get("authorization", "")

        if request.method == "OPTIONS":
            return httpx.Response(204)
        if path == "/register":
            return httpx.Response(register_status, json={"error": "user exists"})
        if path == "/login":
            return httpx.Response(200, json={"token": TOKEN, "user": {"id": 1}})
        if path == "/healthz":
            return httpx.Response(200, json={"status": "ok"})
        if any(path.startswith(p) for p in protected) and auth != f"Bearer {TOKEN}":
            return httpx.Response(401, json={"error": "unauthorized"})
        if path == "/patients/search":
            return httpx.Response(200, json=patients)
        if path.startswith("/patients/"):
            if patient_status != 200:
                return httpx.Response(patient_status, json={"error": "not found"})
            return httpx.Response(200, json=patients[0] if patients else {})
        if path == "/business-hours":
            return httpx.Response(200, json=[{"day": 1, "open": "09:00", "close": "17:00"}])
        if path.startswith("/appointments"):
            return httpx.Response(200, json=[])
        return httpx.Response(404, json={"error": "no route"})

    return handler


@pytest.fixture(autouse=True)
def _no_proxy_env(monkeypatch):
    # Environment proxies would bypass the mock transport.
    for name in ("HTTP_PROXY", "HTTPS_PROXY", "ALL_PROXY", "http_proxy", "https_proxy", "all_proxy"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config(tmp_path):
    return RunConfig(base_url=BASE_URL, username="tester", out_dir=tmp_path)


@pytest.fixture
def api_transport():
    return httpx.MockTransport(make_api())
