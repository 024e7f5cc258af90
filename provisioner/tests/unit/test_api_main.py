# Copyright 2026 icecake0141
# SPDX-License-Identifier: Apache-2.0
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
# This file was created or modified with the assistance of an AI (Large Language Model).
# Review required for correctness, security, and licensing.
"""API-level tests for the provisioner service (simulated sessions)."""

import time
from unittest.mock import Mock

from fastapi.testclient import TestClient

import provisioner.app.api.main as api_main

from provisioner.app.api.main import app


def create_target(client: TestClient, **overrides) -> str:
    payload = {"name": "web-1", "address": "203.0.113.10", "password": "secret"}
    payload.update(overrides)
    response = client.post("/api/targets", json=payload)
    assert response.status_code == 200
    return response.json()["target_id"]


def wait_for_terminal(client: TestClient, job_id: str, timeout: float = 5.0) -> dict:
    deadline = time.monotonic() + timeout
    while True:
        payload = client.get(f"/api/installations/{job_id}").json()
        if payload["status"] in {"succeeded", "failed"} or time.monotonic() > deadline:
            return payload
        time.sleep(0.02)


def test_health_endpoint():
    client = TestClient(app)
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_target_registration_hides_credentials():
    client = TestClient(app)
    response = client.post(
        "/api/targets",
        json={
            "name": "web-key",
            "address": "203.0.113.11",
            "private_key": "PEM",
            "password": "secret",
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert body["auth_methods"] == ["key", "password"]
    assert body["port"] == 22
    assert body["username"] == "root"
    assert "password" not in body
    assert "private_key" not in body
    listed = client.get("/api/targets").json()
    assert any(item["target_id"] == body["target_id"] for item in listed)


def test_target_requires_a_credential():
    client = TestClient(app)
    response = client.post(
        "/api/targets", json={"name": "bare", "address": "203.0.113.12"}
    )

    assert response.status_code == 422


def test_target_connectivity_check():
    client = TestClient(app)
    target_id = create_target(client)

    response = client.post(f"/api/targets/{target_id}/test")
    assert response.status_code == 200
    assert response.json() == {"ok": True, "error": None}

    assert client.post("/api/targets/missing/test").status_code == 404


def test_installation_runs_to_success():
    client = TestClient(app)
    target_id = create_target(client)

    response = client.post(
        "/api/installations",
        json={
            "target_id": target_id,
            "domain": "HTTPS://Example.COM/",
            "admin_email": "admin@example.com",
            "php_version": "8.2",
        },
    )
    assert response.status_code == 200
    created = response.json()
    assert created["domain"] == "example.com"
    assert created["php_version"] == "8.2"

    final = wait_for_terminal(client, created["id"])
    assert final["status"] == "succeeded"
    assert final["progress"] == 100
    assert final["current_step"] == "Completed"
    assert final["wp_admin_url"] == "https://example.com/wp-admin"
    assert final["db_name"] == "wp_example_com"
    assert "✓ Installing PHP 8.2" in final["log"]
    assert final["started_at"] is not None
    assert final["completed_at"] is not None

    listed = client.get("/api/installations").json()
    assert any(item["id"] == created["id"] for item in listed)


def test_duplicate_active_installation_is_rejected(monkeypatch):
    client = TestClient(app)
    target_id = create_target(client)
    monkeypatch.setattr(api_main.run_coordinator, "start", Mock(return_value=True))
    payload = {
        "target_id": target_id,
        "domain": "dup.example.com",
        "admin_email": "admin@example.com",
    }

    first = client.post("/api/installations", json=payload)
    second = client.post("/api/installations", json=payload)

    assert first.status_code == 200
    assert first.json()["status"] == "pending"
    assert second.status_code == 409


def test_installation_validation():
    client = TestClient(app)
    target_id = create_target(client)
    base = {
        "target_id": target_id,
        "domain": "valid.example.com",
        "admin_email": "admin@example.com",
    }

    for override in (
        {"domain": "not a domain"},
        {"domain": "localhost"},
        {"admin_email": "nobody"},
        {"php_version": "7.4"},
    ):
        response = client.post("/api/installations", json={**base, **override})
        assert response.status_code == 422, override


def test_installation_for_unknown_target_returns_404():
    client = TestClient(app)
    response = client.post(
        "/api/installations",
        json={
            "target_id": "missing",
            "domain": "example.org",
            "admin_email": "admin@example.org",
        },
    )

    assert response.status_code == 404


def test_unknown_installation_returns_404():
    client = TestClient(app)

    assert client.get("/api/installations/missing").status_code == 404


def test_target_detail_lists_installations_and_delete(monkeypatch):
    client = TestClient(app)
    target_id = create_target(client, name="web-detail")
    monkeypatch.setattr(api_main.run_coordinator, "start", Mock(return_value=True))
    created = client.post(
        "/api/installations",
        json={
            "target_id": target_id,
            "domain": "detail.example.com",
            "admin_email": "admin@example.com",
        },
    ).json()

    detail = client.get(f"/api/targets/{target_id}")
    assert detail.status_code == 200
    assert detail.json()["name"] == "web-detail"
    assert [item["id"] for item in detail.json()["installations"]] == [created["id"]]

    assert client.delete(f"/api/targets/{target_id}").status_code == 409

    api_main.service.fail_job(created["id"], "operator abort")
    assert client.delete(f"/api/targets/{target_id}").status_code == 204
    assert client.get(f"/api/targets/{target_id}").status_code == 404


def test_dashboard_counts():
    client = TestClient(app)

    response = client.get("/api/dashboard")

    assert response.status_code == 200
    body = response.json()
    assert body["total_installations"] == (
        body["succeeded"] + body["failed"] + body["in_progress"]
    )
    assert len(body["recent"]) <= 5
