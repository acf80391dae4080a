"""
API integration tests for /api/webhooks endpoints.

These use the test HTTP client from conftest.py, which talks to the FastAPI
app wired with a temp SQLite store, the fake directory and the fixed clock.
No network, no scheduler thread.
"""

import pytest

from jobs.errors import RecoverableError


@pytest.mark.asyncio
async def test_candidate_webhook_schedules_job(client, store):
    response = await client.post("/api/webhooks/candidate", json={
        "id": 4455000001,
        "firstname": " Asha ",
        "lastname": "Rao",
        "joiningdate": "30-03-2026",
    })

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "scheduled"
    assert data["reason"] == "business-date"
    assert data["run_at"].startswith("2026-03-25T09:15:00")
    job = store.get_job(data["job_id"])
    assert job.correlation_id == "4455000001"
    assert job.payload["firstName"] == "Asha"


@pytest.mark.asyncio
async def test_candidate_webhook_twice_is_already_scheduled(client):
    body = {"candidateId": "C1", "firstName": "Asha", "lastName": "Rao", "joinDate": "30-03-2026"}

    first = (await client.post("/api/webhooks/candidate", json=body)).json()
    second = (await client.post("/api/webhooks/candidate", json=body)).json()

    assert second["status"] == "already_scheduled"
    assert second["job_id"] == first["job_id"]


@pytest.mark.asyncio
async def test_candidate_webhook_missing_name_is_400(client):
    response = await client.post("/api/webhooks/candidate", json={"id": "C1", "firstName": "Asha"})

    assert response.status_code == 400
    assert "lastName" in response.json()["detail"]


@pytest.mark.asyncio
async def test_offboard_future_exit_is_scheduled(client):
    response = await client.post("/api/webhooks/offboard", json={"employeeId": 1042, "exitDate": "2026-03-25"})

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "scheduled"
    assert data["run_at"].startswith("2026-03-25T08:50:00")


@pytest.mark.asyncio
async def test_offboard_past_exit_runs_immediately(client, directory):
    principal = directory.add("asha.rao@corp.example", business_id="1042", groups=("g1",))

    response = await client.post("/api/webhooks/offboard", json={"businessId": "1042", "exitDate": "01-03-2026"})

    data = response.json()
    assert data["status"] == "immediate"
    assert data["job_id"] is None
    assert data["result"]["action"] == "disabled"
    assert not directory.principals[principal.id].account_enabled


@pytest.mark.asyncio
async def test_offboard_echo_gets_cooldown(client, directory):
    directory.add("asha.rao@corp.example", business_id="1042")
    await client.post("/api/webhooks/offboard", json={"businessId": "1042"})

    response = await client.post("/api/webhooks/offboard", json={"businessId": "1042"})

    data = response.json()
    assert response.status_code == 200
    assert data["status"] == "cooldown_active"
    assert data["retry_after_seconds"] == 180


@pytest.mark.asyncio
async def test_offboard_unknown_principal_is_404(client):
    response = await client.post("/api/webhooks/offboard", json={"businessId": "9999"})
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_offboard_identifier_mismatch_is_409(client, directory):
    directory.add("someone@corp.example", business_id="2000", email="asha@example.org")

    response = await client.post("/api/webhooks/offboard", json={"businessId": "1042", "email": "asha@example.org"})

    assert response.status_code == 409


@pytest.mark.asyncio
async def test_offboard_directory_outage_is_502(client, directory):
    directory.add("asha.rao@corp.example", business_id="1042")
    directory.fail_on["disable_principal"] = RecoverableError("HTTP 503")

    response = await client.post("/api/webhooks/offboard", json={"businessId": "1042"})

    assert response.status_code == 502


@pytest.mark.asyncio
async def test_offboard_bad_action_is_400(client):
    response = await client.post("/api/webhooks/offboard", json={"businessId": "1042", "action": "archive"})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_offboard_null_action_defaults_to_disable(client, store):
    response = await client.post(
        "/api/webhooks/offboard",
        json={"businessId": "1042", "exitDate": "2026-03-25", "action": None},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "scheduled"
    assert store.get_job(data["job_id"]).job_type == "disableUser"


@pytest.mark.asyncio
async def test_employee_webhook_updates_profile(client, directory):
    principal = directory.add("asha.rao@corp.example", business_id="1042")
    manager = directory.add("boss@corp.example", business_id="7")

    response = await client.post("/api/webhooks/employee", json={
        "employeeId": 1042,
        "zohoRole": "Engineer",
        "manager": "Jane Boss 7",
    })

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "updated"
    assert data["result"]["fields"] == ["businessId", "jobTitle"]
    assert directory.managers[principal.id] == manager.id


@pytest.mark.asyncio
async def test_employee_webhook_unknown_is_404(client):
    response = await client.post("/api/webhooks/employee", json={"email": "nobody@example.org"})
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_employee_type_webhook_adds_alias(client, directory):
    principal = directory.add("asha.rao@corp.example", business_id="1042")

    response = await client.post("/api/webhooks/employee-type", json={"employeeId": 1042, "type": "Contractor Full-Time"})

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "updated"
    assert data["result"]["alias"] == "c-asha.rao@corp.example"
    assert directory.principals[principal.id].other_emails == ("c-asha.rao@corp.example",)


@pytest.mark.asyncio
async def test_employee_type_webhook_repeat_is_unchanged(client, directory):
    directory.add("asha.rao@corp.example", business_id="1042")
    body = {"employeeId": "1042", "type": "Intern Full-Time"}
    await client.post("/api/webhooks/employee-type", json=body)

    response = await client.post("/api/webhooks/employee-type", json=body)

    assert response.json()["status"] == "unchanged"
    assert response.json()["reason"] == "alias already present"


@pytest.mark.asyncio
async def test_employee_type_webhook_missing_type_is_400(client):
    response = await client.post("/api/webhooks/employee-type", json={"employeeId": "1042"})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_employee_type_webhook_unknown_is_404(client):
    response = await client.post("/api/webhooks/employee-type", json={"employeeId": "9999", "type": "Intern Full-Time"})
    assert response.status_code == 404
