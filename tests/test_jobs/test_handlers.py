"""
Tests for the three job handlers against the in-memory directory.
"""

import pytest

from jobs.create_from_candidate import (
    CreateFromCandidateJob,
    employee_type_prefix,
    mail_nickname,
    unique_principal_name,
)
from jobs.delete_user import DeleteUserJob
from jobs.disable_user import DisableUserJob
from jobs.errors import NotFoundError, PreconditionError, RecoverableError
from scheduler.dedup import cooldown_key
from services.employee_id import EMPLOYEE_ID_SEQ_KEY, BusinessIdAllocator

CANDIDATE = {
    "correlationId": "C1",
    "firstName": "Asha",
    "lastName": "Rao",
    "email": "asha.personal@example.org",
    "joinDate": "20-04-2026",
}


@pytest.fixture
def create_job(store, directory, hr, dedup, clock):
    allocator = BusinessIdAllocator(store, hr, directory)
    return CreateFromCandidateJob(directory, hr, allocator, dedup, "corp.example", clock=clock)


# ── helpers ─────────────────────────────────────────────────────

def test_mail_nickname_strips_and_lowercases():
    assert mail_nickname("Anne-Marie ", "O'Neil") == "annemarie.oneil"
    assert mail_nickname("José", "Núñez") == "jos.nez"
    assert mail_nickname("", "") == ""


def test_employee_type_prefix():
    assert employee_type_prefix("Contractor") == "c-"
    assert employee_type_prefix("Summer Intern") == "i-"
    assert employee_type_prefix("Permanent") == ""
    assert employee_type_prefix(None) == ""


def test_unique_principal_name_appends_suffix(directory):
    directory.add("asha.rao@corp.example")
    directory.add("asha.rao1@corp.example")

    assert unique_principal_name(directory, "asha.rao", "corp.example") == ("asha.rao2@corp.example", "asha.rao2")


# ── createFromCandidate ─────────────────────────────────────────

def test_create_allocates_id_and_writes_back(create_job, directory, hr, store, clock):
    hr.last_id = 1041

    result = create_job.run(dict(CANDIDATE))

    assert result["action"] == "created"
    assert result["businessId"] == "1042"
    assert result["principalName"] == "asha.rao@corp.example"
    assert result["failedSteps"] == []
    assert [s["name"] for s in result["steps"]] == ["set hire date", "write back to HR", "set cooldown"]

    created = directory.principals[result["principalId"]]
    assert created.business_id == "1042"
    assert directory.patches == [(created.id, {"hireDate": "2026-04-20T00:00:00Z"})]
    assert hr.updates == [("C1", {"Other_Email": "asha.rao@corp.example", "Employee_ID": "1042"})]
    assert store.get_kv(EMPLOYEE_ID_SEQ_KEY) == "1042"
    assert store.get_kv(cooldown_key("C1")) is not None


def test_create_uses_record_id_for_write_back(create_job, hr):
    hr.last_id = 10

    create_job.run({**CANDIDATE, "recordId": "4455000001"})

    assert hr.updates[0][0] == "4455000001"


def test_create_is_idempotent_when_principal_exists(create_job, directory, store):
    existing = directory.add("asha.rao@corp.example", business_id="1042", email="asha.personal@example.org")

    result = create_job.run({**CANDIDATE, "businessId": "1042"})

    assert result["action"] == "already_exists"
    assert result["principalId"] == existing.id
    assert directory.called("create_principal") == []
    assert [s["name"] for s in result["steps"]] == ["set cooldown"]
    assert store.get_kv(cooldown_key("C1")) is not None


def test_create_matches_existing_by_email(create_job, directory):
    existing = directory.add("someone@corp.example", email="asha.personal@example.org")

    result = create_job.run(dict(CANDIDATE))

    assert result["action"] == "already_exists"
    assert result["principalId"] == existing.id


def test_create_prefixes_contractor_and_avoids_taken_name(create_job, directory, hr):
    hr.last_id = 7
    directory.add("c-asha.rao@corp.example")

    result = create_job.run({**CANDIDATE, "employeeType": "Contractor"})

    assert result["principalName"] == "c-asha.rao1@corp.example"


def test_create_hr_outage_falls_back_and_records_failed_write_back(create_job, hr, directory):
    hr.fail_with = RecoverableError("HR down")

    result = create_job.run(dict(CANDIDATE))

    assert result["action"] == "created"
    assert result["businessId"] == "1"
    assert result["failedSteps"] == ["write back to HR"]
    assert len(directory.called("create_principal")) == 1


def test_create_requires_names(create_job):
    with pytest.raises(PreconditionError):
        create_job.run({"correlationId": "C1", "firstName": "Asha"})


def test_create_without_hr_client(store, directory, dedup, clock):
    allocator = BusinessIdAllocator(store, None, directory)
    job = CreateFromCandidateJob(directory, None, allocator, dedup, "corp.example", clock=clock)

    result = job.run({**CANDIDATE, "joinDate": None})

    assert result["businessId"] == "1"
    assert [s["name"] for s in result["steps"]] == ["set cooldown"]


# ── disableUser ─────────────────────────────────────────────────

def test_disable_runs_all_cleanup_steps(directory, dedup, clock, store):
    principal = directory.add("asha.rao@corp.example", business_id="1042", groups=("g1", "g2"))
    directory.managers[principal.id] = "p-boss"

    result = DisableUserJob(directory, dedup, clock=clock).run({"businessId": "1042"})

    assert result["action"] == "disabled"
    assert result["foundBy"] == "businessId"
    assert result["failedSteps"] == []
    assert not directory.principals[principal.id].account_enabled
    assert directory.called("revoke_sessions") == [("revoke_sessions", principal.id)]
    assert directory.groups[principal.id] == set()
    assert principal.id not in directory.managers
    assert store.get_kv(cooldown_key("1042")) is not None


def test_disable_partial_group_failure_still_succeeds(directory, dedup, clock):
    principal = directory.add("asha.rao@corp.example", business_id="1042", groups=("g1",))
    directory.fail_on["remove_group_member"] = RecoverableError("HTTP 503")

    result = DisableUserJob(directory, dedup, clock=clock).run({"businessId": "1042"})

    assert result["action"] == "disabled"
    assert result["failedSteps"] == ["remove group memberships"]
    assert not directory.principals[principal.id].account_enabled


def test_disable_primary_failure_raises(directory, dedup, clock):
    directory.add("asha.rao@corp.example", business_id="1042")
    directory.fail_on["disable_principal"] = RecoverableError("HTTP 503")

    with pytest.raises(RecoverableError):
        DisableUserJob(directory, dedup, clock=clock).run({"businessId": "1042"})


def test_disable_unknown_principal(directory, dedup, clock):
    with pytest.raises(NotFoundError):
        DisableUserJob(directory, dedup, clock=clock).run({"businessId": "9999"})


# ── deleteUser ──────────────────────────────────────────────────

def test_delete_revokes_then_deletes_and_verifies(directory, dedup, clock):
    principal = directory.add("asha.rao@corp.example", business_id="1042")

    result = DeleteUserJob(directory, dedup, clock=clock).run({"businessId": "1042"})

    assert result["action"] == "deleted"
    assert [c[0] for c in directory.calls] == ["revoke_sessions", "delete_principal"]
    assert principal.id in directory.deleted
    assert [s["name"] for s in result["steps"]] == ["revoke sessions", "verify deleted", "set cooldown"]
    assert result["failedSteps"] == []


def test_delete_revoke_failure_does_not_block_delete(directory, dedup, clock):
    principal = directory.add("asha.rao@corp.example", business_id="1042")
    directory.fail_on["revoke_sessions"] = RecoverableError("HTTP 500")

    result = DeleteUserJob(directory, dedup, clock=clock).run({"businessId": "1042"})

    assert principal.id in directory.deleted
    assert result["failedSteps"] == ["revoke sessions"]
