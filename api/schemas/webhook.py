"""
Pydantic schemas for the /api/webhooks endpoints.

HR webhooks are loosely typed: ids arrive as numbers or strings, and the same
field shows up under several names depending on which HR form fired it
("firstName" / "firstname", "businessId" / "employeeId", ...). Every field
accepts those aliases and is coerced to a stripped string.

Required-ness is NOT enforced here: missing identifiers are reported by the
trigger service as a 400 with a readable message, not as a 422.
"""

from datetime import datetime
from typing import Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator

DEFAULT_OFFBOARD_ACTION = "disable"


def _alias(*names: str):
    return Field(default=None, validation_alias=AliasChoices(*names))


class _Webhook(BaseModel):
    model_config = {"extra": "ignore", "populate_by_name": True}

    @field_validator("*", mode="before")
    @classmethod
    def _to_str(cls, value):
        if value is None or isinstance(value, str):
            return value.strip() if isinstance(value, str) else value
        if isinstance(value, (int, float)):
            return str(value)
        return value


class CandidateWebhook(_Webhook):
    """POST /api/webhooks/candidate — a candidate was created or edited in HR."""

    correlation_id: Optional[str] = _alias("correlationId", "candidateId", "id")
    first_name: Optional[str] = _alias("firstName", "firstname")
    last_name: Optional[str] = _alias("lastName", "lastname")
    email: Optional[str] = _alias("email")
    business_id: Optional[str] = _alias("businessId", "employeeId")
    join_date: Optional[str] = _alias("joinDate", "joiningdate")
    employee_type: Optional[str] = _alias("employeeType", "employementType")
    domain: Optional[str] = _alias("domain")
    record_id: Optional[str] = _alias("recordId")

    def to_trigger(self) -> dict:
        return {
            "correlationId": self.correlation_id,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "email": self.email,
            "businessId": self.business_id,
            "joinDate": self.join_date,
            "employeeType": self.employee_type,
            "domain": self.domain,
            "recordId": self.record_id,
        }


class EmployeeWebhook(_Webhook):
    """POST /api/webhooks/employee — an employee profile was edited in HR."""

    principal_hint: Optional[str] = _alias("principalHint", "userPrincipalName", "upn", "Other_Email")
    email: Optional[str] = _alias("email")
    business_id: Optional[str] = _alias("businessId", "employeeId")
    first_name: Optional[str] = _alias("firstName", "firstname")
    last_name: Optional[str] = _alias("lastName", "lastname")
    employee_type: Optional[str] = _alias("employeeType", "employementType")
    department: Optional[str] = _alias("department")
    job_title: Optional[str] = _alias("jobTitle", "zohoRole")
    company: Optional[str] = _alias("company")
    country: Optional[str] = _alias("country")
    city: Optional[str] = _alias("city")
    mobile_phone: Optional[str] = _alias("mobilePhone")
    office_location: Optional[str] = _alias("officeLocation", "officelocation")
    join_date: Optional[str] = _alias("joinDate", "joiningdate")
    manager_business_id: Optional[str] = _alias("managerBusinessId")
    manager: Optional[str] = _alias("manager")

    def to_trigger(self) -> dict:
        manager_id = self.manager_business_id
        # "Jane Doe 1042" → 1042
        if not manager_id and self.manager:
            manager_id = self.manager.split()[-1]
        return {
            "principalHint": self.principal_hint,
            "email": self.email,
            "businessId": self.business_id,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "employeeType": self.employee_type,
            "department": self.department,
            "jobTitle": self.job_title,
            "company": self.company,
            "country": self.country,
            "city": self.city,
            "mobilePhone": self.mobile_phone,
            "officeLocation": self.office_location,
            "joinDate": self.join_date,
            "managerBusinessId": manager_id,
        }


class OffboardWebhook(_Webhook):
    """POST /api/webhooks/offboard — an exit was recorded in HR."""

    business_id: Optional[str] = _alias("businessId", "employeeId")
    email: Optional[str] = _alias("email")
    principal_hint: Optional[str] = _alias("principalHint", "userPrincipalName", "upn", "Other_Email")
    exit_date: Optional[str] = _alias("exitDate", "exitdate", "dateOfExit")
    action: Optional[str] = _alias("action", "mode")

    def to_trigger(self) -> dict:
        return {
            "businessId": self.business_id,
            "email": self.email,
            "principalHint": self.principal_hint,
            "exitDate": self.exit_date,
            "action": self.action or DEFAULT_OFFBOARD_ACTION,
        }


class EmployeeTypeWebhook(_Webhook):
    """POST /api/webhooks/employee-type — an employee's employment type changed in HR."""

    business_id: Optional[str] = _alias("businessId", "employeeId")
    employee_type: Optional[str] = _alias("employeeType", "type", "employementType")

    def to_trigger(self) -> dict:
        return {
            "businessId": self.business_id,
            "employeeType": self.employee_type,
        }


class TriggerResponse(BaseModel):
    """Acknowledgement for every webhook."""

    status: str
    job_id: Optional[str] = None
    run_at: Optional[datetime] = None
    reason: Optional[str] = None
    retry_after_seconds: Optional[float] = None
    superseded_job_id: Optional[str] = None
    result: dict = Field(default_factory=dict)
