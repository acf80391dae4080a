"""
HR record system client (Zoho People).

Only two operations are needed by the engine:
- last_business_id(): the highest employee id the HR system has issued,
  used as the first source when allocating a new one
- update_record(): write fields (official e-mail, employee id) back onto a
  candidate record after the directory account exists

Zoho answers with HTTP 200 even for rejected writes; the real outcome is
response.status inside the body (0 = success).
"""

import json
import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from clients.directory import leading_number
from clients.http import DEFAULT_RETRY_POLICY, RetryPolicy, raise_for_job_error, send
from jobs.errors import RecoverableError, FatalError

logger = logging.getLogger(__name__)


class HRClient(ABC):

    @abstractmethod
    def last_business_id(self) -> Optional[int]:
        """Highest numeric employee id in the HR system, None if it cannot tell."""

    @abstractmethod
    def update_record(self, record_id: str, fields: dict) -> None: ...


def _rows(data) -> list:
    if isinstance(data, list):
        return data
    if not isinstance(data, dict):
        return []
    for candidate in (data.get("data"), (data.get("response") or {}).get("result"), data.get("records")):
        if isinstance(candidate, list):
            return candidate
        if isinstance(candidate, dict) and isinstance(candidate.get("records"), list):
            return candidate["records"]
    return []


class ZohoPeopleClient(HRClient):

    def __init__(
        self,
        base_url: str,
        token_url: str,
        client_id: str,
        client_secret: str,
        refresh_token: str,
        form_name: str = "Candidate",
        business_id_field: str = "Employee_ID",
        timeout: float = 15.0,
        http_client: httpx.Client | None = None,
        retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    ):
        self._base_url = base_url.rstrip("/")
        self._token_url = token_url
        self._client_id = client_id
        self._client_secret = client_secret
        self._refresh_token = refresh_token
        self._form_name = form_name
        self._business_id_field = business_id_field
        self._http = http_client or httpx.Client(timeout=timeout)
        self._retry = retry_policy
        self._token: Optional[str] = None
        self._token_expires_at = 0.0
        self._token_lock = threading.Lock()

    def close(self) -> None:
        self._http.close()

    def _access_token(self) -> str:
        with self._token_lock:
            if self._token and time.monotonic() < self._token_expires_at:
                return self._token
            if not (self._client_id and self._client_secret and self._refresh_token):
                raise FatalError("HR OAuth credentials are not configured")
            response = send(
                self._http,
                "POST",
                self._token_url,
                "HR token",
                retry=self._retry,
                idempotent=True,
                data={
                    "refresh_token": self._refresh_token,
                    "client_id": self._client_id,
                    "client_secret": self._client_secret,
                    "grant_type": "refresh_token",
                },
            )
            raise_for_job_error(response, "HR token")
            body = response.json()
            token = body.get("access_token")
            if not token:
                raise RecoverableError("HR token response missing access_token", detail=body)
            self._token = token
            self._token_expires_at = time.monotonic() + max(int(body.get("expires_in", 3600)) - 60, 30)
            return token

    def _request(self, method: str, path: str, what: str, **kwargs) -> dict:
        headers = {"Authorization": f"Zoho-oauthtoken {self._access_token()}"}
        url = f"{self._base_url}/{path.lstrip('/')}"
        response = send(self._http, method, url, what, retry=self._retry, headers=headers, **kwargs)
        if response.status_code == 401:
            self._token = None
            raise RecoverableError(f"{what}: unauthorized, token dropped")
        raise_for_job_error(response, what)
        return response.json() if response.content else {}

    def last_business_id(self) -> Optional[int]:
        data = self._request(
            "GET",
            "forms/P_EmployeeView/records",
            "HR last employee id",
            params={
                "page": 1,
                "perPage": 1,
                "sortColumn": self._business_id_field,
                "sortOrder": "desc",
            },
        )
        rows = _rows(data)
        if not rows:
            return None
        row = rows[0]
        for key in (self._business_id_field, "EmployeeID", "employeeId"):
            number = leading_number(row.get(key)) if isinstance(row, dict) else None
            if number is not None:
                return number
        return None

    def update_record(self, record_id: str, fields: dict) -> None:
        record_id = str(record_id or "").strip()
        if not record_id.isdigit():
            raise FatalError(f"HR record id must be numeric, got {record_id!r}")
        data = self._request(
            "POST",
            f"forms/json/{self._form_name}/updateRecord",
            "HR update record",
            data={"recordId": record_id, "inputData": json.dumps(fields)},
        )
        status = (data.get("response") or {}).get("status")
        if status != 0:
            raise FatalError(f"HR rejected update of record {record_id}", detail=data)
        logger.info(f"HR record {record_id} updated: {sorted(fields)}")
