"""
Directory (identity provider) client.

Handlers talk to DirectoryClient only. GraphDirectoryClient is the production
implementation against Microsoft Graph; tests use an in-memory fake with the
same interface.

Every method either returns plain data (Principal, ids, bools) or raises one
of the job errors from jobs/errors.py. "Not found" on a lookup is a normal
answer and comes back as None; "not found" on a mutation is a NotFoundError.
"""

import logging
import re
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

import httpx

from clients.http import DEFAULT_RETRY_POLICY, RetryPolicy, raise_for_job_error, send
from jobs.errors import RecoverableError, NotFoundError

logger = logging.getLogger(__name__)

_USER_SELECT = "id,userPrincipalName,mail,employeeId,accountEnabled,displayName,otherMails"

# Profile fields accepted by patch_principal → Graph user properties
PATCH_FIELD_MAP = {
    "firstName": "givenName",
    "lastName": "surname",
    "displayName": "displayName",
    "businessId": "employeeId",
    "hireDate": "employeeHireDate",
    "employeeType": "employeeType",
    "department": "department",
    "jobTitle": "jobTitle",
    "company": "companyName",
    "country": "country",
    "city": "city",
    "mobilePhone": "mobilePhone",
    "officeLocation": "officeLocation",
}


@dataclass(frozen=True)
class Principal:
    id: str
    principal_name: str
    email: Optional[str] = None
    business_id: Optional[str] = None
    account_enabled: bool = True
    display_name: Optional[str] = None
    other_emails: tuple[str, ...] = ()

    @classmethod
    def from_graph(cls, data: dict) -> "Principal":
        return cls(
            id=data["id"],
            principal_name=data.get("userPrincipalName") or "",
            email=data.get("mail"),
            business_id=_str_or_none(data.get("employeeId")),
            account_enabled=bool(data.get("accountEnabled", True)),
            display_name=data.get("displayName"),
            other_emails=tuple(data.get("otherMails") or ()),
        )

    def has_email(self, email: str) -> bool:
        wanted = email.strip().lower()
        known = [self.email or "", *self.other_emails]
        return any(e.strip().lower() == wanted for e in known if e)


@dataclass(frozen=True)
class NewPrincipal:
    principal_name: str
    mail_nickname: str
    first_name: str
    last_name: str
    business_id: Optional[str] = None
    email: Optional[str] = None
    employee_type: Optional[str] = None
    extra: dict = field(default_factory=dict)

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


def _str_or_none(value) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _escape_odata(value: str) -> str:
    return str(value).replace("'", "''")


def leading_number(value) -> Optional[int]:
    """First run of digits in `value` as an int, e.g. 'EMP0042' → 42."""
    match = re.search(r"\d+", str(value or ""))
    return int(match.group(0)) if match else None


class DirectoryClient(ABC):

    # ── Lookups ─────────────────────────────────────────────────

    @abstractmethod
    def find_by_business_id(self, business_id: str) -> Optional[Principal]: ...

    @abstractmethod
    def find_by_email(self, email: str) -> Optional[Principal]: ...

    @abstractmethod
    def find_by_principal_name(self, principal_name: str) -> Optional[Principal]: ...

    @abstractmethod
    def principal_name_available(self, principal_name: str, mail_nickname: str) -> bool: ...

    @abstractmethod
    def max_business_id(self) -> Optional[int]:
        """Highest numeric business id present in the directory, None if there are none."""

    @abstractmethod
    def is_in_deleted_items(self, principal_id: str) -> bool: ...

    @abstractmethod
    def list_group_ids(self, principal_id: str) -> list[str]: ...

    # ── Mutations ───────────────────────────────────────────────

    @abstractmethod
    def create_principal(self, new: NewPrincipal) -> Principal: ...

    @abstractmethod
    def patch_principal(self, principal_id: str, fields: dict) -> None: ...

    @abstractmethod
    def disable_principal(self, principal_id: str) -> None: ...

    @abstractmethod
    def delete_principal(self, principal_id: str) -> None: ...

    @abstractmethod
    def revoke_sessions(self, principal_id: str) -> None: ...

    @abstractmethod
    def remove_group_member(self, group_id: str, principal_id: str) -> None: ...

    @abstractmethod
    def remove_manager(self, principal_id: str) -> None: ...

    @abstractmethod
    def set_manager(self, principal_id: str, manager_id: str) -> None: ...

    @abstractmethod
    def set_other_emails(self, principal_id: str, emails: list[str]) -> None:
        """Replace the principal's secondary addresses with `emails`."""


class GraphDirectoryClient(DirectoryClient):
    """
    Microsoft Graph implementation.

    Auth is the client-credentials flow; the access token is cached until a
    minute before it expires and dropped on any 401 so the next call (usually
    the retry of the same job) fetches a fresh one.
    """

    TOKEN_URL = "https://login.microsoftonline.com/{tenant}/oauth2/v2.0/token"
    SCOPE = "https://graph.microsoft.com/.default"

    def __init__(
        self,
        tenant_id: str,
        client_id: str,
        client_secret: str,
        base_url: str = "https://graph.microsoft.com/v1.0",
        timeout: float = 15.0,
        temp_password: str = "",
        http_client: httpx.Client | None = None,
        retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    ):
        self._tenant_id = tenant_id
        self._client_id = client_id
        self._client_secret = client_secret
        self._base_url = base_url.rstrip("/")
        self._temp_password = temp_password
        self._http = http_client or httpx.Client(timeout=timeout)
        self._retry = retry_policy
        self._token: Optional[str] = None
        self._token_expires_at = 0.0
        self._token_lock = threading.Lock()

    def close(self) -> None:
        self._http.close()

    # ── Plumbing ────────────────────────────────────────────────

    def _access_token(self) -> str:
        with self._token_lock:
            if self._token and time.monotonic() < self._token_expires_at:
                return self._token
            response = send(
                self._http,
                "POST",
                self.TOKEN_URL.format(tenant=self._tenant_id),
                "directory token",
                retry=self._retry,
                idempotent=True,
                data={
                    "client_id": self._client_id,
                    "client_secret": self._client_secret,
                    "scope": self.SCOPE,
                    "grant_type": "client_credentials",
                },
            )
            raise_for_job_error(response, "directory token")
            body = response.json()
            self._token = body["access_token"]
            self._token_expires_at = time.monotonic() + max(int(body.get("expires_in", 3600)) - 60, 0)
            return self._token

    def _request(self, method: str, path: str, what: str, **kwargs) -> httpx.Response:
        url = path if path.startswith("http") else f"{self._base_url}{path}"
        headers = {"Authorization": f"Bearer {self._access_token()}", **kwargs.pop("headers", {})}
        response = send(self._http, method, url, what, retry=self._retry, headers=headers, **kwargs)
        if response.status_code == 401:
            self._token = None
            raise RecoverableError(f"{what}: unauthorized, token dropped")
        return response

    def _call(self, method: str, path: str, what: str, **kwargs) -> dict:
        response = self._request(method, path, what, **kwargs)
        raise_for_job_error(response, what)
        if response.status_code == 204 or not response.content:
            return {}
        return response.json()

    def _first_user(self, filter_expr: str, what: str) -> Optional[Principal]:
        data = self._call("GET", "/users", what, params={"$filter": filter_expr, "$select": _USER_SELECT})
        users = data.get("value") or []
        return Principal.from_graph(users[0]) if users else None

    # ── Lookups ─────────────────────────────────────────────────

    def find_by_business_id(self, business_id: str) -> Optional[Principal]:
        if not business_id:
            return None
        return self._first_user(f"employeeId eq '{_escape_odata(business_id)}'", "find by business id")

    def find_by_email(self, email: str) -> Optional[Principal]:
        if not email:
            return None
        e = _escape_odata(email.strip())
        return self._first_user(f"(mail eq '{e}') or (otherMails/any(c:c eq '{e}'))", "find by email")

    def find_by_principal_name(self, principal_name: str) -> Optional[Principal]:
        if not principal_name:
            return None
        return self._first_user(
            f"userPrincipalName eq '{_escape_odata(principal_name.strip())}'", "find by principal name"
        )

    def principal_name_available(self, principal_name: str, mail_nickname: str) -> bool:
        data = self._call(
            "GET",
            "/users",
            "principal name check",
            params={
                "$filter": (
                    f"(userPrincipalName eq '{_escape_odata(principal_name)}') or "
                    f"(mailNickname eq '{_escape_odata(mail_nickname)}')"
                ),
                "$select": "id",
            },
        )
        return not data.get("value")

    def max_business_id(self, max_scan: int = 50_000) -> Optional[int]:
        url = "/users"
        params = {"$select": "employeeId", "$top": "999"}
        highest = None
        scanned = 0
        while url and scanned < max_scan:
            data = self._call("GET", url, "scan business ids", params=params)
            batch = data.get("value") or []
            scanned += len(batch)
            for user in batch:
                number = leading_number(user.get("employeeId"))
                if number is not None and (highest is None or number > highest):
                    highest = number
            # nextLink already carries the query string
            url = data.get("@odata.nextLink")
            params = None
        return highest

    def is_in_deleted_items(self, principal_id: str) -> bool:
        try:
            self._call(
                "GET",
                f"/directory/deletedItems/microsoft.graph.user/{principal_id}",
                "deleted items check",
                params={"$select": "id"},
            )
        except NotFoundError:
            return False
        return True

    def list_group_ids(self, principal_id: str) -> list[str]:
        ids: list[str] = []
        url = f"/users/{principal_id}/memberOf"
        params = {"$select": "id"}
        while url:
            data = self._call("GET", url, "list group memberships", params=params)
            for entry in data.get("value") or []:
                if entry.get("@odata.type", "#microsoft.graph.group") == "#microsoft.graph.group":
                    ids.append(entry["id"])
            url = data.get("@odata.nextLink")
            params = None
        return ids

    # ── Mutations ───────────────────────────────────────────────

    def create_principal(self, new: NewPrincipal) -> Principal:
        body = {
            "accountEnabled": True,
            "displayName": new.display_name,
            "mailNickname": new.mail_nickname,
            "userPrincipalName": new.principal_name,
            "passwordProfile": {"forceChangePasswordNextSignIn": True, "password": self._temp_password},
            "givenName": new.first_name or None,
            "surname": new.last_name or None,
            "employeeId": new.business_id,
            "employeeType": new.employee_type,
            "otherMails": [new.email.strip()] if new.email else None,
        }
        body.update(_to_graph_fields(new.extra))
        body = {k: v for k, v in body.items() if v is not None}
        data = self._call("POST", "/users", "create principal", json=body)
        logger.info(f"Created directory principal {data.get('id')} ({new.principal_name})")
        return Principal.from_graph({**body, **data})

    def patch_principal(self, principal_id: str, fields: dict) -> None:
        body = _to_graph_fields(fields)
        if not body:
            return
        self._call("PATCH", f"/users/{principal_id}", "patch principal", json=body)

    def disable_principal(self, principal_id: str) -> None:
        self._call("PATCH", f"/users/{principal_id}", "disable principal", json={"accountEnabled": False})

    def delete_principal(self, principal_id: str) -> None:
        self._call("DELETE", f"/users/{principal_id}", "delete principal")

    def revoke_sessions(self, principal_id: str) -> None:
        self._call("POST", f"/users/{principal_id}/revokeSignInSessions", "revoke sessions", idempotent=True)

    def remove_group_member(self, group_id: str, principal_id: str) -> None:
        self._call("DELETE", f"/groups/{group_id}/members/{principal_id}/$ref", "remove group member")

    def remove_manager(self, principal_id: str) -> None:
        try:
            self._call("DELETE", f"/users/{principal_id}/manager/$ref", "remove manager")
        except NotFoundError:
            logger.info(f"Principal {principal_id} had no manager to remove")

    def set_manager(self, principal_id: str, manager_id: str) -> None:
        self._call(
            "PUT",
            f"/users/{principal_id}/manager/$ref",
            "set manager",
            json={"@odata.id": f"{self._base_url}/directoryObjects/{manager_id}"},
        )

    def set_other_emails(self, principal_id: str, emails: list[str]) -> None:
        self._call("PATCH", f"/users/{principal_id}", "set other mails", json={"otherMails": list(emails)})


def _to_graph_fields(fields: dict) -> dict:
    body = {}
    for key, value in (fields or {}).items():
        if value is None or (isinstance(value, str) and not value.strip()):
            continue
        graph_key = PATCH_FIELD_MAP.get(key)
        if graph_key is None:
            logger.debug(f"Ignoring unsupported profile field '{key}'")
            continue
        body[graph_key] = value.strip() if isinstance(value, str) else value
    if "email" in (fields or {}) and fields["email"]:
        body["otherMails"] = [str(fields["email"]).strip()]
    return body
