"""
Resolving the directory principal a job targets.

Offboarding carries up to three identifiers: business id, e-mail and a
principal-name hint. Lookup tries them in that order. A principal found by
e-mail or hint only counts if its business id equals the one in the payload;
otherwise an HR record could disable somebody else's account.

    found by business id                     → that principal
    found by e-mail / hint, ids match        → that principal
    found by e-mail / hint, ids differ       → PreconditionError (if nothing else matched)
    nothing found                            → NotFoundError
"""

import logging
from dataclasses import dataclass
from typing import Optional

from clients.directory import DirectoryClient, Principal
from jobs.errors import NotFoundError, PreconditionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Resolution:
    principal: Principal
    found_by: str


def _norm(value) -> str:
    return str(value or "").strip()


def resolve_principal(
    directory: DirectoryClient,
    business_id: Optional[str] = None,
    email: Optional[str] = None,
    principal_hint: Optional[str] = None,
) -> Resolution:
    business_id = _norm(business_id)
    email = _norm(email)
    principal_hint = _norm(principal_hint)

    if not (business_id or email or principal_hint):
        raise PreconditionError("no identifier given: need businessId, email or principalHint")

    if business_id:
        principal = directory.find_by_business_id(business_id)
        if principal is not None:
            return Resolution(principal, "businessId")

    mismatched: Optional[Principal] = None
    fallbacks = (
        ("email", email, directory.find_by_email),
        ("principalHint", principal_hint, directory.find_by_principal_name),
    )
    for found_by, value, lookup in fallbacks:
        if not value:
            continue
        principal = lookup(value)
        if principal is None:
            continue
        if not business_id or _norm(principal.business_id) == business_id:
            return Resolution(principal, found_by)
        logger.warning(
            f"Principal {principal.id} found by {found_by} has business id "
            f"{principal.business_id!r}, expected {business_id!r}"
        )
        mismatched = mismatched or principal

    if mismatched is not None:
        raise PreconditionError(
            f"business id mismatch: directory has {mismatched.business_id!r}, HR has {business_id!r}",
            detail={"principalId": mismatched.id},
        )
    raise NotFoundError(f"no directory principal for businessId={business_id or '-'}")


def find_principal(
    directory: DirectoryClient,
    principal_hint: Optional[str] = None,
    email: Optional[str] = None,
    business_id: Optional[str] = None,
) -> Optional[Resolution]:
    """
    Looser lookup for profile edits: principal name, then e-mail, then
    business id, first hit wins, no cross-check.
    """
    lookups = (
        ("principalHint", _norm(principal_hint), directory.find_by_principal_name),
        ("email", _norm(email), directory.find_by_email),
        ("businessId", _norm(business_id), directory.find_by_business_id),
    )
    for found_by, value, lookup in lookups:
        if value:
            principal = lookup(value)
            if principal is not None:
                return Resolution(principal, found_by)
    return None
