"""
Error taxonomy for job handlers.

The executor only cares about one question: is retrying worth it?

    RecoverableError   network timeout, 429, 5xx        → retry with backoff
    FatalError         anything retrying cannot fix      → failed immediately
      NotFoundError      target principal does not exist
      PreconditionError  identifiers resolve to the wrong principal, bad payload

Any other exception escaping a handler is treated as recoverable: it is
retried until attempts run out.

format_error() produces the text stored in jobs.last_error and written to
logs: secrets and e-mail local parts redacted, length capped.
"""

import json
import re

MAX_ERROR_CHARS = 8000

SENSITIVE_KEYS = (
    "authorization", "cookie", "set-cookie", "password", "pass", "secret",
    "client_secret", "token", "access_token", "refresh_token", "api_key", "apikey",
)

_KEY_ALTERNATION = "|".join(re.escape(k) for k in sorted(SENSITIVE_KEYS, key=len, reverse=True))

# "password": "hunter2"  /  'token': 'abc'
_JSON_SECRET_RE = re.compile(
    rf"""(["']?(?:{_KEY_ALTERNATION})["']?\s*:\s*)(["'])(.*?)\2""", re.IGNORECASE
)
# password=hunter2  /  client_secret=abc&...
_KV_SECRET_RE = re.compile(rf"""\b((?:{_KEY_ALTERNATION})=)([^&\s,;"']+)""", re.IGNORECASE)
_BEARER_RE = re.compile(r"(Bearer\s+)[A-Za-z0-9\-._~+/]+=*", re.IGNORECASE)
_EMAIL_RE = re.compile(r"\b([A-Za-z0-9])[A-Za-z0-9._%+-]*(@[A-Za-z0-9.-]+\.[A-Za-z]{2,})\b")


class JobError(Exception):
    """Base class for errors raised by job handlers."""

    def __init__(self, message: str, detail=None):
        super().__init__(message)
        self.detail = detail


class RecoverableError(JobError):
    """Transient failure: the same call may succeed later."""


class FatalError(JobError):
    """Permanent failure for this job: retrying cannot change the outcome."""


class NotFoundError(FatalError):
    """The directory principal the job targets does not exist."""


class PreconditionError(FatalError):
    """The job's inputs are inconsistent (e.g. identifiers match different principals)."""


def redact(text: str) -> str:
    """Mask secrets, bearer tokens and e-mail local parts in free-form text."""
    text = _JSON_SECRET_RE.sub(lambda m: f"{m.group(1)}{m.group(2)}[redacted]{m.group(2)}", text)
    text = _KV_SECRET_RE.sub(r"\1[redacted]", text)
    text = _BEARER_RE.sub(r"\1[redacted]", text)
    text = _EMAIL_RE.sub(r"\1***\2", text)
    return text


def format_error(exc: BaseException, limit: int = MAX_ERROR_CHARS) -> str:
    """Redacted, length-capped description of `exc` for storage and logs."""
    detail = getattr(exc, "detail", None)
    message = str(exc) or exc.__class__.__name__
    text = f"{exc.__class__.__name__}: {message}"
    if detail is not None:
        if not isinstance(detail, str):
            try:
                detail = json.dumps(detail, default=str)
            except (TypeError, ValueError):
                detail = str(detail)
        text = f"{text} | {detail}"
    text = redact(text)
    if len(text) > limit:
        text = text[: limit - 1] + "…"
    return text
