"""
Key/value table used for two things:

- the EMPLOYEE_ID_SEQ counter (fallback source of new business ids)
- COOLDOWN_UNTIL:<correlationId> markers holding an ISO-8601 UTC expiry

Entries are upserted in place and never deleted.
"""

from datetime import datetime

from sqlalchemy import String, Text, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base


class KVEntry(Base):
    __tablename__ = "kv"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<KVEntry {self.key}={self.value!r}>"
