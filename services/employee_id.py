"""
Business (employee) id allocation for new hires that arrive without one.

Sources, first usable answer wins:
    1. HR system: last issued id + 1
    2. kv counter EMPLOYEE_ID_SEQ + 1
    3. directory: highest numeric employeeId + 1
    4. start at 1

Whatever is chosen is written to EMPLOYEE_ID_SEQ, so when the HR system is
unreachable the local counter keeps advancing from the last real value.
"""

import logging
from typing import Optional

from clients.directory import DirectoryClient
from clients.hr import HRClient
from jobs.errors import JobError, format_error
from store.job_store import JobStore

logger = logging.getLogger(__name__)

EMPLOYEE_ID_SEQ_KEY = "EMPLOYEE_ID_SEQ"


class BusinessIdAllocator:

    def __init__(self, store: JobStore, hr: Optional[HRClient], directory: DirectoryClient):
        self._store = store
        self._hr = hr
        self._directory = directory

    def allocate(self) -> str:
        if self._hr is not None:
            try:
                last = self._hr.last_business_id()
            except JobError as e:
                logger.warning(f"HR lookup of last employee id failed, falling back: {format_error(e)}")
                last = None
            if last is not None:
                return self._remember(last + 1, "hr")

        if self._store.get_kv(EMPLOYEE_ID_SEQ_KEY) is not None:
            value = self._store.bump_kv_int(EMPLOYEE_ID_SEQ_KEY)
            logger.warning(f"Employee id taken from local sequence: {value}")
            return str(value)

        highest = self._directory.max_business_id()
        if highest is not None:
            return self._remember(highest + 1, "directory")

        return self._remember(1, "default")

    def _remember(self, value: int, source: str) -> str:
        self._store.set_kv(EMPLOYEE_ID_SEQ_KEY, value)
        logger.info(f"Allocated employee id {value} (source={source})")
        return str(value)
