"""
Alert deduplication ledger.

Gates re-sends so each (domain, kind, threshold, calendar day) notification
goes out at most once. Uniqueness is enforced by the repository's
insert-if-absent operation; a duplicate insert is a successful no-op.
"""

import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Callable, Optional

from .enums import AlertKind, LedgerWriteStatus
from .models import AlertRecord
from .state_store import Repository


@dataclass
class LedgerWrite:
    """Outcome of recording an alert."""

    status: LedgerWriteStatus
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        """Inserted and duplicate both mean the ledger holds the row."""
        return self.status is not LedgerWriteStatus.FAILED


class AlertLedger:
    """Read and write access to the alert dedup ledger."""

    def __init__(
        self,
        repository: Repository,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._repository = repository
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def was_already_sent(
        self, domain_id: str, kind: AlertKind, threshold_days: int, today: date
    ) -> bool:
        """Return True if an alert with this dedup key exists."""
        record = await self._repository.find_alert(domain_id, kind, threshold_days, today)
        return record is not None

    async def record(
        self,
        domain_id: str,
        account_id: str,
        kind: AlertKind,
        threshold_days: int,
        today: date,
    ) -> LedgerWrite:
        """
        Record that an alert was sent.

        Never raises; a storage failure is returned as a FAILED write.
        """
        record = AlertRecord(
            id=str(uuid.uuid4()),
            domain_id=domain_id,
            account_id=account_id,
            kind=kind,
            threshold_days=threshold_days,
            sent_date=today,
            sent_at=self._clock(),
        )
        try:
            already_existed = await self._repository.insert_alert_if_absent(record)
        except Exception as e:
            return LedgerWrite(LedgerWriteStatus.FAILED, str(e))

        if already_existed:
            return LedgerWrite(LedgerWriteStatus.DUPLICATE)
        return LedgerWrite(LedgerWriteStatus.INSERTED)
