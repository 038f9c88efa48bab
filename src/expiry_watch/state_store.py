"""
State Store module for monitored domains, check history and the alert ledger.

This module defines the Repository protocol the engine talks to and a
file-backed implementation with HMAC protection, ensuring data integrity
and detecting tampering. The alert ledger's uniqueness rule is enforced
here as a single insert-if-absent step.
"""

import asyncio
import hashlib
import hmac
import json
import threading
import uuid
from contextlib import contextmanager
from dataclasses import replace
from datetime import date, datetime, timezone
from functools import partial
from pathlib import Path
from typing import Callable, Iterator, Optional, Protocol

from .enums import AlertKind, CertStatus, PlanId, RegistrationStatus
from .exceptions import (
    DuplicateDomainError,
    NotFoundError,
    PersistenceError,
    TamperingError,
)
from .models import (
    Account,
    AlertRecord,
    CheckHistoryRecord,
    DomainProbe,
    MonitoredDomain,
    NotificationPreference,
)


class Repository(Protocol):
    """Persistence operations the check-and-alert engine relies on."""

    async def list_domains(self) -> list[MonitoredDomain]: ...

    async def get_domain(self, domain_id: str) -> Optional[MonitoredDomain]: ...

    async def find_domain_by_name(
        self, account_id: str, domain_name: str
    ) -> Optional[MonitoredDomain]: ...

    async def count_domains(self, account_id: str) -> int: ...

    async def add_domain(self, account_id: str, domain_name: str) -> MonitoredDomain: ...

    async def add_checked_domain(
        self, account_id: str, domain_name: str, probe: DomainProbe
    ) -> tuple[MonitoredDomain, CheckHistoryRecord]: ...

    async def delete_domain(self, domain_id: str) -> bool: ...

    async def apply_check(
        self, domain_id: str, probe: DomainProbe
    ) -> tuple[MonitoredDomain, CheckHistoryRecord]: ...

    async def get_history(self, domain_id: str, limit: int = 30) -> list[CheckHistoryRecord]: ...

    async def insert_alert_if_absent(self, record: AlertRecord) -> bool: ...

    async def find_alert(
        self, domain_id: str, kind: AlertKind, threshold_days: int, sent_date: date
    ) -> Optional[AlertRecord]: ...

    async def get_account(self, account_id: str) -> Optional[Account]: ...

    async def get_notification_preference(
        self, account_id: str
    ) -> Optional[NotificationPreference]: ...

    async def set_public_token(
        self, domain_id: str, token: Optional[str]
    ) -> MonitoredDomain: ...

    async def get_by_public_token(self, token: str) -> Optional[MonitoredDomain]: ...


def apply_probe(domain: MonitoredDomain, probe: DomainProbe) -> MonitoredDomain:
    """Return a copy of the domain record carrying the probe outcome."""
    return replace(
        domain,
        cert_expiry=probe.cert.expiry,
        cert_status=probe.cert.status,
        cert_issuer=probe.cert.issuer,
        registration_expiry=probe.registration.expiry,
        registration_status=probe.registration.status,
        registrar=probe.registration.registrar,
        last_checked=probe.checked_at,
    )


def history_from_probe(record_id: str, domain_id: str, probe: DomainProbe) -> CheckHistoryRecord:
    return CheckHistoryRecord(
        id=record_id,
        domain_id=domain_id,
        cert_status=probe.cert.status,
        registration_status=probe.registration.status,
        cert_expiry=probe.cert.expiry,
        registration_expiry=probe.registration.expiry,
        checked_at=probe.checked_at,
    )


class StateStore:
    """
    Persistent state storage with HMAC protection.

    Every mutation is written through to disk. With ``file_path=None`` the
    store is memory-only. All operations are serialized by one lock, which
    makes the alert insert-if-absent atomic across concurrent runs in the
    same process. A mutation whose save fails leaves memory exactly as it
    was before the call. File writes run in the default executor so the
    event loop keeps serving other checks while the state file is written.
    """

    VERSION = 1

    def __init__(
        self,
        file_path: Optional[Path],
        hmac_secret: str,
        clock: Optional[Callable[[], datetime]] = None,
        id_factory: Optional[Callable[[], str]] = None,
        history_limit: Optional[int] = None,
    ) -> None:
        """
        Initialize the state store.

        Args:
            file_path: Path to the state file (JSON format), or None for memory-only
            hmac_secret: Secret key for HMAC computation
            clock: Optional callable returning the current UTC time
            id_factory: Optional callable generating record ids
            history_limit: Check history rows kept per domain (None keeps all)
        """
        self._file_path = file_path
        self._hmac_secret = hmac_secret.encode("utf-8")
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._new_id = id_factory or (lambda: str(uuid.uuid4()))
        self._history_limit = history_limit
        self._lock = threading.RLock()
        self._loaded = False

        self._domains: dict[str, MonitoredDomain] = {}
        self._history: list[CheckHistoryRecord] = []
        self._alerts: dict[tuple, AlertRecord] = {}
        self._accounts: dict[str, Account] = {}
        self._preferences: dict[str, NotificationPreference] = {}

    @property
    def file_path(self) -> Optional[Path]:
        """Get the state file path."""
        return self._file_path

    # -- Repository protocol -------------------------------------------------

    async def list_domains(self) -> list[MonitoredDomain]:
        with self._lock:
            self._ensure_loaded()
            return list(self._domains.values())

    async def get_domain(self, domain_id: str) -> Optional[MonitoredDomain]:
        with self._lock:
            self._ensure_loaded()
            return self._domains.get(domain_id)

    async def find_domain_by_name(
        self, account_id: str, domain_name: str
    ) -> Optional[MonitoredDomain]:
        with self._lock:
            self._ensure_loaded()
            return self._find_by_name(account_id, domain_name)

    async def count_domains(self, account_id: str) -> int:
        with self._lock:
            self._ensure_loaded()
            return sum(1 for d in self._domains.values() if d.account_id == account_id)

    async def add_domain(self, account_id: str, domain_name: str) -> MonitoredDomain:
        """
        Create a monitored domain with unknown statuses.

        Raises:
            DuplicateDomainError: If the account already monitors the name
            PersistenceError: If the state file cannot be written
        """
        return await self._run(self._add_domain_sync, account_id, domain_name)

    async def add_checked_domain(
        self, account_id: str, domain_name: str, probe: DomainProbe
    ) -> tuple[MonitoredDomain, CheckHistoryRecord]:
        """
        Create a monitored domain already carrying its first probe outcome.

        The domain row and its first history snapshot are saved together, so
        a failed write leaves neither behind.

        Raises:
            DuplicateDomainError: If the account already monitors the name
            PersistenceError: If the state file cannot be written
        """
        return await self._run(self._add_checked_domain_sync, account_id, domain_name, probe)

    async def delete_domain(self, domain_id: str) -> bool:
        return await self._run(self._delete_domain_sync, domain_id)

    async def apply_check(
        self, domain_id: str, probe: DomainProbe
    ) -> tuple[MonitoredDomain, CheckHistoryRecord]:
        """
        Write a probe outcome onto the domain and append a history snapshot.

        Raises:
            NotFoundError: If the domain does not exist
            PersistenceError: If the state file cannot be written
        """
        return await self._run(self._apply_check_sync, domain_id, probe)

    async def get_history(self, domain_id: str, limit: int = 30) -> list[CheckHistoryRecord]:
        """Return the most recent history snapshots for a domain, newest first."""
        with self._lock:
            self._ensure_loaded()
            records = [h for h in self._history if h.domain_id == domain_id]
        records.sort(key=lambda h: h.checked_at, reverse=True)
        return records[:limit]

    async def insert_alert_if_absent(self, record: AlertRecord) -> bool:
        """
        Insert an alert ledger row unless its dedup key already exists.

        Returns:
            True if a row with the same dedup key already existed
        """
        return await self._run(self._insert_alert_sync, record)

    async def find_alert(
        self, domain_id: str, kind: AlertKind, threshold_days: int, sent_date: date
    ) -> Optional[AlertRecord]:
        with self._lock:
            self._ensure_loaded()
            return self._alerts.get(
                (domain_id, kind.value, threshold_days, sent_date.isoformat())
            )

    async def get_account(self, account_id: str) -> Optional[Account]:
        with self._lock:
            self._ensure_loaded()
            return self._accounts.get(account_id)

    async def get_notification_preference(
        self, account_id: str
    ) -> Optional[NotificationPreference]:
        with self._lock:
            self._ensure_loaded()
            return self._preferences.get(account_id)

    async def set_public_token(
        self, domain_id: str, token: Optional[str]
    ) -> MonitoredDomain:
        return await self._run(self._set_public_token_sync, domain_id, token)

    async def get_by_public_token(self, token: str) -> Optional[MonitoredDomain]:
        with self._lock:
            self._ensure_loaded()
            for domain in self._domains.values():
                if domain.public_token and hmac.compare_digest(domain.public_token, token):
                    return domain
            return None

    # -- Account collaborator data ------------------------------------------

    def upsert_account(self, account: Account) -> None:
        with self._transaction():
            self._accounts[account.id] = account

    def upsert_notification_preference(self, preference: NotificationPreference) -> None:
        with self._transaction():
            self._preferences[preference.account_id] = preference

    # -- Mutations ------------------------------------------------------------

    async def _run(self, func: Callable, *args):
        if self._file_path is None:
            return func(*args)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(func, *args))

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        """
        Hold the lock around a mutation and save it on exit.

        If the block or the save raises, every collection is put back the
        way it was when the block started.
        """
        with self._lock:
            self._ensure_loaded()
            snapshot = (
                dict(self._domains),
                list(self._history),
                dict(self._alerts),
                dict(self._accounts),
                dict(self._preferences),
            )
            try:
                yield
                self.save()
            except Exception:
                (
                    self._domains,
                    self._history,
                    self._alerts,
                    self._accounts,
                    self._preferences,
                ) = snapshot
                raise

    def _add_domain_sync(self, account_id: str, domain_name: str) -> MonitoredDomain:
        with self._transaction():
            domain = self._new_domain(account_id, domain_name)
            self._domains[domain.id] = domain
        return domain

    def _add_checked_domain_sync(
        self, account_id: str, domain_name: str, probe: DomainProbe
    ) -> tuple[MonitoredDomain, CheckHistoryRecord]:
        with self._transaction():
            domain = apply_probe(self._new_domain(account_id, domain_name), probe)
            self._domains[domain.id] = domain
            history = self._append_history(domain.id, probe)
        return domain, history

    def _delete_domain_sync(self, domain_id: str) -> bool:
        with self._lock:
            self._ensure_loaded()
            if domain_id not in self._domains:
                return False
            with self._transaction():
                del self._domains[domain_id]
                self._history = [h for h in self._history if h.domain_id != domain_id]
            return True

    def _apply_check_sync(
        self, domain_id: str, probe: DomainProbe
    ) -> tuple[MonitoredDomain, CheckHistoryRecord]:
        with self._transaction():
            domain = apply_probe(self._require_domain(domain_id), probe)
            self._domains[domain_id] = domain
            history = self._append_history(domain_id, probe)
        return domain, history

    def _insert_alert_sync(self, record: AlertRecord) -> bool:
        with self._lock:
            self._ensure_loaded()
            if record.dedup_key in self._alerts:
                return True
            with self._transaction():
                self._alerts[record.dedup_key] = record
            return False

    def _set_public_token_sync(self, domain_id: str, token: Optional[str]) -> MonitoredDomain:
        with self._transaction():
            domain = replace(self._require_domain(domain_id), public_token=token)
            self._domains[domain_id] = domain
        return domain

    def _new_domain(self, account_id: str, domain_name: str) -> MonitoredDomain:
        if self._find_by_name(account_id, domain_name) is not None:
            raise DuplicateDomainError(
                code="duplicate_domain",
                message="Domain already exists",
                details={"account_id": account_id, "domain_name": domain_name},
            )
        return MonitoredDomain(
            id=self._new_id(),
            account_id=account_id,
            domain_name=domain_name,
            created_at=self._clock(),
        )

    def _require_domain(self, domain_id: str) -> MonitoredDomain:
        domain = self._domains.get(domain_id)
        if domain is None:
            raise NotFoundError(
                code="domain_not_found",
                message="Domain not found",
                details={"domain_id": domain_id},
            )
        return domain

    def _append_history(self, domain_id: str, probe: DomainProbe) -> CheckHistoryRecord:
        history = history_from_probe(self._new_id(), domain_id, probe)
        self._history.append(history)
        if self._history_limit is not None:
            self._prune_history(domain_id)
        return history

    def _prune_history(self, domain_id: str) -> None:
        rows = sorted(
            (h for h in self._history if h.domain_id == domain_id),
            key=lambda h: h.checked_at,
        )
        excess = len(rows) - self._history_limit
        if excess > 0:
            dropped = {h.id for h in rows[:excess]}
            self._history = [h for h in self._history if h.id not in dropped]

    # -- File format ----------------------------------------------------------

    def load(self) -> bool:
        """
        Load state from file and validate HMAC.

        Returns:
            True if a state file was read, False if none exists

        Raises:
            TamperingError: If HMAC validation fails
            PersistenceError: If file cannot be read or parsed
        """
        with self._lock:
            self._loaded = True
            if self._file_path is None or not self._file_path.exists():
                return False

            try:
                with open(self._file_path, "r", encoding="utf-8") as f:
                    raw_data = json.load(f)
            except json.JSONDecodeError as e:
                raise PersistenceError(
                    code="parse_error",
                    message=f"Failed to parse state file: {e}",
                    details={"file_path": str(self._file_path)},
                ) from e
            except OSError as e:
                raise PersistenceError(
                    code="io_error",
                    message=f"Failed to read state file: {e}",
                    details={"file_path": str(self._file_path)},
                ) from e

            stored_hmac = raw_data.pop("hmac", "")
            computed_hmac = self.compute_hmac(raw_data)
            if not self.validate_hmac(stored_hmac, computed_hmac):
                raise TamperingError(
                    code="hmac_mismatch",
                    message="HMAC validation failed - data may have been tampered with",
                    details={"file_path": str(self._file_path)},
                )

            try:
                self._decode(raw_data)
            except (KeyError, TypeError, ValueError) as e:
                raise PersistenceError(
                    code="parse_error",
                    message=f"Malformed state file: {e}",
                    details={"file_path": str(self._file_path)},
                ) from e
            return True

    def save(self) -> None:
        """
        Save state to file with HMAC protection.

        Raises:
            PersistenceError: If file cannot be written
        """
        if self._file_path is None:
            return

        with self._lock:
            data = self._encode()
            data["hmac"] = self.compute_hmac(data)
            try:
                self._file_path.parent.mkdir(parents=True, exist_ok=True)
                tmp_path = self._file_path.with_suffix(self._file_path.suffix + ".tmp")
                with open(tmp_path, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2, sort_keys=True)
                tmp_path.replace(self._file_path)
            except OSError as e:
                raise PersistenceError(
                    code="io_error",
                    message=f"Failed to write state file: {e}",
                    details={"file_path": str(self._file_path)},
                ) from e

    def compute_hmac(self, data: dict) -> str:
        """
        Compute HMAC-SHA256 over serialized data.

        Args:
            data: Dictionary to compute HMAC over

        Returns:
            Hexadecimal HMAC string
        """
        serialized = json.dumps(data, sort_keys=True, separators=(",", ":"))
        return hmac.new(
            self._hmac_secret,
            serialized.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()

    def validate_hmac(self, stored_hmac: str, computed_hmac: str) -> bool:
        """Validate HMAC using constant-time comparison."""
        return hmac.compare_digest(stored_hmac, computed_hmac)

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.load()

    def _find_by_name(self, account_id: str, domain_name: str) -> Optional[MonitoredDomain]:
        for domain in self._domains.values():
            if domain.account_id == account_id and domain.domain_name == domain_name:
                return domain
        return None

    def _encode(self) -> dict:
        return {
            "version": self.VERSION,
            "last_updated": self._clock().isoformat(),
            "domains": [
                {
                    "id": d.id,
                    "account_id": d.account_id,
                    "domain_name": d.domain_name,
                    "created_at": d.created_at.isoformat(),
                    "cert_expiry": _dt_out(d.cert_expiry),
                    "cert_status": d.cert_status.value,
                    "cert_issuer": d.cert_issuer,
                    "registration_expiry": _dt_out(d.registration_expiry),
                    "registration_status": d.registration_status.value,
                    "registrar": d.registrar,
                    "last_checked": _dt_out(d.last_checked),
                    "public_token": d.public_token,
                }
                for d in self._domains.values()
            ],
            "history": [
                {
                    "id": h.id,
                    "domain_id": h.domain_id,
                    "cert_status": h.cert_status.value,
                    "registration_status": h.registration_status.value,
                    "cert_expiry": _dt_out(h.cert_expiry),
                    "registration_expiry": _dt_out(h.registration_expiry),
                    "checked_at": h.checked_at.isoformat(),
                }
                for h in self._history
            ],
            "alerts": [
                {
                    "id": a.id,
                    "domain_id": a.domain_id,
                    "account_id": a.account_id,
                    "kind": a.kind.value,
                    "threshold_days": a.threshold_days,
                    "sent_date": a.sent_date.isoformat(),
                    "sent_at": a.sent_at.isoformat(),
                }
                for a in self._alerts.values()
            ],
            "accounts": [
                {"id": a.id, "email": a.email, "plan": a.plan.value}
                for a in self._accounts.values()
            ],
            "preferences": [
                {
                    "account_id": p.account_id,
                    "webhook_url": p.webhook_url,
                    "webhook_enabled": p.webhook_enabled,
                }
                for p in self._preferences.values()
            ],
        }

    def _decode(self, raw_data: dict) -> None:
        domains = {}
        for item in raw_data.get("domains", []):
            domains[item["id"]] = MonitoredDomain(
                id=item["id"],
                account_id=item["account_id"],
                domain_name=item["domain_name"],
                created_at=datetime.fromisoformat(item["created_at"]),
                cert_expiry=_dt_in(item.get("cert_expiry")),
                cert_status=CertStatus(item.get("cert_status", "unknown")),
                cert_issuer=item.get("cert_issuer"),
                registration_expiry=_dt_in(item.get("registration_expiry")),
                registration_status=RegistrationStatus(item.get("registration_status", "unknown")),
                registrar=item.get("registrar"),
                last_checked=_dt_in(item.get("last_checked")),
                public_token=item.get("public_token"),
            )

        history = [
            CheckHistoryRecord(
                id=item["id"],
                domain_id=item["domain_id"],
                cert_status=CertStatus(item["cert_status"]),
                registration_status=RegistrationStatus(item["registration_status"]),
                cert_expiry=_dt_in(item.get("cert_expiry")),
                registration_expiry=_dt_in(item.get("registration_expiry")),
                checked_at=datetime.fromisoformat(item["checked_at"]),
            )
            for item in raw_data.get("history", [])
        ]

        alerts = {}
        for item in raw_data.get("alerts", []):
            record = AlertRecord(
                id=item["id"],
                domain_id=item["domain_id"],
                account_id=item["account_id"],
                kind=AlertKind(item["kind"]),
                threshold_days=int(item["threshold_days"]),
                sent_date=date.fromisoformat(item["sent_date"]),
                sent_at=datetime.fromisoformat(item["sent_at"]),
            )
            alerts[record.dedup_key] = record

        accounts = {
            item["id"]: Account(
                id=item["id"],
                email=item.get("email"),
                plan=PlanId(item.get("plan", "free")),
            )
            for item in raw_data.get("accounts", [])
        }

        preferences = {
            item["account_id"]: NotificationPreference(
                account_id=item["account_id"],
                webhook_url=item.get("webhook_url"),
                webhook_enabled=bool(item.get("webhook_enabled", False)),
            )
            for item in raw_data.get("preferences", [])
        }

        self._domains = domains
        self._history = history
        self._alerts = alerts
        self._accounts = accounts
        self._preferences = preferences


def _dt_out(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _dt_in(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None
