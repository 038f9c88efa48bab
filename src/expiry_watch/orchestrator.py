"""
Batch orchestrator for the expiry watch system.

One run walks every monitored domain: probe both expiry clocks, persist the
fresh status with a history snapshot, then for each facet match the alert
tier, consult the dedup ledger, dispatch and record. Domains are processed
concurrently up to a fan-out limit and each domain's failure stays inside
its own iteration. Only failing to list the domains aborts a run.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Callable, Optional

from .audit_logger import AuditLogger
from .classifier import days_until, find_threshold
from .config import AppConfig
from .enums import Facet, LedgerWriteStatus, LogLevel
from .ledger import AlertLedger
from .models import (
    AlertMessage,
    BatchRunResult,
    DomainProbe,
    MonitoredDomain,
    NotificationPreference,
)
from .notifications import NotificationDispatcher
from .prober import DomainProber
from .state_store import Repository


@dataclass
class AccountContext:
    """What the alert step needs to know about a domain's owner."""

    email: Optional[str]
    preference: Optional[NotificationPreference]


class AccountCache:
    """
    Per-run memo of account lookups.

    The lookup task is stored before anything is awaited, so concurrent
    domains owned by the same account share a single repository round trip.
    """

    def __init__(self, repository: Repository) -> None:
        self._repository = repository
        self._entries: dict[str, asyncio.Future] = {}

    @property
    def lookups(self) -> int:
        return len(self._entries)

    async def get(self, account_id: str) -> AccountContext:
        entry = self._entries.get(account_id)
        if entry is None:
            entry = asyncio.ensure_future(self._load(account_id))
            self._entries[account_id] = entry
        return await entry

    async def _load(self, account_id: str) -> AccountContext:
        account, preference = await asyncio.gather(
            self._repository.get_account(account_id),
            self._repository.get_notification_preference(account_id),
        )
        return AccountContext(
            email=account.email if account else None,
            preference=preference,
        )


@dataclass
class DomainReport:
    """Log lines and alert count produced by one domain's iteration."""

    lines: list[str] = field(default_factory=list)
    alerts_sent: int = 0


def _days_label(days: Optional[int]) -> str:
    return "?" if days is None else f"{days}d"


class BatchOrchestrator:
    """Runs the periodic check-and-alert cycle over all monitored domains."""

    def __init__(
        self,
        repository: Repository,
        prober: DomainProber,
        dispatcher: NotificationDispatcher,
        ledger: AlertLedger,
        config: AppConfig,
        logger: Optional[AuditLogger] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            repository: Persistence for domains, history, accounts and preferences
            prober: Runs the certificate and registration probes
            dispatcher: Sends alerts over email and webhook
            ledger: Dedup ledger gating re-sends
            config: Application configuration (fan-out, dashboard URL, language)
            logger: Optional audit logger
            clock: Optional callable returning the current UTC time
        """
        self._repository = repository
        self._prober = prober
        self._dispatcher = dispatcher
        self._ledger = ledger
        self._config = config
        self._logger = logger
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def run(self) -> BatchRunResult:
        """
        Execute one batch run.

        Returns:
            BatchRunResult; success is False only when the domain list
            could not be read
        """
        try:
            domains = await self._repository.list_domains()
        except Exception as e:
            self._log_error("Failed to fetch domains", e)
            return BatchRunResult(
                success=False,
                checked=0,
                alerts_sent=0,
                log=[f"[FATAL] Failed to fetch domains: {e}"],
                error=str(e),
            )

        if not domains:
            return BatchRunResult(
                success=True,
                checked=0,
                alerts_sent=0,
                log=["[DONE] No domains to check."],
            )

        self._log_info(f"Starting batch run over {len(domains)} domain(s)", {"count": len(domains)})
        log = [f"[START] Checking {len(domains)} domain(s)..."]

        today = self._clock().date()
        cache = AccountCache(self._repository)
        semaphore = asyncio.Semaphore(max(1, self._config.batch.max_concurrency))

        async def bounded(domain: MonitoredDomain) -> DomainReport:
            async with semaphore:
                return await self._process_domain(domain, cache, today)

        reports = await asyncio.gather(*(bounded(domain) for domain in domains))

        alerts_sent = 0
        for report in reports:
            log.extend(report.lines)
            alerts_sent += report.alerts_sent

        log.append(f"[DONE] {len(domains)} domain(s) checked, {alerts_sent} alert(s) sent.")
        self._log_info(
            "Batch run finished",
            {"checked": len(domains), "alerts_sent": alerts_sent, "accounts": cache.lookups},
        )
        return BatchRunResult(
            success=True,
            checked=len(domains),
            alerts_sent=alerts_sent,
            log=log,
        )

    async def _process_domain(
        self,
        domain: MonitoredDomain,
        cache: AccountCache,
        today: date,
    ) -> DomainReport:
        report = DomainReport()
        try:
            await self._check_and_alert(domain, cache, today, report)
        except Exception as e:
            report.lines.append(f"[ERROR] Unexpected failure for {domain.domain_name}: {e}")
            self._log_error(f"Unexpected failure for {domain.domain_name}", e, {"domain_id": domain.id})
        return report

    async def _check_and_alert(
        self,
        domain: MonitoredDomain,
        cache: AccountCache,
        today: date,
        report: DomainReport,
    ) -> None:
        name = domain.domain_name
        probe = await self._prober.probe(name)

        try:
            domain, _ = await self._repository.apply_check(domain.id, probe)
        except Exception as e:
            report.lines.append(f"[ERROR] Update failed for {name}: {e}")
            self._log_error(f"Update failed for {name}", e, {"domain_id": domain.id})
            return

        report.lines.append(
            f"[CHECK] {name} - SSL: {_days_label(probe.cert.days_remaining)}, "
            f"Domain: {_days_label(probe.registration.days_remaining)}"
        )

        account = await cache.get(domain.account_id)
        if not account.email:
            report.lines.append(f"[SKIP] {name} - no email for account")
            return

        for facet in (Facet.CERTIFICATE, Facet.REGISTRATION):
            if await self._evaluate_facet(domain, probe, facet, account, today, report):
                report.alerts_sent += 1

    async def _evaluate_facet(
        self,
        domain: MonitoredDomain,
        probe: DomainProbe,
        facet: Facet,
        account: AccountContext,
        today: date,
        report: DomainReport,
    ) -> bool:
        """Run tier match, dedup, dispatch and ledger write for one facet."""
        result = probe.cert if facet is Facet.CERTIFICATE else probe.registration
        if result.expiry is None:
            return False

        name = domain.domain_name
        days = result.days_remaining
        if days is None:
            days = days_until(result.expiry, self._clock())
        threshold = find_threshold(days)
        if threshold is None:
            return False

        kind = facet.expiry_kind
        label = facet.label
        if await self._ledger.was_already_sent(domain.id, kind, threshold, today):
            report.lines.append(f"[SKIP] {name} - {label} {threshold}d already sent today")
            return False

        message = AlertMessage(
            domain_name=name,
            kind=kind,
            days_remaining=days,
            expiry_date=result.expiry,
            dashboard_url=self._config.batch.dashboard_url,
            language=self._config.language,
        )
        dispatch = await self._dispatcher.dispatch(message, account.email, account.preference)

        for channel in dispatch.channels:
            if channel.channel == "webhook" and channel.success:
                report.lines.append(f"[WEBHOOK] {name} - {label} webhook sent")
            elif channel.channel == "email" and not channel.success:
                report.lines.append(
                    f"[ERROR] Email failed for {name} ({label}, {threshold}d): {channel.error}"
                )
            elif not channel.success:
                report.lines.append(f"[ERROR] Webhook failed for {name}: {channel.error}")

        if not dispatch.any_succeeded:
            report.lines.append(
                f"[ERROR] All channels failed for {name} ({label}, {threshold}d), alert not recorded"
            )
            return False

        write = await self._ledger.record(domain.id, domain.account_id, kind, threshold, today)
        if write.status is LedgerWriteStatus.FAILED:
            report.lines.append(
                f"[ERROR] Ledger write failed for {name} ({label}, {threshold}d): {write.error}"
                " - alert was delivered but not recorded"
            )
            self._log(
                LogLevel.ERROR,
                f"Alert ledger inconsistency for {name}",
                {"domain_id": domain.id, "kind": kind.value, "threshold": threshold, "error": write.error},
            )

        delivered_to = ", ".join(
            account.email if c.channel == "email" else c.channel
            for c in dispatch.channels
            if c.success
        )
        report.lines.append(
            f"[SENT] {name} - {label} expires in {days}d (threshold: {threshold}d) -> {delivered_to}"
        )
        return True

    def _log(self, level: LogLevel, message: str, data: Optional[dict] = None) -> None:
        if self._logger:
            self._logger.log(level, "BatchOrchestrator", message, data)

    def _log_info(self, message: str, data: Optional[dict] = None) -> None:
        self._log(LogLevel.INFO, message, data)

    def _log_error(self, message: str, error: Exception, data: Optional[dict] = None) -> None:
        if self._logger:
            self._logger.log_error("BatchOrchestrator", message, error, data)
