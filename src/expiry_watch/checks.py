"""
On-demand checks for a single domain.

Covers the add-domain flow (quota gate, syntactic validation, initial probe
and persistence), the user-triggered recheck, deletion, history access and
the public status token. None of these paths evaluate alerts.
"""

import uuid
from dataclasses import dataclass
from typing import Optional

from .audit_logger import AuditLogger
from .config import AppConfig
from .domain_validator import validate_domain
from .enums import LogLevel, PlanId
from .exceptions import DuplicateDomainError, ForbiddenError, NotFoundError, QuotaExceededError
from .models import (
    CertProbeResult,
    CheckHistoryRecord,
    CheckOutcome,
    MonitoredDomain,
    RegistrationProbeResult,
)
from .prober import DomainProber
from .state_store import Repository

UNLIMITED = -1


@dataclass
class QuotaStatus:
    """Whether an account may add another domain."""

    allowed: bool
    current: int
    limit: int  # -1 means unlimited


@dataclass
class PrecheckResult:
    """Probe results for a domain that is not stored yet."""

    domain: str
    cert: CertProbeResult
    registration: RegistrationProbeResult

    def to_dict(self) -> dict:
        return {
            "domain": self.domain,
            "ssl": self.cert.to_dict(),
            "domain_whois": self.registration.to_dict(),
        }


class DomainChecker:
    """Synchronous (request-bound) check paths for one domain at a time."""

    def __init__(
        self,
        repository: Repository,
        prober: DomainProber,
        config: AppConfig,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        self._repository = repository
        self._prober = prober
        self._config = config
        self._logger = logger

    async def quota_for(self, account_id: str) -> QuotaStatus:
        account = await self._repository.get_account(account_id)
        plan = account.plan if account else PlanId.FREE
        limit = self._config.plans.limit_for(plan)
        current = await self._repository.count_domains(account_id)
        if limit is None:
            return QuotaStatus(allowed=True, current=current, limit=UNLIMITED)
        return QuotaStatus(allowed=current < limit, current=current, limit=limit)

    async def precheck(self, account_id: str, raw_domain: str) -> PrecheckResult:
        """
        Probe a candidate domain before it is added.

        The quota is checked before validation so an account at its limit
        never triggers network work.

        Raises:
            QuotaExceededError: If the account is at its plan limit
            ValidationError: If the input is not a well-formed domain name
        """
        await self._ensure_quota(account_id)
        domain_name = validate_domain(raw_domain)
        probe = await self._prober.probe(domain_name)
        return PrecheckResult(
            domain=domain_name,
            cert=probe.cert,
            registration=probe.registration,
        )

    async def add_domain(self, account_id: str, raw_domain: str) -> CheckOutcome:
        """
        Add a domain to an account and store its initial check.

        Raises:
            QuotaExceededError: If the account is at its plan limit
            ValidationError: If the input is not a well-formed domain name
            DuplicateDomainError: If the account already monitors the domain
            PersistenceError: If the new domain cannot be saved (nothing is kept)
        """
        await self._ensure_quota(account_id)
        domain_name = validate_domain(raw_domain)
        if await self._repository.find_domain_by_name(account_id, domain_name):
            raise DuplicateDomainError(
                code="duplicate_domain",
                message="Domain already exists",
                details={"domain_name": domain_name},
            )

        probe = await self._prober.probe(domain_name)
        domain, history = await self._repository.add_checked_domain(account_id, domain_name, probe)
        self._log(LogLevel.INFO, f"Added {domain_name}", {"domain_id": domain.id, "account_id": account_id})
        return CheckOutcome(domain=domain, probe=probe, history=history)

    async def recheck(self, account_id: str, domain_id: str) -> CheckOutcome:
        """
        Re-probe a stored domain and persist the fresh state.

        Raises:
            NotFoundError: If the domain does not exist
            ForbiddenError: If the domain belongs to another account
        """
        domain = await self._owned_domain(account_id, domain_id)
        probe = await self._prober.probe(domain.domain_name)
        domain, history = await self._repository.apply_check(domain.id, probe)
        self._log(
            LogLevel.INFO,
            f"Rechecked {domain.domain_name}",
            {
                "domain_id": domain.id,
                "ssl_status": domain.cert_status.value,
                "domain_status": domain.registration_status.value,
            },
        )
        return CheckOutcome(domain=domain, probe=probe, history=history)

    async def delete_domain(self, account_id: str, domain_id: str) -> None:
        domain = await self._owned_domain(account_id, domain_id)
        await self._repository.delete_domain(domain.id)
        self._log(LogLevel.INFO, f"Deleted {domain.domain_name}", {"domain_id": domain.id})

    async def get_history(
        self, account_id: str, domain_id: str, limit: int = 30
    ) -> list[CheckHistoryRecord]:
        domain = await self._owned_domain(account_id, domain_id)
        return await self._repository.get_history(domain.id, limit)

    async def create_public_token(self, account_id: str, domain_id: str) -> str:
        """Return the domain's public status token, creating one if needed."""
        domain = await self._owned_domain(account_id, domain_id)
        if domain.public_token:
            return domain.public_token
        token = str(uuid.uuid4())
        await self._repository.set_public_token(domain.id, token)
        return token

    async def revoke_public_token(self, account_id: str, domain_id: str) -> None:
        domain = await self._owned_domain(account_id, domain_id)
        await self._repository.set_public_token(domain.id, None)

    async def get_by_public_token(self, token: str) -> MonitoredDomain:
        """
        Raises:
            NotFoundError: If no domain carries the token
        """
        domain = await self._repository.get_by_public_token(token) if token else None
        if domain is None:
            raise NotFoundError(code="domain_not_found", message="Domain not found")
        return domain

    async def _ensure_quota(self, account_id: str) -> None:
        quota = await self.quota_for(account_id)
        if not quota.allowed:
            raise QuotaExceededError(current=quota.current, limit=quota.limit)

    async def _owned_domain(self, account_id: str, domain_id: str) -> MonitoredDomain:
        domain = await self._repository.get_domain(domain_id)
        if domain is None:
            raise NotFoundError(
                code="domain_not_found",
                message="Domain not found",
                details={"domain_id": domain_id},
            )
        if domain.account_id != account_id:
            raise ForbiddenError(
                code="forbidden",
                message="Forbidden",
                details={"domain_id": domain_id},
            )
        return domain

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, "DomainChecker", message, data)
