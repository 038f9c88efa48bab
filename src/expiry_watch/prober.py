"""
Domain prober: runs the certificate and registration probes for one domain
concurrently and collects them into a single DomainProbe.
"""

import asyncio
from datetime import datetime, timezone
from typing import Callable, Optional

from .audit_logger import AuditLogger
from .config import ProbeConfig
from .enums import Health, LogLevel, ProbeErrorCode
from .models import CertProbeResult, DomainProbe, ProbeError, RegistrationProbeResult
from .tls_client import TLSClient
from .whois_client import WHOISClient

# Slack on top of each client's own timeout before the join gives up on it
TIMEOUT_GRACE_SECONDS = 1.0


class DomainProber:
    """Joins the two independent, timeout-bounded probes for a domain."""

    def __init__(
        self,
        tls_client: TLSClient,
        whois_client: WHOISClient,
        logger: Optional[AuditLogger] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._tls_client = tls_client
        self._whois_client = whois_client
        self._logger = logger
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @classmethod
    def from_config(
        cls,
        config: ProbeConfig,
        simulation_mode: bool = False,
        logger: Optional[AuditLogger] = None,
    ) -> "DomainProber":
        return cls(
            tls_client=TLSClient(
                timeout=config.tls_timeout_seconds,
                port=config.tls_port,
                simulation_mode=simulation_mode,
            ),
            whois_client=WHOISClient(
                timeout=config.whois_timeout_seconds,
                custom_servers=config.whois_servers or None,
                simulation_mode=simulation_mode,
            ),
            logger=logger,
        )

    async def probe(self, domain_name: str) -> DomainProbe:
        """
        Probe certificate and registration state concurrently.

        Never raises: a probe that escapes its own error handling or its
        timeout is reported as an error result.
        """
        cert, registration = await asyncio.gather(
            self._probe_cert(domain_name),
            self._probe_registration(domain_name),
        )
        if self._logger:
            self._logger.log(
                LogLevel.DEBUG,
                "DomainProber",
                f"Probed {domain_name}",
                {
                    "domain": domain_name,
                    "ssl_status": cert.health.value,
                    "ssl_days": cert.days_remaining,
                    "whois_status": registration.health.value,
                    "whois_days": registration.days_remaining,
                },
            )
        return DomainProbe(
            domain_name=domain_name,
            cert=cert,
            registration=registration,
            checked_at=self._clock(),
        )

    async def _probe_cert(self, domain_name: str) -> CertProbeResult:
        timeout = self._tls_client.timeout * 2 + TIMEOUT_GRACE_SECONDS
        try:
            return await asyncio.wait_for(self._tls_client.probe(domain_name), timeout)
        except asyncio.TimeoutError:
            error = ProbeError(ProbeErrorCode.TIMEOUT, "SSL check timed out")
        except Exception as e:
            error = ProbeError(ProbeErrorCode.TLS_ERROR, f"SSL check failed: {e}")
        return CertProbeResult(health=Health.ERROR, error=error)

    async def _probe_registration(self, domain_name: str) -> RegistrationProbeResult:
        timeout = self._whois_client.timeout + TIMEOUT_GRACE_SECONDS
        try:
            return await asyncio.wait_for(self._whois_client.probe(domain_name), timeout)
        except asyncio.TimeoutError:
            error = ProbeError(ProbeErrorCode.TIMEOUT, "WHOIS check timed out")
        except Exception as e:
            error = ProbeError(ProbeErrorCode.NETWORK_ERROR, f"WHOIS check failed: {e}")
        return RegistrationProbeResult(health=Health.ERROR, error=error)
