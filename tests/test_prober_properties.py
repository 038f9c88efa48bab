"""
Tests for the domain prober that joins the certificate and WHOIS probes.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from io import StringIO

from expiry_watch.audit_logger import AuditLogger
from expiry_watch.config import ProbeConfig
from expiry_watch.enums import Health, LogLevel, ProbeErrorCode
from expiry_watch.models import CertProbeResult, RegistrationProbeResult
from expiry_watch.prober import DomainProber
from expiry_watch.tls_client import TLSClient
from expiry_watch.whois_client import WHOISClient


NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def run_async(coro):
    """Helper to run async code in tests."""
    return asyncio.new_event_loop().run_until_complete(coro)


class StubTLSClient(TLSClient):
    def __init__(self, result=None, delay: float = 0.0, error: Exception = None) -> None:
        super().__init__(timeout=0.01)
        self._result = result
        self._delay = delay
        self._raise = error
        self.started_at = None

    async def probe(self, domain: str) -> CertProbeResult:
        self.started_at = asyncio.get_running_loop().time()
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._raise:
            raise self._raise
        return self._result


class StubWHOISClient(WHOISClient):
    def __init__(self, result=None, delay: float = 0.0, timeout: float = 0.01) -> None:
        super().__init__(timeout=timeout)
        self._result = result
        self._delay = delay
        self.started_at = None

    async def probe(self, domain: str) -> RegistrationProbeResult:
        self.started_at = asyncio.get_running_loop().time()
        if self._delay:
            await asyncio.sleep(self._delay)
        return self._result


def cert_result(days: int) -> CertProbeResult:
    return CertProbeResult(
        health=Health.WARNING,
        expiry=NOW + timedelta(days=days),
        days_remaining=days,
        issuer="Test CA",
    )


def registration_result(days: int) -> RegistrationProbeResult:
    return RegistrationProbeResult(
        health=Health.HEALTHY,
        expiry=NOW + timedelta(days=days),
        days_remaining=days,
        registrar="Test Registrar",
    )


class TestDomainProber:
    """Both probes run together and failures stay inside the result."""

    def test_results_are_combined(self) -> None:
        prober = DomainProber(
            StubTLSClient(cert_result(10)),
            StubWHOISClient(registration_result(200)),
            clock=lambda: NOW,
        )
        probe = run_async(prober.probe("example.com"))
        assert probe.domain_name == "example.com"
        assert probe.cert.days_remaining == 10
        assert probe.registration.days_remaining == 200
        assert probe.checked_at == NOW

    def test_probes_run_concurrently(self) -> None:
        tls = StubTLSClient(cert_result(10), delay=0.01)
        whois = StubWHOISClient(registration_result(200), delay=0.01)
        run_async(DomainProber(tls, whois).probe("example.com"))
        assert abs(tls.started_at - whois.started_at) < 0.005

    def test_escaped_exception_becomes_error_result(self) -> None:
        prober = DomainProber(
            StubTLSClient(error=RuntimeError("boom")),
            StubWHOISClient(registration_result(200)),
        )
        probe = run_async(prober.probe("example.com"))
        assert probe.cert.health is Health.ERROR
        assert probe.cert.error.code is ProbeErrorCode.TLS_ERROR
        assert "boom" in probe.cert.error.message
        assert probe.registration.days_remaining == 200

    def test_hung_probe_is_cut_off(self) -> None:
        prober = DomainProber(
            StubTLSClient(cert_result(10)),
            StubWHOISClient(registration_result(200), delay=5.0),
        )
        probe = run_async(asyncio.wait_for(prober.probe("example.com"), timeout=3.0))
        assert probe.registration.health is Health.ERROR
        assert probe.registration.error.code is ProbeErrorCode.TIMEOUT
        assert probe.cert.days_remaining == 10

    def test_whois_budget_is_its_timeout_plus_grace(self) -> None:
        # Slower than timeout + grace, faster than three timeouts + grace
        prober = DomainProber(
            StubTLSClient(cert_result(10)),
            StubWHOISClient(registration_result(200), delay=1.8, timeout=0.5),
        )
        probe = run_async(prober.probe("example.com"))
        assert probe.registration.error.code is ProbeErrorCode.TIMEOUT

    def test_probe_is_logged_at_debug(self) -> None:
        logger = AuditLogger(output_format="json", output_stream=StringIO(), level="debug")
        prober = DomainProber(
            StubTLSClient(cert_result(10)),
            StubWHOISClient(registration_result(200)),
            logger=logger,
        )
        run_async(prober.probe("example.com"))
        entries = logger.entries
        assert len(entries) == 1
        assert entries[0].level is LogLevel.DEBUG
        assert entries[0].data["ssl_days"] == 10

    def test_from_config_in_simulation_mode(self) -> None:
        prober = DomainProber.from_config(ProbeConfig(), simulation_mode=True)
        probe = run_async(prober.probe("soon-shop.com"))
        assert probe.cert.days_remaining == 5
        assert probe.registration.days_remaining == 10
