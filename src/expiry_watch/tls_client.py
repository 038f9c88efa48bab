"""
TLS certificate probe.

Opens a TLS connection to a domain, reads the peer certificate and reports
its expiry date, the days remaining and the issuing organization. Every
failure mode is returned as an error result; nothing is raised to callers.
"""

import asyncio
import ssl
from contextlib import suppress
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from cryptography import x509
from cryptography.x509.oid import NameOID

from .classifier import classify, days_until
from .enums import Health, ProbeErrorCode
from .models import CertProbeResult, ProbeError


@dataclass
class CertificateInfo:
    """Fields extracted from a DER-encoded certificate."""

    not_after: datetime
    issuer: Optional[str]


def parse_certificate(der: bytes) -> CertificateInfo:
    """
    Extract the expiry date and issuer name from a DER certificate.

    The issuer is the organization name, falling back to the common name.

    Raises:
        ValueError: If the certificate cannot be decoded
    """
    cert = x509.load_der_x509_certificate(der)
    issuer = None
    for oid in (NameOID.ORGANIZATION_NAME, NameOID.COMMON_NAME):
        attributes = cert.issuer.get_attributes_for_oid(oid)
        if attributes:
            issuer = str(attributes[0].value)
            break
    return CertificateInfo(not_after=cert.not_valid_after_utc, issuer=issuer)


class TLSClient:
    """Async TLS certificate probe with a bounded handshake timeout."""

    def __init__(
        self,
        timeout: float = 5.0,
        port: int = 443,
        simulation_mode: bool = False,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """
        Initialize the TLS client.

        Args:
            timeout: Connect + handshake timeout in seconds
            port: Port to connect to
            simulation_mode: If True, no real network requests are made
            clock: Optional callable returning the current UTC time
        """
        self._timeout = timeout
        self._port = port
        self._simulation_mode = simulation_mode
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def timeout(self) -> float:
        return self._timeout

    async def probe(self, domain: str) -> CertProbeResult:
        """
        Probe the certificate served for a domain.

        A certificate that fails verification still has its dates and issuer
        reported, with health ERROR.
        """
        if self._simulation_mode:
            return self._get_simulated_result(domain)

        try:
            der = await asyncio.wait_for(
                self._fetch_certificate(domain, verify=True),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            return self._error(
                ProbeErrorCode.TIMEOUT,
                f"TLS handshake timed out after {self._timeout}s",
            )
        except ssl.SSLCertVerificationError as e:
            return await self._probe_invalid_certificate(domain, e)
        except ssl.SSLError as e:
            return self._error(ProbeErrorCode.TLS_ERROR, f"TLS error: {e}")
        except OSError as e:
            return self._error(ProbeErrorCode.NETWORK_ERROR, f"Connection failed: {e}")
        except Exception as e:
            return self._error(ProbeErrorCode.TLS_ERROR, f"SSL check failed: {e}")

        try:
            info = parse_certificate(der)
        except ValueError as e:
            return self._error(ProbeErrorCode.PARSE_ERROR, f"Could not parse certificate: {e}")

        days = days_until(info.not_after, self._clock())
        return CertProbeResult(
            health=classify(days),
            expiry=info.not_after,
            days_remaining=days,
            issuer=info.issuer,
        )

    async def _probe_invalid_certificate(
        self, domain: str, verify_error: ssl.SSLCertVerificationError
    ) -> CertProbeResult:
        """Re-fetch an unverifiable certificate so its dates can be surfaced."""
        message = f"SSL certificate is invalid: {verify_error.verify_message or verify_error}"
        try:
            der = await asyncio.wait_for(
                self._fetch_certificate(domain, verify=False),
                timeout=self._timeout,
            )
            info = parse_certificate(der)
        except Exception:
            return self._error(ProbeErrorCode.INVALID_CERTIFICATE, message)

        return CertProbeResult(
            health=Health.ERROR,
            expiry=info.not_after,
            days_remaining=days_until(info.not_after, self._clock()),
            issuer=info.issuer,
            error=ProbeError(code=ProbeErrorCode.INVALID_CERTIFICATE, message=message),
        )

    async def _fetch_certificate(self, domain: str, verify: bool) -> bytes:
        """Complete a TLS handshake and return the peer certificate in DER form."""
        if verify:
            context = ssl.create_default_context()
        else:
            context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE

        reader, writer = await asyncio.open_connection(
            host=domain,
            port=self._port,
            ssl=context,
            server_hostname=domain,
        )
        try:
            ssl_object = writer.get_extra_info("ssl_object")
            der = ssl_object.getpeercert(binary_form=True) if ssl_object else None
        finally:
            writer.close()
            with suppress(OSError):
                await writer.wait_closed()

        if not der:
            raise ssl.SSLError("Peer did not present a certificate")
        return der

    def _error(self, code: ProbeErrorCode, message: str) -> CertProbeResult:
        return CertProbeResult(
            health=Health.ERROR,
            error=ProbeError(code=code, message=message),
        )

    def _get_simulated_result(self, domain: str) -> CertProbeResult:
        """
        Return a simulated result for testing.

        Labels starting with 'expired-' expire two days ago, 'soon-' in five
        days, 'broken-' fail the handshake; everything else has 90 days left.
        """
        label = domain.split(".", 1)[0]
        if label.startswith("broken-"):
            return self._error(ProbeErrorCode.NETWORK_ERROR, "[SIMULATED] Connection refused")

        if label.startswith("expired-"):
            days = -2
        elif label.startswith("soon-"):
            days = 5
        else:
            days = 90
        now = self._clock()
        expiry = now + timedelta(days=days, hours=1)
        return CertProbeResult(
            health=classify(days),
            expiry=expiry,
            days_remaining=days_until(expiry, now),
            issuer="Simulated CA",
        )
