"""
Tests for the TLS certificate probe.

Certificates are generated locally with cryptography; the handshake itself
is replaced so no test touches the network.
"""

import asyncio
import ssl
from datetime import datetime, timedelta, timezone
from typing import Optional

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID
from hypothesis import given, settings
from hypothesis import strategies as st

from expiry_watch.enums import Health, ProbeErrorCode
from expiry_watch.tls_client import TLSClient, parse_certificate


NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)

_KEY = ec.generate_private_key(ec.SECP256R1())


def run_async(coro):
    """Helper to run async code in tests."""
    return asyncio.new_event_loop().run_until_complete(coro)


def make_certificate(
    not_after: datetime,
    organization: Optional[str] = "Test CA Inc",
    common_name: str = "Test CA R1",
) -> bytes:
    """Build a DER certificate expiring at not_after."""
    issuer_attributes = [x509.NameAttribute(NameOID.COMMON_NAME, common_name)]
    if organization:
        issuer_attributes.insert(0, x509.NameAttribute(NameOID.ORGANIZATION_NAME, organization))
    cert = (
        x509.CertificateBuilder()
        .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "example.com")]))
        .issuer_name(x509.Name(issuer_attributes))
        .public_key(_KEY.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_after - timedelta(days=365))
        .not_valid_after(not_after)
        .sign(_KEY, hashes.SHA256())
    )
    return cert.public_bytes(serialization.Encoding.DER)


def make_client(**kwargs) -> TLSClient:
    return TLSClient(clock=lambda: NOW, **kwargs)


class TestParseCertificate:
    """Expiry and issuer extraction from DER bytes."""

    def test_organization_is_preferred(self) -> None:
        not_after = datetime(2027, 1, 1, tzinfo=timezone.utc)
        info = parse_certificate(make_certificate(not_after))
        assert info.not_after == not_after
        assert info.issuer == "Test CA Inc"

    def test_common_name_is_fallback(self) -> None:
        info = parse_certificate(
            make_certificate(datetime(2027, 1, 1, tzinfo=timezone.utc), organization=None)
        )
        assert info.issuer == "Test CA R1"

    def test_garbage_raises_value_error(self) -> None:
        try:
            parse_certificate(b"not a certificate")
        except ValueError:
            return
        raise AssertionError("expected ValueError")


class TestProbeProperty:
    """A fetched certificate is classified by days remaining."""

    @given(days=st.integers(min_value=-20, max_value=400))
    @settings(max_examples=30, deadline=None)
    def test_days_and_health_follow_expiry(self, days: int) -> None:
        der = make_certificate(NOW + timedelta(days=days, hours=2))
        client = make_client()

        async def fake_fetch(domain: str, verify: bool) -> bytes:
            return der

        client._fetch_certificate = fake_fetch
        result = run_async(client.probe("example.com"))
        assert result.days_remaining == days
        assert result.issuer == "Test CA Inc"
        if days > 30:
            assert result.health is Health.HEALTHY
        elif days >= 7:
            assert result.health is Health.WARNING
        else:
            assert result.health is Health.CRITICAL

    def test_timeout_returns_error_with_null_fields(self) -> None:
        client = make_client(timeout=0.05)

        async def hanging_fetch(domain: str, verify: bool) -> bytes:
            await asyncio.sleep(5)
            return b""

        client._fetch_certificate = hanging_fetch
        result = run_async(client.probe("example.com"))
        assert result.health is Health.ERROR
        assert result.error.code is ProbeErrorCode.TIMEOUT
        assert result.expiry is None
        assert result.days_remaining is None
        assert result.issuer is None

    def test_connection_refused_is_network_error(self) -> None:
        client = make_client()

        async def refused(domain: str, verify: bool) -> bytes:
            raise ConnectionRefusedError("Connection refused")

        client._fetch_certificate = refused
        result = run_async(client.probe("example.com"))
        assert result.error.code is ProbeErrorCode.NETWORK_ERROR
        assert result.expiry is None

    def test_invalid_certificate_still_reports_dates(self) -> None:
        not_after = NOW + timedelta(days=12, hours=1)
        der = make_certificate(not_after)
        client = make_client()
        calls = []

        async def fetch(domain: str, verify: bool) -> bytes:
            calls.append(verify)
            if verify:
                error = ssl.SSLCertVerificationError("certificate verify failed")
                error.verify_message = "self-signed certificate"
                raise error
            return der

        client._fetch_certificate = fetch
        result = run_async(client.probe("example.com"))
        assert calls == [True, False]
        assert result.health is Health.ERROR
        assert result.error.code is ProbeErrorCode.INVALID_CERTIFICATE
        assert "self-signed certificate" in result.error.message
        assert result.expiry == not_after
        assert result.days_remaining == 12

    def test_unparseable_certificate_is_parse_error(self) -> None:
        client = make_client()

        async def fetch(domain: str, verify: bool) -> bytes:
            return b"\x30\x03garbage"

        client._fetch_certificate = fetch
        result = run_async(client.probe("example.com"))
        assert result.error.code is ProbeErrorCode.PARSE_ERROR


class TestSimulationMode:
    """Simulated results are deterministic and network-free."""

    def test_prefixes_drive_outcomes(self) -> None:
        client = make_client(simulation_mode=True)
        assert run_async(client.probe("shop.com")).days_remaining == 90
        assert run_async(client.probe("soon-shop.com")).days_remaining == 5
        assert run_async(client.probe("expired-shop.com")).days_remaining == -2
        broken = run_async(client.probe("broken-shop.com"))
        assert broken.health is Health.ERROR
        assert broken.error.code is ProbeErrorCode.NETWORK_ERROR
