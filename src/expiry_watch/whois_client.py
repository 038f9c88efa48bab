"""
WHOIS registration probe.

Queries the registry WHOIS server for a domain (resolving the server from a
per-TLD map or an IANA referral), extracts the registration expiry date and
the registrar, and reports the days remaining. Every failure mode is
returned as an error result; nothing is raised to callers.
"""

import asyncio
import re
import socket
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from .classifier import classify, days_until
from .enums import Health, ProbeErrorCode
from .models import ProbeError, RegistrationProbeResult

WHOIS_PORT = 43
IANA_WHOIS_SERVER = "whois.iana.org"

# Vendor-specific expiry field names, most specific first
EXPIRY_FIELDS: tuple[str, ...] = (
    "Expiry Date",
    "Registry Expiry Date",
    "Registrar Registration Expiration Date",
    "paid-till",
    "Expiration Date",
    "expire",
    "Expiration Time",
    "renewal date",
)

REGISTRAR_FIELDS: tuple[str, ...] = ("Registrar", "registrar", "Sponsoring Registrar")

REFERRAL_FIELDS: tuple[str, ...] = ("Registrar WHOIS Server", "whois", "refer")

DATE_FORMATS: tuple[str, ...] = (
    "%Y-%m-%d",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M:%S%z",
    "%Y.%m.%d",
    "%Y.%m.%d %H:%M:%S",
    "%Y/%m/%d",
    "%d-%b-%Y",
    "%d-%b-%Y %H:%M:%S",
    "%d.%m.%Y",
    "%d.%m.%Y %H:%M:%S",
    "%d/%m/%Y",
    "%Y%m%d",
)

_TZ_SUFFIX = re.compile(r"\s*\(?(UTC|GMT|Z)\)?$", re.IGNORECASE)
_FIELD_LINE = re.compile(r"^\s*([^:\r\n]{1,80}?)\s*:\s*(.*?)\s*$")


def parse_whois_fields(raw_response: str) -> dict[str, str]:
    """
    Parse "key: value" lines into a mapping of lowercase key to first value.

    Comment lines ('%', '#', '>>>') and empty values are skipped.
    """
    fields: dict[str, str] = {}
    for line in raw_response.splitlines():
        stripped = line.strip()
        if not stripped or stripped[0] in "%#" or stripped.startswith(">>>"):
            continue
        match = _FIELD_LINE.match(line)
        if not match:
            continue
        key, value = match.group(1).strip().lower(), match.group(2).strip()
        if value and key not in fields:
            fields[key] = value
    return fields


def extract_first(fields: dict[str, str], names: tuple[str, ...]) -> Optional[str]:
    """Return the value of the first field name present, in preference order."""
    for name in names:
        value = fields.get(name.lower())
        if value:
            return value
    return None


def parse_whois_date(raw: str) -> Optional[datetime]:
    """
    Parse a WHOIS date string into an aware UTC datetime.

    Accepts ISO-8601 (with 'Z', offsets or fractional seconds) and the
    common registry formats in DATE_FORMATS. Returns None if nothing fits.
    """
    value = raw.strip()
    if not value:
        return None

    iso_candidate = value[:-1] + "+00:00" if value.endswith("Z") else value
    try:
        parsed = datetime.fromisoformat(iso_candidate)
    except ValueError:
        parsed = None

    if parsed is None:
        value = _TZ_SUFFIX.sub("", value)
        for fmt in DATE_FORMATS:
            try:
                parsed = datetime.strptime(value, fmt)
                break
            except ValueError:
                continue

    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class WHOISClient:
    """
    WHOIS client that extracts registration expiry.

    Servers are resolved from the per-TLD map first and from an IANA
    referral otherwise. When the registry answer has no expiry field but
    names a registrar WHOIS server, that server is asked once more.
    """

    WHOIS_SERVERS: dict[str, str] = {
        "com": "whois.verisign-grs.com",
        "net": "whois.verisign-grs.com",
        "org": "whois.pir.org",
        "de": "whois.denic.de",
        "eu": "whois.eu",
        "fr": "whois.nic.fr",
        "io": "whois.nic.io",
        "co": "whois.nic.co",
        "info": "whois.afilias.net",
        "biz": "whois.biz",
        "app": "whois.nic.google",
        "dev": "whois.nic.google",
    }

    def __init__(
        self,
        timeout: float = 10.0,
        custom_servers: Optional[dict[str, str]] = None,
        simulation_mode: bool = False,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """
        Initialize the WHOIS client.

        Args:
            timeout: Budget in seconds for the whole lookup, referrals included
            custom_servers: Optional WHOIS servers per TLD, merged over defaults
            simulation_mode: If True, no real network requests are made
            clock: Optional callable returning the current UTC time
        """
        self._timeout = timeout
        self._simulation_mode = simulation_mode
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._servers = dict(self.WHOIS_SERVERS)
        if custom_servers:
            self._servers.update({k.lower().lstrip("."): v for k, v in custom_servers.items()})

    @property
    def timeout(self) -> float:
        return self._timeout

    async def probe(self, domain: str) -> RegistrationProbeResult:
        """
        Look up the registration expiry for a domain.

        The IANA referral, registry query and registrar referral all share
        one timeout budget.
        """
        if self._simulation_mode:
            return self._get_simulated_result(domain)

        try:
            raw_response = await asyncio.wait_for(self.lookup(domain), timeout=self._timeout)
        except asyncio.TimeoutError:
            return self._error(
                ProbeErrorCode.TIMEOUT,
                f"WHOIS query timed out after {self._timeout}s",
            )
        except socket.error as e:
            return self._error(ProbeErrorCode.NETWORK_ERROR, f"Socket error: {e}")
        except Exception as e:
            return self._error(ProbeErrorCode.NETWORK_ERROR, f"WHOIS check failed: {e}")

        return self.parse_response(raw_response)

    async def lookup(self, domain: str) -> str:
        """
        Return the raw WHOIS text for a domain.

        Raises:
            asyncio.TimeoutError, socket.error: On network failure
        """
        server = self._servers.get(self._extract_tld(domain))
        if server is None:
            server = await self._resolve_server(domain)
        if server is None:
            return ""

        response = await self._query(domain, server)
        fields = parse_whois_fields(response)
        if extract_first(fields, EXPIRY_FIELDS) is None:
            referral = extract_first(fields, ("Registrar WHOIS Server",))
            referral = _clean_server(referral)
            if referral and referral.lower() != server.lower():
                referred = await self._query(domain, referral)
                if referred.strip():
                    return referred
        return response

    def parse_response(self, raw_response: str) -> RegistrationProbeResult:
        """Extract expiry and registrar from raw WHOIS text and classify."""
        fields = parse_whois_fields(raw_response or "")
        registrar = extract_first(fields, REGISTRAR_FIELDS)
        expiry_raw = extract_first(fields, EXPIRY_FIELDS)

        if not expiry_raw:
            return self._error(
                ProbeErrorCode.NO_DATA,
                "No expiry date found in WHOIS data",
                registrar=registrar,
            )

        expiry = parse_whois_date(expiry_raw)
        if expiry is None:
            return self._error(
                ProbeErrorCode.PARSE_ERROR,
                f"Could not parse WHOIS expiry date: {expiry_raw}",
                registrar=registrar,
            )

        days = days_until(expiry, self._clock())
        return RegistrationProbeResult(
            health=classify(days),
            expiry=expiry,
            days_remaining=days,
            registrar=registrar,
        )

    async def _resolve_server(self, domain: str) -> Optional[str]:
        """Ask IANA which WHOIS server is authoritative for the TLD."""
        tld = self._extract_tld(domain)
        response = await self._query(tld, IANA_WHOIS_SERVER)
        server = _clean_server(extract_first(parse_whois_fields(response), REFERRAL_FIELDS))
        if server:
            self._servers[tld] = server
        return server

    async def _query(self, query: str, server: str) -> str:
        """Send one WHOIS query over TCP port 43 and read the full answer."""
        loop = asyncio.get_running_loop()

        def _sync_query() -> str:
            with socket.create_connection((server, WHOIS_PORT), timeout=self._timeout) as sock:
                sock.sendall(f"{query}\r\n".encode("utf-8"))
                response_parts: list[bytes] = []
                while True:
                    data = sock.recv(4096)
                    if not data:
                        break
                    response_parts.append(data)
            return b"".join(response_parts).decode("utf-8", errors="replace")

        return await asyncio.wait_for(
            loop.run_in_executor(None, _sync_query),
            timeout=self._timeout,
        )

    def _extract_tld(self, domain: str) -> str:
        return domain.lower().rstrip(".").rsplit(".", 1)[-1]

    def _error(
        self,
        code: ProbeErrorCode,
        message: str,
        registrar: Optional[str] = None,
    ) -> RegistrationProbeResult:
        return RegistrationProbeResult(
            health=Health.ERROR,
            registrar=registrar,
            error=ProbeError(code=code, message=message),
        )

    def _get_simulated_result(self, domain: str) -> RegistrationProbeResult:
        """
        Return a simulated result for testing.

        Labels starting with 'expired-' expired two days ago, 'soon-' expire
        in ten days, 'broken-' return no WHOIS data; everything else has a
        year left.
        """
        label = domain.split(".", 1)[0]
        if label.startswith("broken-"):
            return self._error(
                ProbeErrorCode.NO_DATA,
                "No expiry date found in WHOIS data",
            )

        if label.startswith("expired-"):
            days = -2
        elif label.startswith("soon-"):
            days = 10
        else:
            days = 365
        now = self._clock()
        expiry = now + timedelta(days=days, hours=1)
        return RegistrationProbeResult(
            health=classify(days),
            expiry=expiry,
            days_remaining=days_until(expiry, now),
            registrar="Simulated Registrar",
        )


def _clean_server(value: Optional[str]) -> Optional[str]:
    """Strip a scheme and path from a referral like 'whois://whois.x.com/'."""
    if not value:
        return None
    server = re.sub(r"^[a-z]+://", "", value.strip(), flags=re.IGNORECASE)
    server = server.split("/", 1)[0].strip()
    return server or None
