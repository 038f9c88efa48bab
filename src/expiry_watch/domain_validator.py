"""
Domain validation and normalization.

Turns user input such as "HTTPS://Example.com:8443/path" into the canonical
host name that is stored and probed ("example.com"), and rejects input that
is not syntactically a domain name before any network work happens.
"""

import re
from dataclasses import dataclass
from typing import Optional

import idna

from .exceptions import ValidationError

MIN_DOMAIN_LENGTH = 3
MAX_DOMAIN_LENGTH = 253

SCHEME_PATTERN = re.compile(r"^[a-z][a-z0-9+.-]*://", re.IGNORECASE)

# One RFC 1123 label: 1-63 chars, alphanumeric at both ends
LABEL_PATTERN = re.compile(r"^(?!-)[a-z0-9-]{1,63}(?<!-)$")

# Control characters, whitespace and punctuation that never appear in a host
FORBIDDEN_CHARS_PATTERN = re.compile(r"[\x00-\x20\x7f!@#$%^&*()+=\[\]{}|\\;\"'<>,`~]")


@dataclass
class DomainValidationResult:
    valid: bool
    canonical_domain: Optional[str]
    error: Optional[str] = None


def clean_domain(raw: str) -> str:
    """
    Normalize raw input to a bare, lowercase host name.

    Strips surrounding whitespace, a URL scheme, anything after the first
    slash or question mark, a port suffix and a trailing dot.
    """
    host = SCHEME_PATTERN.sub("", (raw or "").strip().lower())
    host = re.split(r"[/?]", host, maxsplit=1)[0]
    host = host.partition(":")[0]
    return host.rstrip(".")


def to_ascii(host: str) -> str:
    """
    IDNA-encode a host that carries non-ASCII characters.

    Raises:
        ValidationError: If the host cannot be encoded
    """
    if host.isascii():
        return host
    try:
        return idna.encode(host, uts46=True).decode("ascii")
    except idna.IDNAError as e:
        raise ValidationError(
            code="idna_error",
            message=f"Cannot encode international domain: {e}",
            details={"domain": host},
        ) from e


class DomainValidator:
    """
    Checks that a host is a multi-label domain made of valid labels.

    Input is cleaned with clean_domain and IDNA-encoded first, so the result
    is always the A-label form that gets stored and probed.
    """

    def __init__(self, min_length: int = MIN_DOMAIN_LENGTH) -> None:
        self._min_length = min_length

    def validate(self, raw_domain: str) -> DomainValidationResult:
        host = clean_domain(raw_domain)
        if not host:
            return DomainValidationResult(False, None, "Domain input is empty")
        if FORBIDDEN_CHARS_PATTERN.search(host):
            return DomainValidationResult(False, None, "Domain contains forbidden characters")

        try:
            host = to_ascii(host)
        except ValidationError as e:
            return DomainValidationResult(False, None, e.message)

        labels = host.split(".")
        well_formed = (
            self._min_length <= len(host) <= MAX_DOMAIN_LENGTH
            and len(labels) >= 2
            and all(LABEL_PATTERN.match(label) for label in labels)
        )
        if not well_formed:
            return DomainValidationResult(False, None, "Invalid domain name")
        return DomainValidationResult(True, host)


def validate_domain(raw_domain: str) -> str:
    """
    Return the canonical domain or raise.

    Raises:
        ValidationError: If the input is not a well-formed domain name
    """
    result = DomainValidator().validate(raw_domain)
    if not result.valid:
        raise ValidationError(
            code="invalid_domain",
            message=result.error or "Invalid domain name",
            details={"raw_input": raw_domain},
        )
    return result.canonical_domain
