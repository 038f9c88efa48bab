"""
Status classification and alert threshold matching.

Pure functions that turn "days remaining" into a health tier, map that tier
onto the stored status enums, and pick the tightest alert tier that applies.
"""

import math
from datetime import datetime, timezone
from typing import Optional

from .enums import CertStatus, Health, RegistrationStatus

# Alert tiers in days, ascending so the first match is the tightest one.
ALERT_THRESHOLDS: tuple[int, ...] = (1, 7, 14, 30)

HEALTHY_ABOVE_DAYS = 30
WARNING_FROM_DAYS = 7

SECONDS_PER_DAY = 86400


def days_until(expiry: datetime, now: Optional[datetime] = None) -> int:
    """
    Whole days from now until expiry, rounded down.

    Negative once the expiry has passed.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    if expiry.tzinfo is None:
        expiry = expiry.replace(tzinfo=timezone.utc)
    return math.floor((expiry - now).total_seconds() / SECONDS_PER_DAY)


def classify(days_remaining: Optional[int], failed: bool = False) -> Health:
    """
    Classify a probe outcome.

    Args:
        days_remaining: Whole days until expiry (may be negative)
        failed: True when the probe itself failed

    Returns:
        ERROR when the probe failed or no day count is known, otherwise
        HEALTHY above 30 days, WARNING from 7 to 30 days, CRITICAL below 7.
    """
    if failed or days_remaining is None:
        return Health.ERROR
    if days_remaining > HEALTHY_ABOVE_DAYS:
        return Health.HEALTHY
    if days_remaining >= WARNING_FROM_DAYS:
        return Health.WARNING
    return Health.CRITICAL


_CERT_STATUS = {
    Health.HEALTHY: CertStatus.VALID,
    Health.WARNING: CertStatus.EXPIRING_SOON,
    Health.CRITICAL: CertStatus.EXPIRED,
    Health.ERROR: CertStatus.ERROR,
}

_REGISTRATION_STATUS = {
    Health.HEALTHY: RegistrationStatus.ACTIVE,
    Health.WARNING: RegistrationStatus.EXPIRING_SOON,
    Health.CRITICAL: RegistrationStatus.EXPIRED,
    Health.ERROR: RegistrationStatus.ERROR,
}


def to_cert_status(health: Health) -> CertStatus:
    return _CERT_STATUS[health]


def to_registration_status(health: Health) -> RegistrationStatus:
    return _REGISTRATION_STATUS[health]


def find_threshold(days_remaining: int) -> Optional[int]:
    """
    Return the tightest alert tier for a day count, or None.

    Already-expired resources (negative days) always map to the smallest
    tier. e.g. 6 -> 7, 25 -> 30, 0 -> 1, -5 -> 1, 35 -> None
    """
    if days_remaining < 0:
        return ALERT_THRESHOLDS[0]
    for threshold in ALERT_THRESHOLDS:
        if days_remaining <= threshold:
            return threshold
    return None
