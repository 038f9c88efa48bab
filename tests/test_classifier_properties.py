"""
Property-based tests for status classification and alert tier matching.

Uses Hypothesis for property-based testing of the pure day-count rules.
"""

from datetime import datetime, timedelta, timezone

from hypothesis import given, settings
from hypothesis import strategies as st

from expiry_watch.classifier import (
    ALERT_THRESHOLDS,
    classify,
    days_until,
    find_threshold,
    to_cert_status,
    to_registration_status,
)
from expiry_watch.enums import CertStatus, Health, RegistrationStatus


NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


class TestClassifyProperty:
    """Health tiers from days remaining."""

    @given(days=st.integers(min_value=31, max_value=5000))
    @settings(max_examples=100)
    def test_more_than_thirty_days_is_healthy(self, days: int) -> None:
        assert classify(days) is Health.HEALTHY

    @given(days=st.integers(min_value=7, max_value=30))
    @settings(max_examples=100)
    def test_seven_to_thirty_days_is_warning(self, days: int) -> None:
        assert classify(days) is Health.WARNING

    @given(days=st.integers(min_value=-1000, max_value=6))
    @settings(max_examples=100)
    def test_below_seven_days_is_critical(self, days: int) -> None:
        assert classify(days) is Health.CRITICAL

    @given(days=st.one_of(st.none(), st.integers(min_value=-1000, max_value=5000)))
    @settings(max_examples=100)
    def test_failed_probe_is_error_regardless_of_days(self, days) -> None:
        assert classify(days, failed=True) is Health.ERROR

    def test_unknown_days_is_error(self) -> None:
        assert classify(None) is Health.ERROR

    def test_boundaries(self) -> None:
        assert classify(45) is Health.HEALTHY
        assert classify(30) is Health.WARNING
        assert classify(10) is Health.WARNING
        assert classify(7) is Health.WARNING
        assert classify(3) is Health.CRITICAL
        assert classify(-1) is Health.CRITICAL


class TestStatusMappingProperty:
    """Health tiers map one-to-one onto the stored status enums."""

    def test_certificate_statuses(self) -> None:
        assert to_cert_status(Health.HEALTHY) is CertStatus.VALID
        assert to_cert_status(Health.WARNING) is CertStatus.EXPIRING_SOON
        assert to_cert_status(Health.CRITICAL) is CertStatus.EXPIRED
        assert to_cert_status(Health.ERROR) is CertStatus.ERROR

    def test_registration_statuses(self) -> None:
        assert to_registration_status(Health.HEALTHY) is RegistrationStatus.ACTIVE
        assert to_registration_status(Health.WARNING) is RegistrationStatus.EXPIRING_SOON
        assert to_registration_status(Health.CRITICAL) is RegistrationStatus.EXPIRED
        assert to_registration_status(Health.ERROR) is RegistrationStatus.ERROR


class TestFindThresholdProperty:
    """The tightest alert tier that still covers the day count."""

    def test_examples(self) -> None:
        assert find_threshold(6) == 7
        assert find_threshold(25) == 30
        assert find_threshold(0) == 1
        assert find_threshold(1) == 1
        assert find_threshold(14) == 14
        assert find_threshold(-5) == 1
        assert find_threshold(31) is None

    @given(days=st.integers(min_value=0, max_value=30))
    @settings(max_examples=100)
    def test_threshold_is_smallest_tier_not_below_days(self, days: int) -> None:
        threshold = find_threshold(days)
        assert threshold is not None
        assert threshold >= days
        assert all(t < days for t in ALERT_THRESHOLDS if t < threshold)

    @given(days=st.integers(min_value=-5000, max_value=-1))
    @settings(max_examples=100)
    def test_expired_maps_to_smallest_tier(self, days: int) -> None:
        assert find_threshold(days) == ALERT_THRESHOLDS[0]

    @given(days=st.integers(min_value=31, max_value=5000))
    @settings(max_examples=100)
    def test_beyond_largest_tier_has_no_threshold(self, days: int) -> None:
        assert find_threshold(days) is None


class TestDaysUntilProperty:
    """Whole days remaining, rounded down."""

    @given(
        days=st.integers(min_value=-400, max_value=400),
        extra_minutes=st.integers(min_value=0, max_value=24 * 60 - 1),
    )
    @settings(max_examples=100)
    def test_partial_days_are_floored(self, days: int, extra_minutes: int) -> None:
        expiry = NOW + timedelta(days=days, minutes=extra_minutes)
        assert days_until(expiry, NOW) == days

    def test_naive_expiry_is_treated_as_utc(self) -> None:
        expiry = datetime(2026, 10, 24, 12, 0)
        assert days_until(expiry, NOW) == 5

    def test_passed_expiry_is_negative(self) -> None:
        assert days_until(NOW - timedelta(hours=1), NOW) == -1
