"""
Property-based tests for alert email rendering.
"""

from datetime import datetime, timezone

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from expiry_watch.enums import AlertKind
from expiry_watch.models import AlertMessage
from expiry_watch.templates import (
    DEFAULT_URGENCY_COLOR,
    build_alert_html,
    build_alert_subject,
    days_left_text,
    format_date,
    urgency_color,
    urgency_label,
)


EXPIRY = datetime(2026, 10, 24, 9, 30, tzinfo=timezone.utc)


def make_message(
    days: int = 5,
    kind: AlertKind = AlertKind.SSL_EXPIRY,
    domain: str = "example.com",
    language: str = "en",
) -> AlertMessage:
    return AlertMessage(
        domain_name=domain,
        kind=kind,
        days_remaining=days,
        expiry_date=EXPIRY,
        dashboard_url="https://app.example/dashboard?tab=alerts&x=1",
        language=language,
    )


class TestSubjectProperty:
    """Subject wording follows the days remaining."""

    def test_examples(self) -> None:
        assert build_alert_subject(make_message(1)) == "[CRITICAL] SSL for example.com expires tomorrow"
        assert build_alert_subject(make_message(5)) == "[URGENT] SSL for example.com expires in 5d"
        assert (
            build_alert_subject(make_message(25, AlertKind.DOMAIN_EXPIRY))
            == "Domain for example.com expires in 25 days"
        )

    def test_french(self) -> None:
        subject = build_alert_subject(make_message(1, AlertKind.DOMAIN_EXPIRY, language="fr"))
        assert subject == "[CRITIQUE] Domaine de example.com expire demain"

    @given(days=st.integers(min_value=-30, max_value=60))
    @settings(max_examples=100)
    def test_prefix_by_range(self, days: int) -> None:
        subject = build_alert_subject(make_message(days))
        assert "example.com" in subject
        if days <= 1:
            assert subject.startswith("[CRITICAL]")
        elif days <= 7:
            assert subject.startswith("[URGENT]")
        else:
            assert not subject.startswith("[")


class TestUrgencyProperty:
    """Colour and label get more alarming as expiry nears."""

    @pytest.mark.parametrize(
        "days,color",
        [(-3, "#ef4444"), (1, "#ef4444"), (2, "#f97316"), (7, "#f97316"),
         (8, "#f59e0b"), (14, "#f59e0b"), (15, DEFAULT_URGENCY_COLOR)],
    )
    def test_colors(self, days: int, color: str) -> None:
        assert urgency_color(days) == color

    @given(days=st.integers(min_value=-30, max_value=60))
    @settings(max_examples=100)
    def test_labels(self, days: int) -> None:
        label = urgency_label(days)
        if days <= 1:
            assert label == "CRITICAL"
        elif days <= 7:
            assert label == "URGENT"
        else:
            assert label == "ATTENTION"

    def test_days_text(self) -> None:
        assert days_left_text(-1) == "Expired"
        assert days_left_text(0) == "0 day left"
        assert days_left_text(1) == "1 day left"
        assert days_left_text(12) == "12 days left"
        assert days_left_text(12, "fr") == "12 jours restants"


class TestDateFormatting:
    """Dates use the day, the month name and the year."""

    def test_english(self) -> None:
        assert format_date(EXPIRY) == "24 October 2026"

    def test_french(self) -> None:
        assert format_date(datetime(2026, 8, 3, tzinfo=timezone.utc), "fr") == "03 août 2026"

    def test_unknown_language_uses_english(self) -> None:
        assert format_date(EXPIRY, "de") == "24 October 2026"


class TestHtmlBody:
    """The HTML body carries the alert details with values escaped."""

    def test_contains_details(self) -> None:
        html = build_alert_html(make_message(5))
        assert html.startswith("<!DOCTYPE html>")
        assert '<html lang="en">' in html
        assert "24 October 2026" in html
        assert "5 days left" in html
        assert "URGENT" in html
        assert "#f97316" in html
        assert 'href="https://app.example/dashboard?tab=alerts&amp;x=1"' in html

    def test_french_body(self) -> None:
        html = build_alert_html(make_message(20, AlertKind.DOMAIN_EXPIRY, language="fr"))
        assert '<html lang="fr">' in html
        assert "Domaine" in html
        assert "20 jours restants" in html

    def test_domain_is_escaped(self) -> None:
        html = build_alert_html(make_message(5, domain="<b>evil</b>.com"))
        assert "<b>evil</b>" not in html
        assert "&lt;b&gt;evil&lt;/b&gt;.com" in html
