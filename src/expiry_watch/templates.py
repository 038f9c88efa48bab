"""
Email rendering for expiry alerts.

Builds the subject line and the HTML body for an AlertMessage. Wording comes
from the i18n catalogue; urgency colour and label depend on days remaining.
"""

from datetime import datetime
from html import escape

from .i18n import get_message
from .models import AlertMessage

URGENCY_COLORS = (
    (1, "#ef4444"),
    (7, "#f97316"),
    (14, "#f59e0b"),
)
DEFAULT_URGENCY_COLOR = "#3b82f6"

_MONTHS = {
    "en": (
        "January", "February", "March", "April", "May", "June", "July",
        "August", "September", "October", "November", "December",
    ),
    "fr": (
        "janvier", "février", "mars", "avril", "mai", "juin", "juillet",
        "août", "septembre", "octobre", "novembre", "décembre",
    ),
}


def urgency_color(days_remaining: int) -> str:
    for limit, color in URGENCY_COLORS:
        if days_remaining <= limit:
            return color
    return DEFAULT_URGENCY_COLOR


def urgency_label(days_remaining: int, language: str = "en") -> str:
    if days_remaining <= 1:
        return get_message("urgency.critical", language)
    if days_remaining <= 7:
        return get_message("urgency.urgent", language)
    return get_message("urgency.attention", language)


def days_left_text(days_remaining: int, language: str = "en") -> str:
    """'5 days left', '1 day left' or 'Expired' for negative counts."""
    if days_remaining < 0:
        return get_message("days.expired", language)
    key = "days.many" if days_remaining > 1 else "days.one"
    return get_message(key, language, days=days_remaining)


def format_date(value: datetime, language: str = "en") -> str:
    """Render a date as '19 October 2026' (or its French equivalent)."""
    months = _MONTHS.get(language, _MONTHS["en"])
    return f"{value.day:02d} {months[value.month - 1]} {value.year}"


def facet_name(message: AlertMessage, long: bool = False) -> str:
    key = "facet.ssl" if message.is_certificate else "facet.domain"
    if long:
        key += "_long"
    return get_message(key, message.language)


def build_alert_subject(message: AlertMessage) -> str:
    """
    Build the alert email subject.

    One day or less is CRITICAL ("expires tomorrow"), a week or less is
    URGENT, anything longer is a plain notice.
    """
    days = message.days_remaining
    params = {
        "facet": facet_name(message),
        "domain": message.domain_name,
        "days": days,
    }
    if days <= 1:
        return get_message("email.subject_critical", message.language, **params)
    if days <= 7:
        return get_message("email.subject_urgent", message.language, **params)
    return get_message("email.subject_normal", message.language, **params)


def build_alert_html(message: AlertMessage) -> str:
    """Build the HTML body of an alert email."""
    lang = message.language
    color = urgency_color(message.days_remaining)
    facet = escape(facet_name(message))
    domain = escape(message.domain_name)
    date_text = escape(format_date(message.expiry_date, lang))
    remaining = escape(days_left_text(message.days_remaining, lang))
    badge = f"{escape(urgency_label(message.days_remaining, lang))} - {remaining}"
    intro = get_message(
        "email.intro",
        lang,
        facet=f'<strong style="color:#fff">{facet}</strong>',
        domain=f'<strong style="color:#fff">{domain}</strong>',
        date=f'<strong style="color:#fff">{date_text}</strong>',
    )

    rows = [
        (get_message("email.label_domain", lang), domain, "#fff"),
        (get_message("email.label_type", lang),
         escape(get_message("email.type_value", lang, facet=facet_name(message))), "#fff"),
        (get_message("email.label_expiry", lang), date_text, "#fff"),
        (get_message("email.label_remaining", lang), remaining, color),
    ]
    table_rows = "\n".join(
        f'<tr><td style="padding:16px 20px;border-bottom:1px solid #334155">'
        f'<span style="font-size:12px;text-transform:uppercase;color:#64748b">{escape(label)}</span><br>'
        f'<span style="font-size:15px;font-weight:500;color:{value_color}">{value}</span>'
        f'</td></tr>'
        for label, value, value_color in rows
    )

    return f"""<!DOCTYPE html>
<html lang="{lang}">
<head><meta charset="utf-8"><meta name="viewport" content="width=device-width,initial-scale=1"></head>
<body style="margin:0;padding:0;background-color:#0b1120;font-family:-apple-system,'Segoe UI',Roboto,sans-serif">
<table width="100%" cellpadding="0" cellspacing="0" style="padding:40px 20px"><tr><td align="center">
<table width="560" cellpadding="0" cellspacing="0" style="background-color:#0f1729;border-radius:16px">
<tr><td style="padding:32px 32px 0;text-align:center">
<h1 style="margin:16px 0 0;font-size:20px;color:#ffffff">{escape(get_message("email.title", lang))}</h1>
</td></tr>
<tr><td style="padding:24px 32px 0;text-align:center">
<div style="display:inline-block;background-color:{color}20;border:1px solid {color}40;border-radius:24px;padding:6px 16px;font-size:13px;font-weight:600;color:{color}">{badge}</div>
</td></tr>
<tr><td style="padding:24px 32px">
<p style="margin:0 0 16px;font-size:15px;line-height:1.6;color:#cbd5e1">{intro}</p>
<table width="100%" cellpadding="0" cellspacing="0" style="background-color:#1e293b;border-radius:12px">
{table_rows}
</table>
</td></tr>
<tr><td style="padding:0 32px 32px;text-align:center">
<a href="{escape(message.dashboard_url, quote=True)}" style="display:inline-block;background-color:#2563eb;color:#fff;text-decoration:none;font-size:14px;font-weight:600;padding:12px 28px;border-radius:10px">{escape(get_message("email.cta", lang))}</a>
</td></tr>
<tr><td style="padding:20px 32px;border-top:1px solid #1e293b;text-align:center">
<p style="margin:0;font-size:12px;color:#475569">{escape(get_message("email.footer", lang))}</p>
</td></tr>
</table>
</td></tr></table>
</body>
</html>"""
