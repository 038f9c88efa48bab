"""
Internationalization (i18n) module for the expiry watch system.

Provides translations for all user-facing notification text in English (en)
and French (fr).
"""

from typing import Optional


# Supported languages
SUPPORTED_LANGUAGES = frozenset({"en", "fr"})
DEFAULT_LANGUAGE = "en"


# Structure: {message_key: {language_code: translated_message}}
TRANSLATIONS: dict[str, dict[str, str]] = {
    # Facet names
    "facet.ssl": {
        "en": "SSL",
        "fr": "SSL",
    },
    "facet.domain": {
        "en": "Domain",
        "fr": "Domaine",
    },
    "facet.ssl_long": {
        "en": "SSL certificate",
        "fr": "Certificat SSL",
    },
    "facet.domain_long": {
        "en": "Domain name",
        "fr": "Nom de domaine",
    },

    # Urgency
    "urgency.critical": {
        "en": "CRITICAL",
        "fr": "CRITIQUE",
    },
    "urgency.urgent": {
        "en": "URGENT",
        "fr": "URGENT",
    },
    "urgency.attention": {
        "en": "ATTENTION",
        "fr": "ATTENTION",
    },
    "days.one": {
        "en": "{days} day left",
        "fr": "{days} jour restant",
    },
    "days.many": {
        "en": "{days} days left",
        "fr": "{days} jours restants",
    },
    "days.expired": {
        "en": "Expired",
        "fr": "Expiré",
    },

    # Email
    "email.subject_critical": {
        "en": "[CRITICAL] {facet} for {domain} expires tomorrow",
        "fr": "[CRITIQUE] {facet} de {domain} expire demain",
    },
    "email.subject_urgent": {
        "en": "[URGENT] {facet} for {domain} expires in {days}d",
        "fr": "[URGENT] {facet} de {domain} expire dans {days}j",
    },
    "email.subject_normal": {
        "en": "{facet} for {domain} expires in {days} days",
        "fr": "{facet} de {domain} expire dans {days} jours",
    },
    "email.title": {
        "en": "Expiry Watch Alert",
        "fr": "Alerte Expiry Watch",
    },
    "email.intro": {
        "en": "The {facet} of {domain} expires on {date}.",
        "fr": "Le {facet} de {domain} expire le {date}.",
    },
    "email.label_domain": {
        "en": "Domain",
        "fr": "Domaine",
    },
    "email.label_type": {
        "en": "Type",
        "fr": "Type",
    },
    "email.type_value": {
        "en": "{facet} expiry",
        "fr": "Expiration {facet}",
    },
    "email.label_expiry": {
        "en": "Expiry date",
        "fr": "Date d'expiration",
    },
    "email.label_remaining": {
        "en": "Time left",
        "fr": "Temps restant",
    },
    "email.cta": {
        "en": "Open the dashboard",
        "fr": "Voir le dashboard",
    },
    "email.footer": {
        "en": "Sent by Expiry Watch - SSL & domain monitoring",
        "fr": "Envoyé par Expiry Watch - Monitoring SSL & Domaines",
    },

    # Webhook
    "webhook.summary": {
        "en": "Expiry Watch alert: {facet} for {domain} - {status}",
        "fr": "Alerte Expiry Watch : {facet} de {domain} - {status}",
    },
    "webhook.title": {
        "en": "Expiry Watch alert",
        "fr": "Alerte Expiry Watch",
    },
    "webhook.label_domain": {
        "en": "Domain",
        "fr": "Domaine",
    },
    "webhook.label_type": {
        "en": "Type",
        "fr": "Type",
    },
    "webhook.label_expiry": {
        "en": "Expiry",
        "fr": "Expiration",
    },
    "webhook.label_status": {
        "en": "Status",
        "fr": "Statut",
    },
    "webhook.label_dashboard": {
        "en": "Dashboard",
        "fr": "Dashboard",
    },
    "webhook.button": {
        "en": "Open the dashboard",
        "fr": "Voir le tableau de bord",
    },
    "webhook.test_ok": {
        "en": "Test webhook delivered",
        "fr": "Webhook de test envoyé",
    },
    "webhook.test_failed": {
        "en": "Test webhook failed: {error}",
        "fr": "Échec du webhook de test : {error}",
    },

    # CLI
    "cli.run_summary": {
        "en": "Checked {checked} domain(s), sent {alerts} alert(s)",
        "fr": "{checked} domaine(s) vérifié(s), {alerts} alerte(s) envoyée(s)",
    },
    "cli.run_failed": {
        "en": "Batch run failed: {error}",
        "fr": "Échec du traitement : {error}",
    },
    "cli.config_created": {
        "en": "Configuration written to {path}",
        "fr": "Configuration écrite dans {path}",
    },
    "cli.config_valid": {
        "en": "Configuration is valid",
        "fr": "La configuration est valide",
    },
    "cli.config_missing": {
        "en": "No configuration file at {path}, using defaults",
        "fr": "Aucun fichier de configuration à {path}, valeurs par défaut utilisées",
    },
    "cli.domain_added": {
        "en": "Added {domain} ({id})",
        "fr": "{domain} ajouté ({id})",
    },
}


def get_message(
    key: str,
    language: Optional[str] = None,
    **kwargs,
) -> str:
    """
    Get a translated message by key.

    Args:
        key: The message key (e.g., 'email.subject_urgent')
        language: Language code ('en' or 'fr'). Defaults to DEFAULT_LANGUAGE.
        **kwargs: Format arguments for the message template

    Returns:
        The translated and formatted message string.
        If the key is not found, returns the key itself.
        If the language is not found, falls back to DEFAULT_LANGUAGE.

    Examples:
        >>> get_message('urgency.critical', 'fr')
        'CRITIQUE'
        >>> get_message('days.many', 'en', days=5)
        '5 days left'
    """
    if language is None or language not in SUPPORTED_LANGUAGES:
        language = DEFAULT_LANGUAGE

    translations = TRANSLATIONS.get(key)
    if translations is None:
        return key

    message = translations.get(language) or translations.get(DEFAULT_LANGUAGE)
    if message is None:
        return key

    if kwargs:
        try:
            message = message.format(**kwargs)
        except KeyError:
            # Missing placeholder argument: keep the raw template
            pass

    return message


def get_all_message_keys() -> set[str]:
    return set(TRANSLATIONS.keys())


def get_missing_translations(language: str) -> set[str]:
    """Get all message keys that have no translation for a language."""
    return {key for key, translations in TRANSLATIONS.items() if language not in translations}
