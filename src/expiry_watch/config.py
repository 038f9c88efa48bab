"""
Configuration dataclasses for the expiry watch system.

This module defines all configuration structures used throughout the system
(probe timeouts, batch fan-out, SMTP and webhook delivery, plan quotas,
persistence, logging and API secrets) together with loaders for JSON files
and the process environment.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .enums import PlanId
from .exceptions import ExpiryWatchError

ENV_PREFIX = "EXPIRY_WATCH_"
DEFAULT_STATE_FILE = Path.home() / ".expiry_watch" / "state.json"
DEFAULT_HISTORY_PER_DOMAIN = 100
DEFAULT_CONFIG_FILE = Path.home() / ".expiry_watch" / "config.json"
DEFAULT_DASHBOARD_URL = "https://expiry-watch.example/dashboard"


@dataclass
class ProbeConfig:
    """Timeouts and endpoints for the TLS and WHOIS probes."""

    tls_timeout_seconds: float = 5.0
    whois_timeout_seconds: float = 10.0
    tls_port: int = 443
    whois_servers: dict[str, str] = field(default_factory=dict)


@dataclass
class BatchConfig:
    """Batch run behaviour."""

    max_concurrency: int = 5
    dashboard_url: str = DEFAULT_DASHBOARD_URL


@dataclass
class SmtpConfig:
    """Email channel configuration."""

    host: str
    port: int = 587
    username: str = ""
    password: str = ""
    from_address: str = "Expiry Watch <alerts@expiry-watch.example>"
    use_tls: bool = True
    timeout_seconds: float = 10.0


@dataclass
class WebhookSettings:
    """Webhook channel configuration."""

    timeout_seconds: float = 10.0
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class PlanConfig:
    """Monitored-domain limit per plan. None means unlimited."""

    limits: dict[PlanId, Optional[int]] = field(
        default_factory=lambda: {
            PlanId.FREE: 3,
            PlanId.PRO: 20,
            PlanId.AGENCY: None,
        }
    )

    def limit_for(self, plan: PlanId) -> Optional[int]:
        return self.limits.get(plan, self.limits.get(PlanId.FREE))


@dataclass
class PersistenceConfig:
    """Persistence and state storage configuration."""

    state_file_path: Path = DEFAULT_STATE_FILE
    hmac_secret: str = "default-secret-change-me"
    # Oldest check history rows beyond this count are pruned per domain
    history_per_domain: int = DEFAULT_HISTORY_PER_DOMAIN


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "info"
    output_format: str = "text"  # 'json', 'text', 'both'


@dataclass
class ApiConfig:
    """Secrets guarding the HTTP interface."""

    cron_secret: str = ""
    api_token: str = ""


@dataclass
class AppConfig:
    """Main configuration combining all sub-configurations."""

    probe: ProbeConfig = field(default_factory=ProbeConfig)
    batch: BatchConfig = field(default_factory=BatchConfig)
    smtp: Optional[SmtpConfig] = None
    webhook: WebhookSettings = field(default_factory=WebhookSettings)
    plans: PlanConfig = field(default_factory=PlanConfig)
    persistence: PersistenceConfig = field(default_factory=PersistenceConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    api: ApiConfig = field(default_factory=ApiConfig)
    language: str = "en"  # 'en' or 'fr'
    simulation_mode: bool = False


def create_default_config(
    simulation_mode: bool = False,
    language: str = "en",
    state_file: Optional[Path] = None,
) -> AppConfig:
    """
    Create a default configuration.

    Args:
        simulation_mode: Enable simulation mode (no real network requests)
        language: Notification language ('en' or 'fr')
        state_file: Path to the state file

    Returns:
        AppConfig with default settings
    """
    return AppConfig(
        persistence=PersistenceConfig(state_file_path=state_file or DEFAULT_STATE_FILE),
        language=language,
        simulation_mode=simulation_mode,
    )


def config_from_dict(data: dict) -> AppConfig:
    """
    Build an AppConfig from a decoded JSON document.

    Missing sections fall back to their defaults.

    Raises:
        ExpiryWatchError: If a section has the wrong shape
    """
    try:
        probe_data = data.get("probe", {})
        probe = ProbeConfig(
            tls_timeout_seconds=float(probe_data.get("tls_timeout_seconds", 5.0)),
            whois_timeout_seconds=float(probe_data.get("whois_timeout_seconds", 10.0)),
            tls_port=int(probe_data.get("tls_port", 443)),
            whois_servers=dict(probe_data.get("whois_servers", {})),
        )

        batch_data = data.get("batch", {})
        batch = BatchConfig(
            max_concurrency=int(batch_data.get("max_concurrency", 5)),
            dashboard_url=batch_data.get("dashboard_url", DEFAULT_DASHBOARD_URL),
        )

        smtp = None
        smtp_data = data.get("smtp") or {}
        if smtp_data.get("host"):
            smtp = SmtpConfig(
                host=smtp_data["host"],
                port=int(smtp_data.get("port", 587)),
                username=smtp_data.get("username", ""),
                password=smtp_data.get("password", ""),
                from_address=smtp_data.get("from_address", SmtpConfig.from_address),
                use_tls=bool(smtp_data.get("use_tls", True)),
                timeout_seconds=float(smtp_data.get("timeout_seconds", 10.0)),
            )

        webhook_data = data.get("webhook", {})
        webhook = WebhookSettings(
            timeout_seconds=float(webhook_data.get("timeout_seconds", 10.0)),
            headers=dict(webhook_data.get("headers", {})),
        )

        plans = PlanConfig()
        for plan_name, limit in data.get("plans", {}).items():
            plans.limits[PlanId(plan_name)] = None if limit in (None, -1) else int(limit)

        persistence_data = data.get("persistence", {})
        state_file_path = persistence_data.get("state_file_path")
        persistence = PersistenceConfig(
            state_file_path=Path(state_file_path) if state_file_path else DEFAULT_STATE_FILE,
            hmac_secret=persistence_data.get("hmac_secret", "default-secret-change-me"),
            history_per_domain=int(
                persistence_data.get("history_per_domain", DEFAULT_HISTORY_PER_DOMAIN)
            ),
        )

        logging_data = data.get("logging", {})
        logging_config = LoggingConfig(
            level=logging_data.get("level", "info"),
            output_format=logging_data.get("output_format", "text"),
        )

        api_data = data.get("api", {})
        api = ApiConfig(
            cron_secret=api_data.get("cron_secret", ""),
            api_token=api_data.get("api_token", ""),
        )
    except (TypeError, ValueError, AttributeError) as e:
        raise ExpiryWatchError(
            code="invalid_config",
            message=f"Invalid configuration: {e}",
        ) from e

    return AppConfig(
        probe=probe,
        batch=batch,
        smtp=smtp,
        webhook=webhook,
        plans=plans,
        persistence=persistence,
        logging=logging_config,
        api=api,
        language=data.get("language", "en"),
        simulation_mode=bool(data.get("simulation_mode", False)),
    )


def config_to_dict(config: AppConfig) -> dict:
    """Serialize an AppConfig into a JSON-compatible dictionary."""
    return {
        "probe": {
            "tls_timeout_seconds": config.probe.tls_timeout_seconds,
            "whois_timeout_seconds": config.probe.whois_timeout_seconds,
            "tls_port": config.probe.tls_port,
            "whois_servers": config.probe.whois_servers,
        },
        "batch": {
            "max_concurrency": config.batch.max_concurrency,
            "dashboard_url": config.batch.dashboard_url,
        },
        "smtp": {
            "host": config.smtp.host,
            "port": config.smtp.port,
            "username": config.smtp.username,
            "password": config.smtp.password,
            "from_address": config.smtp.from_address,
            "use_tls": config.smtp.use_tls,
            "timeout_seconds": config.smtp.timeout_seconds,
        } if config.smtp else None,
        "webhook": {
            "timeout_seconds": config.webhook.timeout_seconds,
            "headers": config.webhook.headers,
        },
        "plans": {
            plan.value: (-1 if limit is None else limit)
            for plan, limit in config.plans.limits.items()
        },
        "persistence": {
            "state_file_path": str(config.persistence.state_file_path),
            "hmac_secret": config.persistence.hmac_secret,
            "history_per_domain": config.persistence.history_per_domain,
        },
        "logging": {
            "level": config.logging.level,
            "output_format": config.logging.output_format,
        },
        "api": {
            "cron_secret": config.api.cron_secret,
            "api_token": config.api.api_token,
        },
        "language": config.language,
        "simulation_mode": config.simulation_mode,
    }


def load_config_from_file(config_path: Path) -> Optional[AppConfig]:
    """
    Load configuration from a JSON file.

    Returns:
        AppConfig if the file exists, None otherwise

    Raises:
        ExpiryWatchError: If the file cannot be parsed
    """
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        return None
    except json.JSONDecodeError as e:
        raise ExpiryWatchError(
            code="invalid_config",
            message=f"Failed to parse config file: {e}",
            details={"path": str(config_path)},
        ) from e

    return config_from_dict(data)


def save_config_to_file(config: AppConfig, config_path: Path) -> None:
    """Save configuration to a JSON file, creating parent directories."""
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w", encoding="utf-8") as f:
        json.dump(config_to_dict(config), f, indent=2, ensure_ascii=False)


def _env(name: str, default: str = "") -> str:
    return (os.getenv(ENV_PREFIX + name, default) or default).strip()


def _float_env(name: str, default: float) -> float:
    try:
        return float(_env(name, str(default)))
    except ValueError:
        return default


def _int_env(name: str, default: int) -> int:
    try:
        return int(_env(name, str(default)))
    except ValueError:
        return default


def config_from_env(base: Optional[AppConfig] = None, dotenv_path: Optional[Path] = None) -> AppConfig:
    """
    Overlay EXPIRY_WATCH_* environment variables onto a configuration.

    A .env file is loaded first (without overriding variables that are
    already set in the process environment).
    """
    load_dotenv(dotenv_path=dotenv_path)
    config = base or create_default_config()

    config.probe.tls_timeout_seconds = _float_env("TLS_TIMEOUT", config.probe.tls_timeout_seconds)
    config.probe.whois_timeout_seconds = _float_env("WHOIS_TIMEOUT", config.probe.whois_timeout_seconds)
    config.batch.max_concurrency = _int_env("MAX_CONCURRENCY", config.batch.max_concurrency)
    config.batch.dashboard_url = _env("DASHBOARD_URL", config.batch.dashboard_url)

    smtp_host = _env("SMTP_HOST")
    if smtp_host:
        config.smtp = SmtpConfig(
            host=smtp_host,
            port=_int_env("SMTP_PORT", 587),
            username=_env("SMTP_USERNAME"),
            password=_env("SMTP_PASSWORD"),
            from_address=_env("SMTP_FROM", SmtpConfig.from_address),
            use_tls=_env("SMTP_TLS", "1") != "0",
        )

    state_file = _env("STATE_FILE")
    if state_file:
        config.persistence.state_file_path = Path(state_file)
    config.persistence.hmac_secret = _env("HMAC_SECRET", config.persistence.hmac_secret)
    config.persistence.history_per_domain = _int_env(
        "HISTORY_PER_DOMAIN", config.persistence.history_per_domain
    )

    config.api.cron_secret = _env("CRON_SECRET", config.api.cron_secret)
    config.api.api_token = _env("API_TOKEN", config.api.api_token)

    config.logging.level = _env("LOG_LEVEL", config.logging.level)
    language = _env("LANGUAGE", config.language).lower()
    config.language = language if language in ("en", "fr") else "en"
    config.simulation_mode = _env("SIMULATION", "1" if config.simulation_mode else "0") == "1"
    return config
