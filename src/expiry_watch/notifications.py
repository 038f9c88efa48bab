"""
Notification dispatcher module for the expiry watch system.

Provides the email (SMTP) and webhook (HTTP POST) channels, the webhook
payload builders selected by destination URL, and a dispatcher that attempts
every enabled channel independently so one failing channel never prevents
another from being tried.
"""

import asyncio
import smtplib
import ssl
from abc import abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import TYPE_CHECKING, Callable, Optional, Protocol, runtime_checkable
from urllib.parse import urlparse

import httpx

from .config import SmtpConfig, WebhookSettings
from .enums import AlertKind, LogLevel
from .exceptions import ValidationError
from .i18n import get_message
from .models import AlertMessage, NotificationPreference
from .templates import (
    build_alert_html,
    build_alert_subject,
    days_left_text,
    facet_name,
    format_date,
)

if TYPE_CHECKING:
    from .audit_logger import AuditLogger

# Slack/Discord colours: red below a week, amber otherwise
COLOR_CRITICAL = "#e11d48"
COLOR_WARNING = "#f59e0b"

TEST_DOMAIN = "example.com"
TEST_DAYS_REMAINING = 5

ERROR_BODY_LIMIT = 200


@dataclass
class ChannelResult:
    """Result of a single channel delivery attempt."""

    channel: str
    success: bool
    error: Optional[str] = None


@dataclass
class DispatchResult:
    """Per-channel results of one dispatch."""

    channels: list[ChannelResult] = field(default_factory=list)

    @property
    def any_succeeded(self) -> bool:
        return any(result.success for result in self.channels)

    @property
    def failures(self) -> list[ChannelResult]:
        return [result for result in self.channels if not result.success]


@dataclass
class EmailAttachment:
    """A file attached to an outgoing email."""

    filename: str
    content: bytes
    mime_subtype: str = "octet-stream"


class EmailChannel:
    """Email notification channel using SMTP."""

    def __init__(self, config: SmtpConfig, simulation_mode: bool = False) -> None:
        """
        Initialize Email channel.

        Args:
            config: SMTP settings
            simulation_mode: If True, no real network requests are made
        """
        self._config = config
        self._simulation_mode = simulation_mode

    def get_name(self) -> str:
        return "email"

    async def send(
        self,
        recipient: str,
        subject: str,
        html: str,
        attachment: Optional[EmailAttachment] = None,
    ) -> ChannelResult:
        """Send an HTML email; the SMTP session runs in an executor."""
        if self._simulation_mode:
            return ChannelResult(self.get_name(), True)

        msg = self._format_email(recipient, subject, html, attachment)
        loop = asyncio.get_running_loop()
        try:
            await asyncio.wait_for(
                loop.run_in_executor(None, self._send_sync, recipient, msg),
                timeout=self._config.timeout_seconds,
            )
        except asyncio.TimeoutError:
            return ChannelResult(
                self.get_name(),
                False,
                f"SMTP timed out after {self._config.timeout_seconds}s",
            )
        except (smtplib.SMTPException, OSError) as e:
            return ChannelResult(self.get_name(), False, str(e) or type(e).__name__)
        return ChannelResult(self.get_name(), True)

    def _send_sync(self, recipient: str, msg: MIMEMultipart) -> None:
        with smtplib.SMTP(
            self._config.host,
            self._config.port,
            timeout=self._config.timeout_seconds,
        ) as server:
            if self._config.use_tls:
                server.starttls(context=ssl.create_default_context())
            if self._config.username:
                server.login(self._config.username, self._config.password)
            server.sendmail(self._config.from_address, [recipient], msg.as_string())

    def _format_email(
        self,
        recipient: str,
        subject: str,
        html: str,
        attachment: Optional[EmailAttachment],
    ) -> MIMEMultipart:
        msg = MIMEMultipart("mixed")
        msg["From"] = self._config.from_address
        msg["To"] = recipient
        msg["Subject"] = subject
        msg.attach(MIMEText(html, "html", "utf-8"))
        if attachment is not None:
            part = MIMEApplication(attachment.content, _subtype=attachment.mime_subtype)
            part.add_header("Content-Disposition", "attachment", filename=attachment.filename)
            msg.attach(part)
        return msg


@runtime_checkable
class WebhookPayloadBuilder(Protocol):
    """Builds the JSON body for one class of webhook destination."""

    @abstractmethod
    def matches(self, url: str) -> bool:
        ...

    @abstractmethod
    def build(self, message: AlertMessage) -> dict:
        ...


def _status_text(message: AlertMessage) -> str:
    return days_left_text(message.days_remaining, message.language)


class SlackPayloadBuilder:
    """Slack incoming webhooks: Block Kit attachment with a dashboard button."""

    def matches(self, url: str) -> bool:
        return "hooks.slack.com" in url

    def build(self, message: AlertMessage) -> dict:
        lang = message.language
        days = message.days_remaining
        color = COLOR_CRITICAL if days < 7 else COLOR_WARNING
        status = _status_text(message)
        if days < 7:
            status_line = f":red_circle: {status}"
        else:
            status_line = f":large_orange_circle: {status}"

        lines = [
            f"*:warning: {get_message('webhook.title', lang)}*",
            "",
            f"*{get_message('webhook.label_domain', lang)}:* {message.domain_name}",
            f"*{get_message('webhook.label_type', lang)}:* {facet_name(message, long=True)}",
            f"*{get_message('webhook.label_expiry', lang)}:* {format_date(message.expiry_date, lang)}",
            f"*{get_message('webhook.label_status', lang)}:* {status_line}",
        ]
        return {
            "text": get_message(
                "webhook.summary",
                lang,
                facet=facet_name(message),
                domain=message.domain_name,
                status=status,
            ),
            "attachments": [
                {
                    "color": color,
                    "blocks": [
                        {
                            "type": "section",
                            "text": {"type": "mrkdwn", "text": "\n".join(lines)},
                        },
                        {
                            "type": "actions",
                            "elements": [
                                {
                                    "type": "button",
                                    "text": {
                                        "type": "plain_text",
                                        "text": get_message("webhook.button", lang),
                                    },
                                    "url": message.dashboard_url,
                                }
                            ],
                        },
                    ],
                }
            ],
        }


class DiscordPayloadBuilder:
    """Discord webhooks: one embed with inline fields."""

    URL_PATTERNS = ("discord.com/api/webhooks", "discordapp.com/api/webhooks")

    def matches(self, url: str) -> bool:
        return any(pattern in url for pattern in self.URL_PATTERNS)

    def build(self, message: AlertMessage) -> dict:
        lang = message.language
        color = COLOR_CRITICAL if message.days_remaining < 7 else COLOR_WARNING
        return {
            "content": get_message(
                "webhook.summary",
                lang,
                facet=facet_name(message),
                domain=message.domain_name,
                status=_status_text(message),
            ),
            "embeds": [
                {
                    "title": get_message("webhook.title", lang),
                    "url": message.dashboard_url,
                    "color": int(color.lstrip("#"), 16),
                    "fields": [
                        {"name": get_message("webhook.label_domain", lang),
                         "value": message.domain_name, "inline": True},
                        {"name": get_message("webhook.label_type", lang),
                         "value": facet_name(message, long=True), "inline": True},
                        {"name": get_message("webhook.label_expiry", lang),
                         "value": format_date(message.expiry_date, lang), "inline": True},
                        {"name": get_message("webhook.label_status", lang),
                         "value": _status_text(message), "inline": True},
                    ],
                }
            ],
        }


class GenericPayloadBuilder:
    """Any other destination: flat JSON fields plus a preformatted text."""

    def matches(self, url: str) -> bool:
        return True

    def build(self, message: AlertMessage) -> dict:
        lang = message.language
        text = "\n".join([
            f"**{get_message('webhook.title', lang)}**",
            f"{get_message('webhook.label_domain', lang)}: **{message.domain_name}**",
            f"{get_message('webhook.label_type', lang)}: {facet_name(message, long=True)}",
            f"{get_message('webhook.label_expiry', lang)}: {format_date(message.expiry_date, lang)}",
            f"{get_message('webhook.label_status', lang)}: {_status_text(message)}",
            f"{get_message('webhook.label_dashboard', lang)}: {message.dashboard_url}",
        ])
        return {
            "domain": message.domain_name,
            "kind": message.kind.value,
            "expiry_date": message.expiry_date.isoformat(),
            "days_remaining": message.days_remaining,
            "dashboard_url": message.dashboard_url,
            "text": text,
            "content": text,
        }


DEFAULT_PAYLOAD_BUILDERS: tuple[WebhookPayloadBuilder, ...] = (
    SlackPayloadBuilder(),
    DiscordPayloadBuilder(),
)


def select_payload_builder(
    url: str,
    builders: tuple[WebhookPayloadBuilder, ...] = DEFAULT_PAYLOAD_BUILDERS,
) -> WebhookPayloadBuilder:
    """Pick the first builder matching the URL, falling back to the generic one."""
    for builder in builders:
        if builder.matches(url):
            return builder
    return GenericPayloadBuilder()


def validate_webhook_url(url: str) -> str:
    """
    Check that a webhook URL is an absolute http(s) URL.

    Raises:
        ValidationError: If the URL is unusable
    """
    parsed = urlparse((url or "").strip())
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError(
            code="invalid_webhook_url",
            message="Invalid webhook URL",
            details={"url": url},
        )
    return url.strip()


class WebhookChannel:
    """Webhook notification channel using HTTP POST."""

    def __init__(
        self,
        settings: Optional[WebhookSettings] = None,
        simulation_mode: bool = False,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize Webhook channel.

        Args:
            settings: Timeout and extra headers
            simulation_mode: If True, no real network requests are made
            transport: Optional httpx transport (used to stub the network)
        """
        self._settings = settings or WebhookSettings()
        self._simulation_mode = simulation_mode
        self._transport = transport

    def get_name(self) -> str:
        return "webhook"

    async def send(self, url: str, message: AlertMessage) -> ChannelResult:
        """POST the alert; only a 2xx answer counts as delivered."""
        if self._simulation_mode:
            return ChannelResult(self.get_name(), True)

        body = select_payload_builder(url).build(message)
        headers = {"Content-Type": "application/json"}
        headers.update(self._settings.headers)

        try:
            async with httpx.AsyncClient(
                timeout=self._settings.timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.post(url, json=body, headers=headers)
        except httpx.TimeoutException:
            return ChannelResult(
                self.get_name(),
                False,
                f"Webhook timed out after {self._settings.timeout_seconds}s",
            )
        except httpx.HTTPError as e:
            return ChannelResult(self.get_name(), False, str(e) or type(e).__name__)

        if not 200 <= response.status_code < 300:
            return ChannelResult(
                self.get_name(),
                False,
                f"HTTP {response.status_code}: {response.text[:ERROR_BODY_LIMIT]}",
            )
        return ChannelResult(self.get_name(), True)


class NotificationDispatcher:
    """
    Sends an alert through every enabled channel.

    Email is attempted whenever a recipient is known; the webhook only when
    the account enabled it and supplied a URL. Each channel is isolated: an
    exception from one is turned into a failed ChannelResult.
    """

    def __init__(
        self,
        email_channel: Optional[EmailChannel],
        webhook_channel: WebhookChannel,
        logger: Optional["AuditLogger"] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._email_channel = email_channel
        self._webhook_channel = webhook_channel
        self._logger = logger
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @classmethod
    def from_config(cls, config, logger: Optional["AuditLogger"] = None) -> "NotificationDispatcher":
        """Build the dispatcher from an AppConfig."""
        email_channel = None
        if config.smtp is not None:
            email_channel = EmailChannel(config.smtp, simulation_mode=config.simulation_mode)
        return cls(
            email_channel=email_channel,
            webhook_channel=WebhookChannel(config.webhook, simulation_mode=config.simulation_mode),
            logger=logger,
        )

    async def dispatch(
        self,
        message: AlertMessage,
        recipient: Optional[str],
        preference: Optional[NotificationPreference] = None,
    ) -> DispatchResult:
        result = DispatchResult()

        if recipient:
            result.channels.append(await self._send_email(message, recipient))

        webhook_url = preference.webhook_target if preference else None
        if webhook_url:
            result.channels.append(await self._send_webhook(webhook_url, message))

        for failure in result.failures:
            self._log(
                LogLevel.WARN,
                f"Channel '{failure.channel}' failed for {message.domain_name}",
                {"channel": failure.channel, "domain": message.domain_name, "error": failure.error},
            )
        return result

    async def send_test_webhook(
        self,
        url: str,
        dashboard_url: str,
        language: str = "en",
    ) -> ChannelResult:
        """
        Send a synthetic certificate alert for example.com to a URL.

        Raises:
            ValidationError: If the URL is not an http(s) URL
        """
        url = validate_webhook_url(url)
        message = AlertMessage(
            domain_name=TEST_DOMAIN,
            kind=AlertKind.SSL_EXPIRY,
            days_remaining=TEST_DAYS_REMAINING,
            expiry_date=self._clock() + timedelta(days=TEST_DAYS_REMAINING),
            dashboard_url=dashboard_url,
            language=language,
        )
        return await self._send_webhook(url, message)

    async def _send_email(self, message: AlertMessage, recipient: str) -> ChannelResult:
        if self._email_channel is None:
            return ChannelResult("email", False, "Email channel is not configured")
        try:
            return await self._email_channel.send(
                recipient,
                build_alert_subject(message),
                build_alert_html(message),
            )
        except Exception as e:
            return ChannelResult(self._email_channel.get_name(), False, str(e))

    async def _send_webhook(self, url: str, message: AlertMessage) -> ChannelResult:
        try:
            return await self._webhook_channel.send(url, message)
        except Exception as e:
            return ChannelResult(self._webhook_channel.get_name(), False, str(e))

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, "NotificationDispatcher", message, data)
