"""
Audit Logger module for the expiry watch system.

Provides structured logging with dual-format output (JSON and human-readable
text), a minimum severity filter and masking of sensitive values such as SMTP
passwords, API secrets and webhook URLs.
"""

import json
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, TextIO

from .enums import LogLevel

_SEVERITY = {
    LogLevel.DEBUG: 10,
    LogLevel.INFO: 20,
    LogLevel.WARN: 30,
    LogLevel.ERROR: 40,
}

OUTPUT_FORMATS = ("json", "text", "both")


@dataclass
class LogEntry:
    """One emitted audit record."""

    timestamp: str
    level: LogLevel
    component: str
    message: str
    data: dict = field(default_factory=dict)

    def to_json(self) -> str:
        record = {
            "timestamp": self.timestamp,
            "level": self.level.value,
            "component": self.component,
            "message": self.message,
            "data": self.data,
        }
        return json.dumps(record, ensure_ascii=False, default=str)

    def to_text(self) -> str:
        # [TIMESTAMP] LEVEL [COMPONENT] MESSAGE {data}
        line = f"[{self.timestamp}] {self.level.value.upper()} [{self.component}] {self.message}"
        if self.data:
            line += " " + json.dumps(self.data, ensure_ascii=False, default=str)
        return line


class AuditLogger:
    """
    Structured logger with JSON/text output and secret masking.

    Entries below the configured level are dropped. Emitted entries are kept
    in memory so callers and tests can inspect what was logged.
    """

    # Key fragments whose values are never written out
    SENSITIVE_FRAGMENTS = (
        "password", "secret", "token", "api_key", "private_key",
        "credential", "auth", "webhook_url",
    )

    MASK_VALUE = "***MASKED***"

    def __init__(
        self,
        output_format: str = "text",
        output_stream: Optional[TextIO] = None,
        level: str = "info",
    ):
        """
        Args:
            output_format: 'json', 'text' or 'both'
            output_stream: Where lines are written (sys.stderr when omitted)
            level: Minimum level to emit ('debug', 'info', 'warn', 'error')

        Raises:
            ValueError: On an unknown output format or level
        """
        if output_format not in OUTPUT_FORMATS:
            raise ValueError(f"Unsupported log output format: {output_format!r}")

        self._format = output_format
        self._stream = output_stream or sys.stderr
        self._min_level = LogLevel(level.lower())
        self._entries: list[LogEntry] = []

    @classmethod
    def from_config(cls, logging_config, output_stream: Optional[TextIO] = None) -> "AuditLogger":
        return cls(
            output_format=logging_config.output_format,
            output_stream=output_stream,
            level=logging_config.level,
        )

    @property
    def output_format(self) -> str:
        return self._format

    @property
    def entries(self) -> list[LogEntry]:
        return list(self._entries)

    def is_enabled_for(self, level: LogLevel) -> bool:
        return _SEVERITY[level] >= _SEVERITY[self._min_level]

    def log(
        self,
        level: LogLevel,
        component: str,
        message: str,
        data: Optional[dict] = None,
    ) -> Optional[LogEntry]:
        """
        Record and write one entry.

        Returns:
            The entry, or None when its level is below the minimum
        """
        if not self.is_enabled_for(level):
            return None

        entry = LogEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            level=level,
            component=component,
            message=message,
            data=self.mask_sensitive_data(data or {}),
        )
        self._entries.append(entry)
        self._emit(entry)
        return entry

    def log_error(
        self,
        component: str,
        message: str,
        error: Optional[BaseException] = None,
        additional_data: Optional[dict] = None,
    ) -> Optional[LogEntry]:
        """Log at ERROR with the exception type and text attached."""
        data = dict(additional_data or {})
        if error is not None:
            data.update(error_message=str(error), error_type=type(error).__name__)
        return self.log(LogLevel.ERROR, component, message, data)

    def mask_sensitive_data(self, data: dict) -> dict:
        """Return a copy of data with sensitive values replaced, at any depth."""
        return self._mask(data)

    def clear_entries(self) -> None:
        self._entries.clear()

    def _is_sensitive(self, key: Any) -> bool:
        name = str(key).lower()
        return any(fragment in name for fragment in self.SENSITIVE_FRAGMENTS)

    def _mask(self, value: Any) -> Any:
        if isinstance(value, dict):
            return {
                key: self.MASK_VALUE if self._is_sensitive(key) else self._mask(item)
                for key, item in value.items()
            }
        if isinstance(value, (list, tuple)):
            return [self._mask(item) for item in value]
        return value

    def _emit(self, entry: LogEntry) -> None:
        lines = []
        if self._format != "text":
            lines.append(entry.to_json())
        if self._format != "json":
            lines.append(entry.to_text())
        self._stream.write("\n".join(lines) + "\n")
        self._stream.flush()
