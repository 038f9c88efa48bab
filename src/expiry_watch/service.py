"""
Service container wiring every component from one AppConfig.

Shared by the CLI and the HTTP application so both drive the same store,
prober, dispatcher, ledger, orchestrator and on-demand checker.
"""

from datetime import datetime, timezone
from typing import Callable, Optional, TextIO

from .audit_logger import AuditLogger
from .checks import DomainChecker
from .config import AppConfig
from .ledger import AlertLedger
from .models import BatchRunResult
from .notifications import ChannelResult, NotificationDispatcher
from .orchestrator import BatchOrchestrator
from .prober import DomainProber
from .state_store import Repository, StateStore


class ExpiryWatchService:
    """Holds the wired components for one process."""

    def __init__(
        self,
        config: AppConfig,
        repository: Repository,
        prober: DomainProber,
        dispatcher: NotificationDispatcher,
        logger: Optional[AuditLogger] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.config = config
        self.repository = repository
        self.prober = prober
        self.dispatcher = dispatcher
        self.logger = logger
        clock = clock or (lambda: datetime.now(timezone.utc))
        self.ledger = AlertLedger(repository, clock=clock)
        self.orchestrator = BatchOrchestrator(
            repository=repository,
            prober=prober,
            dispatcher=dispatcher,
            ledger=self.ledger,
            config=config,
            logger=logger,
            clock=clock,
        )
        self.checker = DomainChecker(repository, prober, config, logger=logger)

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        log_stream: Optional[TextIO] = None,
    ) -> "ExpiryWatchService":
        """Build the production wiring: file-backed store, real (or simulated) probes."""
        logger = AuditLogger.from_config(config.logging, output_stream=log_stream)
        store = StateStore(
            config.persistence.state_file_path,
            config.persistence.hmac_secret,
            history_limit=config.persistence.history_per_domain,
        )
        return cls(
            config=config,
            repository=store,
            prober=DomainProber.from_config(
                config.probe,
                simulation_mode=config.simulation_mode,
                logger=logger,
            ),
            dispatcher=NotificationDispatcher.from_config(config, logger=logger),
            logger=logger,
        )

    async def run_batch(self) -> BatchRunResult:
        return await self.orchestrator.run()

    async def send_test_webhook(self, url: str) -> ChannelResult:
        return await self.dispatcher.send_test_webhook(
            url,
            dashboard_url=self.config.batch.dashboard_url,
            language=self.config.language,
        )
