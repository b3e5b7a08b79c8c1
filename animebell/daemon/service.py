"""Main daemon service for animebell.

Wires the job scheduler to the reminder service, the daily digest and the
release detector, and runs until a shutdown signal arrives:

1. create missing tables
2. rehydrate user reminders from the job ledger
3. register the internal recurring jobs
4. start firing
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys
from pathlib import Path
from typing import Optional

from animebell.config import AnimeBellConfig
from animebell.daemon.pid import PIDFile
from animebell.database.connection import create_tables
from animebell.gateways.delivery import DeliveryGateway, TelegramDeliveryGateway
from animebell.gateways.metadata import AniListGateway, MetadataGateway
from animebell.notifications.digest import DigestGenerator
from animebell.notifications.releases import ReleaseDetector
from animebell.scheduler.job_scheduler import JobScheduler, RehydrationResult
from animebell.services.reminders import ReminderService

logger = logging.getLogger(__name__)

DAILY_SUMMARY_JOB = "daily_summary"
NEW_SEASON_CHECK_JOB = "new_season_check"


class AnimeBellDaemon:
    """Runs the scheduler and its consumers.

    Example:
        daemon = AnimeBellDaemon(config)
        await daemon.start()
        await daemon.run_until_shutdown()
        await daemon.stop()
    """

    def __init__(
        self,
        config: AnimeBellConfig,
        delivery: Optional[DeliveryGateway] = None,
        metadata: Optional[MetadataGateway] = None,
    ):
        """Initialize the daemon service.

        Args:
            config: animebell configuration
            delivery: Delivery gateway (Telegram from config if omitted)
            metadata: Metadata gateway (AniList from config if omitted)
        """
        self._config = config
        self._delivery = delivery
        self._metadata = metadata
        self._owned_gateways: list = []
        self._scheduler: Optional[JobScheduler] = None
        self._reminders: Optional[ReminderService] = None
        self._digest: Optional[DigestGenerator] = None
        self._releases: Optional[ReleaseDetector] = None
        self._rehydration: Optional[RehydrationResult] = None
        self._running = False
        self._shutdown_event = asyncio.Event()

    async def start(self) -> None:
        """Start the daemon services."""
        logger.info("Starting animebell daemon...")

        create_tables(self._config)

        if self._delivery is None:
            gateway = TelegramDeliveryGateway.from_config(self._config.telegram)
            await gateway.initialize()
            self._owned_gateways.append(gateway)
            self._delivery = gateway
        if self._metadata is None:
            anilist = AniListGateway.from_config(self._config.metadata)
            await anilist.initialize()
            self._owned_gateways.append(anilist)
            self._metadata = anilist

        scheduler_config = self._config.scheduler
        self._scheduler = JobScheduler(scheduler_config)
        self._reminders = ReminderService(self._scheduler, self._delivery)
        self._digest = DigestGenerator(self._delivery, scheduler_config)
        self._releases = ReleaseDetector(
            self._delivery,
            self._metadata,
            scheduler_config,
            self._config.notifications,
        )

        self._rehydration = self._scheduler.rehydrate(self._reminders.build_action)

        self._scheduler.register_internal(
            DAILY_SUMMARY_JOB,
            scheduler_config.daily_summary_cron,
            self._digest.send_daily_summaries,
            "Daily Anime Summary Generation",
        )
        self._scheduler.register_internal(
            NEW_SEASON_CHECK_JOB,
            scheduler_config.release_check_cron,
            self._releases.run,
            "New Season Check",
        )

        await self._scheduler.start()
        self._running = True
        logger.info("animebell daemon started successfully")

    async def stop(self) -> None:
        """Stop the scheduler and close owned gateways."""
        logger.info("Stopping animebell daemon...")
        self._running = False

        if self._scheduler:
            try:
                await self._scheduler.stop()
            except Exception as e:
                logger.warning(f"Error stopping scheduler: {e}")

        for gateway in self._owned_gateways:
            try:
                await gateway.close()
            except Exception as e:
                logger.warning(f"Error closing {type(gateway).__name__}: {e}")
        self._owned_gateways.clear()

        logger.info("animebell daemon stopped")

    async def run_until_shutdown(self) -> None:
        """Block until request_shutdown() is called."""
        await self._shutdown_event.wait()

    def request_shutdown(self) -> None:
        logger.info("Shutdown requested")
        self._shutdown_event.set()

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def scheduler(self) -> Optional[JobScheduler]:
        return self._scheduler

    @property
    def reminders(self) -> Optional[ReminderService]:
        return self._reminders

    @property
    def digest(self) -> Optional[DigestGenerator]:
        return self._digest

    @property
    def releases(self) -> Optional[ReleaseDetector]:
        return self._releases

    @property
    def rehydration(self) -> Optional[RehydrationResult]:
        """Result of the start-up rehydration."""
        return self._rehydration


async def run_daemon(config: AnimeBellConfig, pid_file: Optional[PIDFile] = None) -> None:
    """Run the daemon with signal handling until SIGTERM or SIGINT.

    Args:
        config: animebell configuration
        pid_file: Single-instance guard, acquired for the lifetime of the run

    Raises:
        DaemonAlreadyRunningError: If another daemon holds the PID file
    """
    if pid_file is None:
        pid_file = PIDFile(config.pid_file)
    pid_file.acquire()

    daemon = AnimeBellDaemon(config)
    loop = asyncio.get_running_loop()

    def handle_signal(sig: signal.Signals) -> None:
        logger.info(f"Received signal {sig.name}, initiating shutdown...")
        daemon.request_shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, lambda s=sig: handle_signal(s))
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            signal.signal(sig, lambda signum, frame: handle_signal(signal.Signals(signum)))

    try:
        await daemon.start()
        await daemon.run_until_shutdown()
    finally:
        await daemon.stop()
        pid_file.release()


def daemonize(log_file: Optional[Path] = None) -> None:
    """Detach into the background with the classic double fork.

    Args:
        log_file: Where stdout/stderr go; /dev/null if None
    """
    if sys.platform == "win32":
        logger.warning("Daemon mode not supported on Windows")
        return

    if os.fork() > 0:
        sys.exit(0)
    os.setsid()
    if os.fork() > 0:
        sys.exit(0)

    sys.stdout.flush()
    sys.stderr.flush()

    with open(os.devnull, "r") as devnull:
        os.dup2(devnull.fileno(), sys.stdin.fileno())

    target = str(log_file) if log_file else os.devnull
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
    with open(target, "a+") as out:
        os.dup2(out.fileno(), sys.stdout.fileno())
        os.dup2(out.fileno(), sys.stderr.fileno())

    logger.info(f"Daemon process started (PID: {os.getpid()})")
