"""
SLA Runtime Adapters
====================

The YAML fallback table, reloaded by watchdog when the file changes, and
the APScheduler job that drives the escalation sweep.
"""

import hashlib
import threading
import uuid
from pathlib import Path
from typing import Awaitable, Callable, Optional

import yaml
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from pydantic import ValidationError
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from servicedesk.shared.infrastructure.logging import bind_correlation_id, get_logger, reset_correlation_id
from servicedesk.sla.application.services import ISLAConfigProvider
from servicedesk.sla.domain.value_objects import SLAConfig

logger = get_logger(__name__)

RELOAD_EVENTS = {"modified", "created", "moved"}


class _ConfigFileEvents(FileSystemEventHandler):
    """Calls back when one file is written, created or renamed into place."""

    def __init__(self, target: Path, on_change: Callable[[], object]):
        super().__init__()
        self._target = target.resolve()
        self._on_change = on_change

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in RELOAD_EVENTS:
            return
        # Editors often save by renaming a temp file over the original.
        paths = (event.src_path, getattr(event, "dest_path", None))
        if any(p and Path(p).resolve() == self._target for p in paths):
            logger.info("SLA config file changed", extra={"event_type": event.event_type})
            self._on_change()


class SLAConfigManager(ISLAConfigProvider):
    """
    Fallback SLA table read from YAML and swapped in place on change.

    Readers always get a complete table. Until load() succeeds, and when the
    file is absent, that is the built-in default. A file that fails to parse
    or validate on reload is logged and the previous table stays in force.
    """

    def __init__(self):
        self._current = SLAConfig()
        self._digest: Optional[str] = None
        self._path: Optional[Path] = None
        self._swap_lock = threading.Lock()
        self._observer: Optional[Observer] = None

    @staticmethod
    def _parse(raw: bytes) -> SLAConfig:
        document = yaml.safe_load(raw) or {}
        if not isinstance(document, dict):
            raise TypeError(f"expected a mapping, got {type(document).__name__}")
        return SLAConfig.model_validate(document)

    def _swap(self, config: SLAConfig, digest: Optional[str]) -> None:
        with self._swap_lock:
            self._current = config
            self._digest = digest

    def load(self, path: Path) -> SLAConfig:
        """Read the file at startup; errors propagate so a bad deploy fails fast."""
        self._path = Path(path)
        if not self._path.exists():
            logger.warning("SLA config file not found, using defaults", extra={"path": str(self._path)})
            self._swap(SLAConfig(), None)
            return self._current

        raw = self._path.read_bytes()
        self._swap(self._parse(raw), hashlib.sha256(raw).hexdigest())
        logger.info("SLA configuration loaded", extra={"path": str(self._path)})
        return self._current

    def reload(self) -> bool:
        """Re-read the file; True only if a new table was applied."""
        if self._path is None:
            return False

        try:
            raw = self._path.read_bytes()
            digest = hashlib.sha256(raw).hexdigest()
            if digest == self._digest:
                return False
            config = self._parse(raw)
        except (OSError, yaml.YAMLError, ValidationError, TypeError) as e:
            logger.error(
                "SLA config reload rejected, keeping previous table",
                extra={"path": str(self._path), "error": str(e)}
            )
            return False

        self._swap(config, digest)
        logger.info("SLA configuration reloaded", extra={"path": str(self._path)})
        return True

    def start_watching(self) -> None:
        """
        Reload on file changes.

        Does nothing when the file is absent or the platform has no file
        notification support.
        """
        if self._path is None:
            raise RuntimeError("SLA config path unknown; call load() first")
        if self._observer is not None:
            return
        if not self._path.exists():
            logger.info("No SLA config file to watch", extra={"path": str(self._path)})
            return

        observer = Observer()
        observer.schedule(_ConfigFileEvents(self._path, self.reload), str(self._path.parent), recursive=False)
        try:
            observer.start()
        except OSError as e:
            logger.warning("SLA config file watching unavailable", extra={"error": str(e)})
            return

        self._observer = observer
        logger.info("Watching SLA config file", extra={"path": str(self._path)})

    def stop_watching(self) -> None:
        observer, self._observer = self._observer, None
        if observer is not None:
            observer.stop()
            observer.join(timeout=5)

    def get_config(self) -> SLAConfig:
        with self._swap_lock:
            return self._current


class EscalationScheduler:
    """
    Runs the escalation sweep on an APScheduler interval job.

    At most one sweep runs at a time; a sweep that misses its slot while
    the previous one is still going is folded into the next run. Each run
    logs under its own ``sweep-`` correlation id.
    """

    JOB_ID = "sla_escalation"

    def __init__(self, interval_seconds: int = 3600):
        self.interval_seconds = interval_seconds
        self._scheduler: Optional[AsyncIOScheduler] = None

    async def start(self, sweep: Callable[[], Awaitable[object]]) -> None:
        if self.is_running:
            logger.warning("Escalation scheduler already running")
            return

        async def run_once() -> None:
            token = bind_correlation_id(f"sweep-{uuid.uuid4().hex[:12]}")
            try:
                await sweep()
            finally:
                reset_correlation_id(token)

        self._scheduler = AsyncIOScheduler(timezone="UTC")
        self._scheduler.add_job(
            run_once,
            "interval",
            seconds=self.interval_seconds,
            id=self.JOB_ID,
            name="SLA escalation sweep",
            misfire_grace_time=60,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self._scheduler.start()

        logger.info(
            "Escalation scheduler started",
            extra={"interval_seconds": self.interval_seconds}
        )

    async def stop(self) -> None:
        if self._scheduler is None:
            return
        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("Escalation scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None
