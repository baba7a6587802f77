"""Background worker that expires stale sessions on an interval."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.core.database import SessionLocal
from app.services.session_store import session_store

logger = logging.getLogger(__name__)


class SessionSweeper:
    """Periodically marks active sessions past their expiry as expired."""

    def __init__(
        self,
        interval_seconds: Optional[float] = None,
        session_factory: Callable[[], Session] = SessionLocal,
    ) -> None:
        self._interval = interval_seconds
        self._session_factory = session_factory
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._heartbeat: float = 0.0
        self._swept_count: int = 0
        self._lock = threading.Lock()

    @property
    def interval(self) -> float:
        value = self._interval if self._interval is not None else settings.SESSION_SWEEP_INTERVAL_SECONDS
        return max(1.0, value)

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, name="session-sweeper", daemon=True)
        self._thread.start()
        logger.info("Session sweeper started (interval %.0fs)", self.interval)

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5)
        logger.info("Session sweeper stopped")

    def status(self) -> dict:
        return {
            "running": self.is_running(),
            "last_heartbeat": self._heartbeat,
            "swept_count": self._swept_count,
        }

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.sweep_once()
            except SQLAlchemyError:
                logger.exception("Session sweep failed; retrying next interval")
            self._heartbeat = time.time()
            self._stop_event.wait(self.interval)

    def sweep_once(self) -> int:
        """Run a single sweep in its own database session."""
        db = self._session_factory()
        try:
            count = session_store.sweep_expired(db)
        except SQLAlchemyError:
            db.rollback()
            raise
        finally:
            db.close()
        with self._lock:
            self._swept_count += count
        return count


session_sweeper = SessionSweeper()
