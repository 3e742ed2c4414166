"""
Background sweeper for idle tutoring sessions.

The session registry never expires sessions on its own. The sweeper is the
timer that calls ``SessionRegistry.sweep_inactive`` periodically while the
process is running, so abandoned sessions do not accumulate.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from loguru import logger

from config import get_settings

from .session_registry import SessionRegistry


@dataclass
class SweepStatus:
    """Current sweep status."""

    is_running: bool = False
    last_sweep_at: datetime | None = None
    last_sweep_success: bool = True
    last_removed_count: int = 0
    total_sweeps: int = 0
    total_removed: int = 0
    error_message: str | None = None


@dataclass
class SessionSweeper:
    """
    Periodically retires idle sessions from a registry.

    Usage:
        sweeper = SessionSweeper(registry, interval_seconds=300)
        sweeper.start()
        # ... serve turns ...
        await sweeper.stop()
    """

    registry: SessionRegistry
    interval_seconds: float | None = None
    max_idle_ms: int | None = None
    on_sweep_complete: Callable[[SweepStatus], None] | None = None

    # Internal state
    _status: SweepStatus = field(default_factory=SweepStatus)
    _task: asyncio.Task[None] | None = field(default=None, repr=False)
    _stop_event: asyncio.Event | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        settings = get_settings()
        if self.interval_seconds is None:
            self.interval_seconds = settings.sweep_interval_seconds
        if self.max_idle_ms is None:
            self.max_idle_ms = settings.session_max_idle_ms

    @property
    def status(self) -> SweepStatus:
        return self._status

    def start(self) -> None:
        """Start the sweep loop on the running event loop."""
        if self._status.is_running:
            logger.warning("Session sweeper already running")
            return

        self._stop_event = asyncio.Event()
        self._status.is_running = True
        self._task = asyncio.create_task(self._sweep_loop(), name="session-sweeper")

        logger.info(
            "Session sweeper started (interval: {}s, max idle: {}ms)",
            self.interval_seconds,
            self.max_idle_ms,
        )

    async def stop(self) -> None:
        """Stop the sweep loop and wait for it to finish."""
        if not self._status.is_running:
            return

        logger.info("Stopping session sweeper...")
        if self._stop_event is not None:
            self._stop_event.set()
        if self._task is not None:
            await self._task
            self._task = None

        self._status.is_running = False
        logger.info("Session sweeper stopped")

    async def sweep_once(self) -> list[str]:
        """
        Run one sweep immediately.

        A failing sweep is recorded on ``status`` and logged; it does not
        raise, so the loop keeps running.

        Returns:
            Keys of the sessions retired by this sweep
        """
        removed: list[str] = []
        try:
            removed = await self.registry.sweep_inactive(self.max_idle_ms)
            self._status.last_sweep_success = True
            self._status.error_message = None
        except Exception as exc:  # Intentionally broad - a failed sweep must not kill the loop
            logger.error("Session sweep failed: {}", exc)
            self._status.last_sweep_success = False
            self._status.error_message = str(exc)

        self._status.last_sweep_at = datetime.now()
        self._status.last_removed_count = len(removed)
        self._status.total_removed += len(removed)
        self._status.total_sweeps += 1

        if self.on_sweep_complete:
            try:
                self.on_sweep_complete(self._status)
            except Exception as exc:  # Intentionally broad - callback errors are only logged
                logger.warning("Sweep callback failed: {}", exc)

        return removed

    async def _sweep_loop(self) -> None:
        assert self._stop_event is not None
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
                break  # Stop event was set
            except asyncio.TimeoutError:
                pass
            await self.sweep_once()

    def get_status_line(self) -> str:
        """One-line status for display in the CLI."""
        if not self._status.is_running:
            return "Sweeper: off"
        if not self._status.last_sweep_success:
            return f"Sweeper: error ({self._status.error_message})"
        return (
            f"Sweeper: {self._status.total_sweeps} sweeps, "
            f"{self._status.total_removed} sessions retired"
        )
