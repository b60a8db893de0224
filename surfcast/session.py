"""
View context: which day is selected and which dataset is displayed.

Every refresh is tagged with a monotonically increasing sequence number.
A finished assembly is committed only if no newer refresh has been issued
since it started, so rapid day navigation can never leave a stale day on
screen.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from .dataset import DayWindow, ReconciledDataset
from .reconciler import Assembly, Reconciler

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RefreshTicket:
    sequence: int
    day_offset: int


class ForecastSession:
    """Owns the selected day offset and the currently displayed dataset."""

    def __init__(
        self,
        reconciler: Reconciler,
        tz: ZoneInfo,
        max_past_days: int = 7,
        max_future_days: int = 7,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.reconciler = reconciler
        self.tz = tz
        self.max_past_days = max_past_days
        self.max_future_days = max_future_days
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._day_offset = 0
        self._sequence = 0
        self._current: Optional[ReconciledDataset] = None
        self._overlay_task: Optional[asyncio.Task] = None

    @property
    def day_offset(self) -> int:
        return self._day_offset

    @property
    def current(self) -> Optional[ReconciledDataset]:
        return self._current

    @property
    def latest_sequence(self) -> int:
        return self._sequence

    @property
    def can_go_back(self) -> bool:
        return self._day_offset > -self.max_past_days

    @property
    def can_go_forward(self) -> bool:
        return self._day_offset < self.max_future_days

    def in_window(self, day_offset: int) -> bool:
        return -self.max_past_days <= day_offset <= self.max_future_days

    def select_day(self, day_offset: int) -> int:
        if not self.in_window(day_offset):
            raise ValueError(
                f"day_offset must be between -{self.max_past_days} and {self.max_future_days}"
            )
        self._day_offset = day_offset
        return day_offset

    def navigate(self, delta: int) -> int:
        return self.select_day(self._day_offset + delta)

    def issue(self) -> RefreshTicket:
        """Start a refresh for the selected day; supersedes all earlier tickets."""
        self._sequence += 1
        return RefreshTicket(sequence=self._sequence, day_offset=self._day_offset)

    def is_current(self, ticket: RefreshTicket) -> bool:
        return ticket.sequence == self._sequence

    def commit(self, ticket: RefreshTicket, dataset: ReconciledDataset) -> bool:
        """Display `dataset` unless a newer refresh was issued after `ticket`."""
        if not self.is_current(ticket):
            logger.debug(f"Discarding stale dataset for ticket {ticket.sequence} (latest {self._sequence})")
            return False
        self._current = dataset
        return True

    async def refresh(self) -> Optional[ReconciledDataset]:
        """
        Assemble the selected day and display it.

        A tide event overlay still in flight when the providers settle is
        attached later under the same ticket, replacing the displayed dataset
        if no newer refresh has been issued in the meantime.

        Returns:
            The committed dataset, or None if the result was superseded
        """
        ticket = self.issue()
        window = DayWindow.for_offset(ticket.day_offset, self.tz, now=self._clock())
        assembly = await self.reconciler.start(window)
        if not self.commit(ticket, assembly.dataset):
            assembly.cancel()
            return None
        if assembly.pending:
            self._overlay_task = asyncio.create_task(self._attach_overlay(ticket, assembly))
        return assembly.dataset

    async def _attach_overlay(self, ticket: RefreshTicket, assembly: Assembly):
        if not self.is_current(ticket):
            assembly.cancel()
            return
        dataset = await assembly.complete()
        self.commit(ticket, dataset)

    async def wait_for_overlay(self) -> Optional[ReconciledDataset]:
        """Wait until a pending tide event overlay has been attached, then return the displayed dataset."""
        if self._overlay_task is not None:
            await self._overlay_task
        return self._current
