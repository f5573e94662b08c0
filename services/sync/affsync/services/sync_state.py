"""In-process sync run state.

One SyncStateContainer is owned by the orchestrator and injected where
needed; it is the only mutable state shared between sync runs and the
status endpoint.

Per-network state machine:
    idle -> running -> complete | error
A network can only start from idle/complete/error. The container also holds
the global single-flight guard: while any run is active, no other run (of
any network, or a reconciliation) may start. Guard transitions happen under
an asyncio.Lock.

When the guarded block unwinds (normally or by exception), any network still
marked running is force-resolved to complete so dashboards never show a
permanently stuck run.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from affsync.services.record_store import UpsertStatus
from affsync.utils.dates import utcnow

logger = logging.getLogger("uvicorn.error")


class SyncError(RuntimeError):
    """Base class for sync orchestration errors."""


class SyncInProgressError(SyncError):
    """Raised when a run is requested while another one is active."""


class UnknownNetworkError(SyncError):
    """Raised for a network name with no registered adapter."""


class SyncStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass
class PassCounters:
    """Counters for one entity pass."""

    checked: int = 0
    new: int = 0
    updated: int = 0
    skipped: int = 0
    pruned: int = 0

    def record(self, status: UpsertStatus) -> None:
        self.checked += 1
        if status == UpsertStatus.CREATED:
            self.new += 1
        elif status == UpsertStatus.UPDATED:
            self.updated += 1
        else:
            self.skipped += 1


@dataclass
class NetworkRunState:
    """Live state of one network's run."""

    network: str
    status: SyncStatus = SyncStatus.IDLE
    advertisers: PassCounters = field(default_factory=PassCounters)
    offers: PassCounters = field(default_factory=PassCounters)
    products: PassCounters = field(default_factory=PassCounters)
    error: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    def counters(self) -> dict[str, dict[str, int]]:
        return {
            "advertisers": asdict(self.advertisers),
            "offers": asdict(self.offers),
            "products": asdict(self.products),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "network": self.network,
            "status": self.status.value,
            **self.counters(),
            "error": self.error,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


class SyncStateContainer:
    """Per-network run states plus the global single-flight guard."""

    def __init__(self, networks: Iterable[str]):
        self._states = {name: NetworkRunState(name) for name in networks}
        self._lock = asyncio.Lock()
        self._active: str | None = None

    @property
    def is_running(self) -> bool:
        return self._active is not None or any(s.status == SyncStatus.RUNNING for s in self._states.values())

    @property
    def active_operation(self) -> str | None:
        return self._active

    def get(self, network: str) -> NetworkRunState:
        try:
            return self._states[network]
        except KeyError:
            raise UnknownNetworkError(f"Unknown network: {network}") from None

    @asynccontextmanager
    async def single_flight(self, operation: str) -> AsyncIterator[None]:
        """Hold the global guard for the duration of one operation.

        Raises:
            SyncInProgressError: If any operation is already active.
        """
        async with self._lock:
            if self.is_running:
                raise SyncInProgressError(f"A sync is already running ({self._active or 'network run'})")
            self._active = operation
        try:
            yield
        finally:
            async with self._lock:
                for state in self._states.values():
                    if state.status == SyncStatus.RUNNING:
                        logger.warning(f"[sync] {state.network} still running at unwind, marking complete")
                        state.status = SyncStatus.COMPLETE
                        state.completed_at = utcnow()
                self._active = None

    def start(self, network: str) -> NetworkRunState:
        """Reset a network's state and mark it running."""
        state = self.get(network)
        if state.status == SyncStatus.RUNNING:
            raise SyncInProgressError(f"{network} sync is already running")
        fresh = NetworkRunState(network, status=SyncStatus.RUNNING, started_at=utcnow())
        self._states[network] = fresh
        return fresh

    def complete(self, network: str) -> NetworkRunState:
        state = self.get(network)
        state.status = SyncStatus.COMPLETE
        state.completed_at = utcnow()
        return state

    def fail(self, network: str, message: str) -> NetworkRunState:
        state = self.get(network)
        state.status = SyncStatus.ERROR
        state.error = message
        state.completed_at = utcnow()
        return state

    def snapshot(self) -> dict[str, Any]:
        return {
            "is_running": self.is_running,
            "active_operation": self._active,
            "networks": {name: state.to_dict() for name, state in self._states.items()},
        }
