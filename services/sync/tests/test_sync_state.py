import pytest

from affsync.services.record_store import UpsertStatus
from affsync.services.sync_state import (
    PassCounters,
    SyncInProgressError,
    SyncStateContainer,
    SyncStatus,
    UnknownNetworkError,
)


@pytest.fixture
def state() -> SyncStateContainer:
    return SyncStateContainer(["CJ", "AWIN"])


def test_pass_counters_record():
    counters = PassCounters()
    for status in (UpsertStatus.CREATED, UpsertStatus.UPDATED, UpsertStatus.SKIPPED, UpsertStatus.SKIPPED):
        counters.record(status)
    assert (counters.checked, counters.new, counters.updated, counters.skipped) == (4, 1, 1, 2)


def test_unknown_network(state):
    with pytest.raises(UnknownNetworkError):
        state.get("Impact")


def test_start_resets_counters(state):
    first = state.start("CJ")
    first.offers.new = 5
    state.complete("CJ")

    second = state.start("CJ")
    assert second.offers.new == 0
    assert second.status == SyncStatus.RUNNING
    with pytest.raises(SyncInProgressError):
        state.start("CJ")


async def test_single_flight_rejects_concurrent_operations(state):
    async with state.single_flight("full"):
        assert state.is_running
        assert state.active_operation == "full"
        with pytest.raises(SyncInProgressError):
            async with state.single_flight("reconcile"):
                pass
    assert not state.is_running
    assert state.active_operation is None


async def test_running_networks_are_force_resolved_on_unwind(state):
    with pytest.raises(ValueError):
        async with state.single_flight("CJ"):
            state.start("CJ")
            raise ValueError("adapter exploded")

    cj = state.get("CJ")
    assert cj.status == SyncStatus.COMPLETE
    assert cj.completed_at is not None
    assert state.get("AWIN").status == SyncStatus.IDLE
    assert not state.is_running


async def test_failed_network_keeps_error_status(state):
    async with state.single_flight("full"):
        state.start("CJ")
        state.start("AWIN")
        state.fail("AWIN", "credentials rejected")
        state.complete("CJ")

    snapshot = state.snapshot()
    assert snapshot["is_running"] is False
    assert snapshot["networks"]["AWIN"]["status"] == "error"
    assert snapshot["networks"]["AWIN"]["error"] == "credentials rejected"
    assert snapshot["networks"]["CJ"]["status"] == "complete"
