import time

from affsync.networks.pacing import RequestPacer


async def test_zero_interval_never_sleeps():
    pacer = RequestPacer(0)
    started = time.monotonic()
    for _ in range(5):
        await pacer.wait()
    assert time.monotonic() - started < 0.05


async def test_consecutive_calls_are_spaced():
    pacer = RequestPacer(0.05)
    started = time.monotonic()
    await pacer.wait()
    await pacer.wait()
    await pacer.wait()
    assert time.monotonic() - started >= 0.09


def test_negative_interval_is_clamped():
    assert RequestPacer(-1).min_interval == 0.0
