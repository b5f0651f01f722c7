import asyncio
import logging

from core.ticker import run_ticker


def test_stops_after_max_ticks():
    calls = []

    count = asyncio.run(run_ticker(lambda: calls.append(1), period=0.001, max_ticks=5))

    assert count == 5
    assert len(calls) == 5


def test_stop_event_wakes_a_waiting_ticker():
    async def main():
        stop = asyncio.Event()
        calls = []
        ticker = asyncio.create_task(run_ticker(lambda: calls.append(1), period=10, stop=stop))
        await asyncio.sleep(0.05)  # ticker is now inside its 10s wait
        stop.set()
        count = await ticker
        return count, len(calls)

    # a set stop event ends the wait immediately; no 10s sleep
    assert asyncio.run(asyncio.wait_for(main(), timeout=5)) == (1, 1)


def test_stop_set_by_tick_ends_the_loop():
    async def main():
        stop = asyncio.Event()
        calls = []

        def tick():
            calls.append(1)
            if len(calls) == 3:
                stop.set()

        count = await run_ticker(tick, period=0.001, stop=stop)
        return count, len(calls)

    assert asyncio.run(main()) == (3, 3)


def test_preset_stop_means_no_ticks():
    async def main():
        stop = asyncio.Event()
        stop.set()
        return await run_ticker(lambda: None, stop=stop)

    assert asyncio.run(main()) == 0


def test_tick_errors_do_not_stop_the_loop(caplog):
    calls = []

    def tick():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("boom")

    with caplog.at_level(logging.ERROR, logger="core.ticker"):
        count = asyncio.run(run_ticker(tick, period=0.001, max_ticks=3))

    assert count == 3
    assert "tick() raised" in caplog.text
