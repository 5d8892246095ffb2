from __future__ import annotations

import asyncio

from launchmem.debounce import DebounceState, Debouncer


def test_trigger_resets_window_and_fires_once() -> None:
    calls: list[int] = []

    async def callback() -> None:
        calls.append(1)

    async def main() -> None:
        debouncer = Debouncer(callback, delay_ms=100)
        for _ in range(5):
            debouncer.trigger()
            await asyncio.sleep(0.005)
        assert debouncer.state is DebounceState.PENDING
        assert calls == []
        await asyncio.sleep(0.25)
        await debouncer.wait_idle()
        assert debouncer.state is DebounceState.IDLE

    asyncio.run(main())
    assert calls == [1]


def test_cancel_drops_pending_run() -> None:
    calls: list[int] = []

    async def callback() -> None:
        calls.append(1)

    async def main() -> None:
        debouncer = Debouncer(callback, delay_ms=10)
        debouncer.trigger()
        assert debouncer.deadline is not None
        debouncer.cancel()
        assert debouncer.deadline is None
        await asyncio.sleep(0.05)

    asyncio.run(main())
    assert calls == []


def test_flush_now_runs_immediately() -> None:
    calls: list[int] = []

    async def callback() -> None:
        calls.append(1)

    async def main() -> None:
        debouncer = Debouncer(callback, delay_ms=10_000)
        debouncer.trigger()
        await debouncer.flush_now()
        assert debouncer.state is DebounceState.IDLE

    asyncio.run(main())
    assert calls == [1]


def test_callback_errors_are_logged_not_raised(caplog) -> None:
    async def callback() -> None:
        raise RuntimeError("boom")

    async def main() -> None:
        debouncer = Debouncer(callback, delay_ms=0)
        await debouncer.flush_now()

    asyncio.run(main())
    assert "debounced callback failed" in caplog.text
