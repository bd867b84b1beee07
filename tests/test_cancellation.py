from __future__ import annotations

import asyncio

import pytest

from switchyard.cancellation import CancelReason, CancelToken


def test_deadline_fires_timeout() -> None:
    async def scenario() -> CancelReason | None:
        token = CancelToken(0.02)
        token.start()
        return await asyncio.wait_for(token.wait(), timeout=1)

    assert asyncio.run(scenario()) is CancelReason.TIMEOUT


def test_first_reason_wins() -> None:
    async def scenario() -> tuple[bool, bool, CancelReason | None]:
        token = CancelToken(0.02)
        token.start()
        first = token.cancel(CancelReason.USER)
        await asyncio.sleep(0.05)
        second = token.cancel(CancelReason.TIMEOUT)
        return first, second, token.reason

    first, second, reason = asyncio.run(scenario())

    assert first is True
    assert second is False
    assert reason is CancelReason.USER


def test_dispose_disarms_deadline() -> None:
    async def scenario() -> bool:
        token = CancelToken(0.01)
        token.start()
        token.dispose()
        await asyncio.sleep(0.05)
        return token.cancelled

    assert asyncio.run(scenario()) is False


def test_non_positive_timeout_rejected() -> None:
    with pytest.raises(ValueError):
        CancelToken(0)
