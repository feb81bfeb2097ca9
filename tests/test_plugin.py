"""Tests for assembling agent features."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

from addon_deploy.plugin import AgentFeature, Controller


def _controller() -> MagicMock:
    controller = MagicMock(spec=Controller)
    controller.close = AsyncMock()
    return controller


async def test_start_and_close() -> None:
    """Test controllers are started and routines are cancelled on close."""
    controller = _controller()
    started = asyncio.Event()
    cancelled = asyncio.Event()

    async def routine() -> None:
        started.set()
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            cancelled.set()
            raise

    feature = AgentFeature("addon-deploy", [controller], [routine])
    feature.start()
    controller.start.assert_called_once()
    await asyncio.wait_for(started.wait(), timeout=1)

    await feature.close()
    assert cancelled.is_set()
    controller.close.assert_awaited_once()


async def test_without_routines() -> None:
    """Test a feature with only controllers."""
    controller = _controller()
    feature = AgentFeature("addon-deploy", [controller])
    feature.start()
    await feature.close()
    controller.start.assert_called_once()
    controller.close.assert_awaited_once()


async def test_failed_routine() -> None:
    """Test a routine failure does not prevent closing the controllers."""
    controller = _controller()

    async def routine() -> None:
        raise ValueError("routine failed")

    feature = AgentFeature("addon-deploy", [controller], [routine])
    feature.start()
    await asyncio.sleep(0)
    await feature.close()
    controller.close.assert_awaited_once()
