import asyncio

import pytest

from taskloom import EngineConfig


@pytest.fixture
def config():
    """Engine configuration with short delays for fast tests."""
    return EngineConfig(default_timeout_ms=2_000, retry_delay_ms=0)


@pytest.fixture
def wait_until():
    async def _wait_until(predicate, timeout: float = 2.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not reached in time")
            await asyncio.sleep(0.005)

    return _wait_until
