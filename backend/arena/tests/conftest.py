import random

import pytest

from arena.logic.settings import GameSettings
from arena.messaging.router import MessageRouter
from arena.session.manager import SessionManager
from arena.tests.mocks import ManualSleeper, drain


@pytest.fixture
def settings():
    return GameSettings()


@pytest.fixture
def sleeper():
    return ManualSleeper()


@pytest.fixture
async def session_manager(settings, sleeper):
    manager = SessionManager(settings, rng=random.Random(1234), sleep=sleeper)
    yield manager
    manager.shutdown()
    await drain()


@pytest.fixture
def message_router(session_manager):
    return MessageRouter(session_manager)

