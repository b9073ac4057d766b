import asyncio

import pytest

from cdi_dews.geo import FeatureCollectionCache
from cdi_dews.models import Session
from cdi_dews.predictions import PredictionError, PredictionSource, mock_series
from cdi_dews.sessions import DUMMY_USERS, SessionStore


@pytest.fixture
def admin():
    return DUMMY_USERS[0]


@pytest.fixture
def regional_officer():
    return DUMMY_USERS[1]


@pytest.fixture
def woreda_officer():
    return DUMMY_USERS[2]


@pytest.fixture
def store(tmp_path):
    s = SessionStore(f"sqlite:///{tmp_path / 'users.db'}")
    yield s
    s.close()


@pytest.fixture
def geo_cache():
    return FeatureCollectionCache()


def session_for(user):
    return Session(token=f"token-{user.id}", user=user)


class RecordingSource(PredictionSource):
    """Mock formula plus a call log; ``overrides`` pins series per key."""

    def __init__(self, overrides=None):
        self.calls = []
        self.overrides = overrides or {}

    async def fetch(self, region, woreda=None):
        self.calls.append((region, woreda))
        await asyncio.sleep(0)
        if (region, woreda) in self.overrides:
            return list(self.overrides[(region, woreda)])
        return mock_series(region, woreda)


class GatedSource(RecordingSource):
    """Holds selected keys until ``release`` is called."""

    def __init__(self):
        super().__init__()
        self.gates = {}

    def gate(self, key):
        self.gates[key] = asyncio.Event()

    def release(self, key):
        self.gates[key].set()

    async def fetch(self, region, woreda=None):
        gate = self.gates.get((region, woreda))
        if gate is not None:
            await gate.wait()
        return await super().fetch(region, woreda)


class FailingSource(PredictionSource):

    async def fetch(self, region, woreda=None):
        raise PredictionError(f"backend down for {region}/{woreda}")
