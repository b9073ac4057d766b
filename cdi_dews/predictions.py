"""
CDI prediction sources.

A prediction source returns the 12-month CDI forecast for a region, or for
one woreda inside it. ``MockPredictionSource`` is a deterministic stand-in
for the forecast backend; ``HttpPredictionSource`` talks to a real one that
speaks the ``/api/predictions`` contract.
"""

import asyncio
import math

import pandas as pd
import requests

from . import config

FORECAST_MONTHS = config.FORECAST_MONTHS


class PredictionError(Exception):
    pass


def mock_series(region: str, woreda=None, months: int = FORECAST_MONTHS) -> list:
    """Stable pseudo-random series keyed by ``region + woreda``.

    Values fall roughly in [-1.8, 1.2], rounded to 2 decimals.
    """
    seed = region + (woreda or "")
    base = sum(ord(c) for c in seed)
    series = []
    for i in range(months):
        h = base + i * 31
        v = ((math.sin(h) + 1) / 2) * 3 - 1.8
        series.append(round(v, 2))
    return series


def zero_series(months: int = FORECAST_MONTHS) -> list:
    return [0.0] * months


def value_at(series, offset: int) -> float:
    if series is None or offset < 0 or offset >= len(series):
        return 0.0
    return series[offset]


def month_label(offset: int, start: str = config.FORECAST_START) -> str:
    """'Aug 2025'-style label for a forecast month offset."""
    ts = pd.Timestamp(start) + pd.DateOffset(months=int(offset))
    return ts.strftime("%b %Y")


def forecast_accuracy(offset: int) -> int:
    """Nominal forecast accuracy (%) decaying with lead time."""
    return max(0, min(100, 100 - int(offset) * config.ACCURACY_DECAY_PER_MONTH))


class PredictionSource:
    """Interface: ``await source.fetch(region, woreda)`` -> list of 12 floats."""

    async def fetch(self, region: str, woreda=None) -> list:
        raise NotImplementedError


class MockPredictionSource(PredictionSource):

    def __init__(self, months: int = FORECAST_MONTHS):
        self.months = months
        self.calls = []

    async def fetch(self, region: str, woreda=None) -> list:
        self.calls.append((region, woreda))
        # yield to the loop so callers see a real suspension point
        await asyncio.sleep(0)
        return mock_series(region, woreda, self.months)


class HttpPredictionSource(PredictionSource):
    """Client for ``GET {base_url}/api/predictions``."""

    def __init__(self, base_url: str, timeout: float = config.PREDICTIONS_TIMEOUT,
                 session=None, headers=None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.headers = headers or {}

    def _get(self, region, woreda):
        params = {"region": region}
        if woreda:
            params["woreda"] = woreda
        resp = self.session.get(f"{self.base_url}/api/predictions", params=params,
                                headers=self.headers, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    async def fetch(self, region: str, woreda=None) -> list:
        try:
            payload = await asyncio.to_thread(self._get, region, woreda)
        except requests.RequestException as e:
            raise PredictionError(f"Prediction request failed for {region}/{woreda}: {e}") from e

        values = payload.get("predictions") if isinstance(payload, dict) else None
        if not isinstance(values, list) or len(values) != FORECAST_MONTHS:
            raise PredictionError(f"Malformed prediction payload for {region}/{woreda}")
        try:
            return [float(v) for v in values]
        except (TypeError, ValueError) as e:
            raise PredictionError(f"Non-numeric prediction for {region}/{woreda}: {e}") from e


def build_source(base_url: str = None) -> PredictionSource:
    """HTTP source when a backend URL is configured, else the mock."""
    base_url = config.PREDICTIONS_URL if base_url is None else base_url
    if base_url:
        print(f"[predictions] using backend at {base_url}")
        return HttpPredictionSource(base_url)
    return MockPredictionSource()
