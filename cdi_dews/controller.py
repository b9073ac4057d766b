"""
Dashboard controller
====================

Holds the UI state of one logged-in dashboard (selected region, woreda and
forecast month), drives the prediction fetches and keeps the map renderer
and the summary widgets in sync.

Three independent fetch loops run through here:

1) the primary series for the current selection,
2) whole-region series for the region comparison table,
3) per-woreda series for the woreda comparison table and the map colours
   (already cached woredas are skipped).

Every loop tags its request with a generation token; a completion whose
token is no longer the latest for its key is dropped, so a slow response
can never overwrite a newer selection.
"""

from .classification import assess, is_escalated
from .map_renderer import DESTROYED, UNINITIALIZED
from .models import ADMIN, REGIONAL_OFFICER, WOREDA_OFFICER
from .notifications import AlertNotifier
from .predictions import (FORECAST_MONTHS, MockPredictionSource, PredictionError,
                          forecast_accuracy, month_label, value_at, zero_series)
from .regions import REGIONS, REGION_WOREDAS, region_label
from .visibility import (allowed_regions, allowed_woredas, can_select_woreda,
                         ensure_woreda)

TABS = ["Dashboard", "Help"]
COMPARE_MODES = ["regions", "woredas"]


class RequestTokens:
    """Monotonic request counter per state key."""

    def __init__(self):
        self._tokens = {}

    def issue(self, key) -> int:
        self._tokens[key] = self._tokens.get(key, 0) + 1
        return self._tokens[key]

    def is_current(self, key, token) -> bool:
        return self._tokens.get(key) == token

    def invalidate_all(self):
        for key in self._tokens:
            self._tokens[key] += 1


class DashboardController:

    def __init__(self, source=None, renderer=None, notifier=None):
        self.source = source or MockPredictionSource()
        self.renderer = renderer
        self.notifier = notifier or AlertNotifier()
        self.tokens = RequestTokens()

        self.session = None
        self.active_tab = TABS[0]
        self.region = REGIONS[0]
        self.woreda = None
        self.month_index = 0
        self.series = zero_series()
        self.region_series = {r: zero_series() for r in REGIONS}
        # (region, woreda) -> series
        self.woreda_series = {}
        self.compare_mode = COMPARE_MODES[0]
        self.compare_region = REGIONS[0]
        self.loading = False
        self.comparison_loading = False
        self.selection_events = []

        self._phase_key = None
        self._last_phase = None

        if self.renderer is not None:
            self.renderer.on_select(self.selection_events.append)

    @property
    def user(self):
        return self.session.user if self.session is not None else None

    # ---------------- Session ----------------
    async def load_session(self, session):
        """Seed the selection from the user's place of interest and load data."""
        self.session = session
        user = self.user
        if user is not None:
            place = user.place_of_interest
            self.region = place.region
            self.woreda = ensure_woreda(user, place.region, place.woreda)
            if user.role == REGIONAL_OFFICER:
                self.compare_region = place.region
                self.compare_mode = "woredas"

        await self.refresh()
        await self.load_region_comparison()
        if self.needs_woreda_comparison():
            await self.load_woreda_comparison()

    def teardown(self):
        self.tokens.invalidate_all()
        if self.renderer is not None and self.renderer.state != DESTROYED:
            self.renderer.destroy()
        self.session = None
        self.woreda_series.clear()

    # ---------------- Selection ----------------
    def region_choices(self) -> list:
        return allowed_regions(self.user)

    def woreda_choices(self, region=None) -> list:
        return allowed_woredas(self.user, region or self.region)

    async def select_region(self, region: str):
        if region not in self.region_choices():
            print(f"[controller] region {region!r} not visible for this user")
            return self.woreda
        self.region = region
        self.woreda = ensure_woreda(self.user, region, self.woreda)
        await self.refresh()
        return self.woreda

    async def select_woreda(self, woreda) -> bool:
        if woreda and not can_select_woreda(self.user, self.region, woreda):
            print(f"[controller] woreda {woreda!r} not visible in {self.region}")
            return False
        if not woreda:
            woreda = ensure_woreda(self.user, self.region, None)
        self.woreda = woreda
        await self.refresh()
        return True

    async def click_feature(self, name: str):
        """Map click: show the popup and select the woreda when permitted."""
        if self.renderer is None:
            return None
        popup = self.renderer.click(name)
        if popup is not None and can_select_woreda(self.user, self.region, name):
            await self.select_woreda(name)
        return popup

    def set_month(self, index: int):
        self.month_index = max(0, min(FORECAST_MONTHS - 1, int(index or 0)))
        self._sync_renderer()
        self._check_phase()

    def set_tab(self, tab: str):
        if tab in TABS:
            self.active_tab = tab

    async def set_compare_mode(self, mode: str):
        if mode not in COMPARE_MODES or (self.user is not None and self.user.role != ADMIN):
            return
        self.compare_mode = mode
        if self.needs_woreda_comparison():
            await self.load_woreda_comparison()

    async def set_compare_region(self, region: str):
        if region not in REGIONS or (self.user is not None and self.user.role != ADMIN):
            return
        self.compare_region = region
        if self.needs_woreda_comparison():
            await self.load_woreda_comparison()

    # ---------------- Fetch loops ----------------
    async def _fetch(self, region, woreda=None):
        try:
            return await self.source.fetch(region, woreda)
        except PredictionError as e:
            print(f"[predictions] {e}")
            return None

    async def refresh(self) -> bool:
        """Re-fetch the primary series for the current selection."""
        token = self.tokens.issue("primary")
        region, woreda = self.region, self.woreda
        self.loading = True

        series = await self._fetch(region, woreda)
        if not self.tokens.is_current("primary", token):
            print(f"[controller] dropping stale series for {region}/{woreda}")
            return False
        self.series = series if series is not None else zero_series()
        self.loading = False

        if self.renderer is not None and self.renderer.state != DESTROYED:
            if self.renderer.state == UNINITIALIZED or self.renderer.region != region:
                await self.renderer.set_region(region)
            await self.load_woreda_series(region, self.woreda_choices(region))
            if not self.tokens.is_current("primary", token):
                return False

        self._sync_renderer()
        self._check_phase()
        return True

    async def load_region_comparison(self) -> bool:
        user = self.user
        if user is None or user.role == WOREDA_OFFICER:
            return False
        token = self.tokens.issue("regions")
        self.comparison_loading = True
        results = {}
        for r in REGIONS:
            series = await self._fetch(r)
            results[r] = series if series is not None else zero_series()
        if not self.tokens.is_current("regions", token):
            return False
        self.comparison_loading = False
        self.region_series = results
        return True

    def needs_woreda_comparison(self) -> bool:
        user = self.user
        if user is None:
            return False
        return user.role == REGIONAL_OFFICER or (user.role == ADMIN and self.compare_mode == "woredas")

    def comparison_region(self) -> str:
        user = self.user
        if user is not None and user.role == REGIONAL_OFFICER:
            return user.place_of_interest.region
        return self.compare_region

    async def load_woreda_comparison(self, region=None) -> bool:
        region = region or self.comparison_region()
        self.comparison_loading = True
        try:
            return await self.load_woreda_series(region, REGION_WOREDAS[region])
        finally:
            self.comparison_loading = False

    async def load_woreda_series(self, region: str, woredas) -> bool:
        """Fetch every woreda series of ``region`` not cached yet."""
        key = f"woredas:{region}"
        token = self.tokens.issue(key)
        fetched = {}
        for w in woredas:
            if (region, w) in self.woreda_series:
                continue
            series = await self._fetch(region, w)
            if series is not None:
                fetched[(region, w)] = series
        if not self.tokens.is_current(key, token):
            return False
        self.woreda_series.update(fetched)
        return True

    # ---------------- Derived ----------------
    def current(self) -> dict:
        value = value_at(self.series, self.month_index)
        severity, phase = assess(value)
        return {
            "region": self.region,
            "woreda": self.woreda,
            "month_index": self.month_index,
            "month_label": month_label(self.month_index),
            "value": value,
            "class": severity,
            "phase": phase,
            "accuracy": forecast_accuracy(self.month_index),
        }

    def region_rows(self) -> list:
        rows = []
        for r in REGIONS:
            value = value_at(self.region_series.get(r), self.month_index)
            severity, phase = assess(value)
            rows.append({"region": region_label(r), "value": value, "class": severity, "phase": phase})
        return rows

    def woreda_rows(self, region=None) -> list:
        region = region or self.comparison_region()
        rows = []
        for w in REGION_WOREDAS[region]:
            value = value_at(self.woreda_series.get((region, w)), self.month_index)
            severity, phase = assess(value)
            rows.append({"woreda": w, "value": value, "class": severity, "phase": phase})
        return rows

    def feature_values(self) -> dict:
        """Current-month CDI per visible woreda of the active region."""
        values = {}
        for w in self.woreda_choices(self.region):
            series = self.woreda_series.get((self.region, w))
            if series is not None:
                values[w] = value_at(series, self.month_index)
        return values

    def _sync_renderer(self):
        if self.renderer is None or self.renderer.state == DESTROYED:
            return
        self.renderer.set_values(self.feature_values(), default=value_at(self.series, self.month_index))
        self.renderer.set_woreda(self.woreda)

    def _check_phase(self):
        """Notify once when the phase of the current selection escalates."""
        snap = self.current()
        key = (self.region, self.woreda)
        previous = self._last_phase if key == self._phase_key else None
        self._phase_key = key
        self._last_phase = snap["phase"]
        if is_escalated(snap["phase"]) and snap["phase"] != previous:
            self.notifier.notify(self.user, self.region, self.woreda, snap["phase"], snap["value"])
