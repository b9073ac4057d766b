"""
Drought map renderer.

Turns the woreda boundaries of the active region into a plotly mapbox
figure: one colour per CDI class, the selected woreda outlined and the rest
dimmed, and everything outside the region masked out.

Lifecycle::

    UNINITIALIZED --mount--> READY --set_region--> LOADING --loaded--> RENDERED
                                ^                                      |
                                +------- load failed   set_region -----+
    any state --destroy--> DESTROYED
"""

import asyncio

import geopandas as gpd
import pandas as pd
import plotly.express as px
import plotly.graph_objects as go

from . import config
from .classification import CLASS_COLORS, CLASS_ORDER, assess
from .geo import (FeatureCollectionCache, FeatureCollectionError, bounds_of,
                  latlng_to_lonlat_bounds, mask_geojson, view_for_bounds)
from .regions import ETHIOPIA_BOUNDS, REGION_BOUNDS

UNINITIALIZED = "uninitialized"
READY = "ready"
LOADING = "loading"
RENDERED = "rendered"
DESTROYED = "destroyed"

OPACITY_DEFAULT = 0.6
OPACITY_SELECTED = 0.85
OPACITY_DIMMED = 0.25
SELECTED_LINE_WIDTH = 4
SELECTED_LINE_COLOR = "#111827"


class MapRenderer:
    """Stateful map for one dashboard session."""

    def __init__(self, cache: FeatureCollectionCache = None, height: int = config.MAP_HEIGHT,
                 map_style: str = config.MAP_STYLE):
        self.cache = cache or FeatureCollectionCache()
        self.height = height
        self.map_style = map_style
        self.state = UNINITIALIZED
        self.region = None
        self.woreda = None
        self.features = None
        self.values = {}
        self.default_value = 0.0
        self.last_popup = None
        self.center = None
        self.zoom = None
        self._listeners = []
        self._load_token = 0

    def _check_alive(self):
        if self.state == DESTROYED:
            raise RuntimeError("MapRenderer has been destroyed")

    # ---------------- Lifecycle ----------------
    async def mount(self):
        """Attach the base tile layer; the map is usable once READY."""
        self._check_alive()
        if self.state != UNINITIALIZED:
            return
        # the surface only has a size once layout has happened
        await asyncio.sleep(0)
        if self.state != UNINITIALIZED:
            return
        self.center, self.zoom = view_for_bounds(latlng_to_lonlat_bounds(ETHIOPIA_BOUNDS),
                                                 height_px=self.height)
        self.state = READY

    async def set_region(self, region: str) -> bool:
        """Load (or reuse) the region's features and render them.

        Returns False when the load failed or was superseded by a newer call.
        """
        self._check_alive()
        if self.state == UNINITIALIZED:
            await self.mount()

        self._load_token += 1
        token = self._load_token
        self.region = region
        self.features = None
        self.state = LOADING

        try:
            gdf = await self.cache.load(region)
        except FeatureCollectionError as e:
            if token == self._load_token and self.state != DESTROYED:
                print(f"[map] failed to load features for {region}: {e}")
                self.state = READY
                self._fit_region_bounds(region)
            return False

        if token != self._load_token or self.state == DESTROYED:
            print(f"[map] discarding stale feature load for {region}")
            return False

        self.features = gdf
        self.state = RENDERED
        self._fit()
        return True

    def destroy(self):
        self._listeners.clear()
        self.features = None
        self.last_popup = None
        self.state = DESTROYED

    # ---------------- Inputs ----------------
    def set_values(self, values: dict, default: float = 0.0):
        """Current-month CDI per feature name; unknown names use ``default``."""
        self._check_alive()
        self.values = dict(values or {})
        self.default_value = float(default)

    def set_woreda(self, woreda):
        self._check_alive()
        self.woreda = woreda or None
        if self.state == RENDERED:
            self._fit()

    def on_select(self, listener):
        self._listeners.append(listener)

    def click(self, name: str):
        """Handle a click on feature ``name``: notify listeners, build the popup."""
        self._check_alive()
        if self.state != RENDERED or name not in self.feature_names():
            return None
        for listener in list(self._listeners):
            listener(name)
        value = self.value_for(name)
        severity, phase = assess(value)
        self.last_popup = {"name": name, "value": value, "class": severity, "phase": phase}
        return self.last_popup

    # ---------------- Derived ----------------
    def feature_names(self) -> list:
        if self.features is None:
            return []
        return self.features["name"].tolist()

    def value_for(self, name: str) -> float:
        return float(self.values.get(name, self.default_value))

    def legend(self) -> list:
        rows = []
        for name in self.feature_names():
            value = self.value_for(name)
            severity, phase = assess(value)
            rows.append({
                "name": name,
                "value": value,
                "class": severity,
                "phase": phase,
                "color": CLASS_COLORS[severity],
                "selected": name == self.woreda,
            })
        return rows

    def _fit_region_bounds(self, region):
        bounds = REGION_BOUNDS.get(region, ETHIOPIA_BOUNDS)
        self.center, self.zoom = view_for_bounds(latlng_to_lonlat_bounds(bounds),
                                                 height_px=self.height)

    def _fit(self):
        bounds = None
        if self.woreda and self.woreda in self.feature_names():
            bounds = bounds_of(self.features, [self.woreda])
        if bounds is None:
            bounds = bounds_of(self.features)
        if bounds is not None:
            self.center, self.zoom = view_for_bounds(bounds, height_px=self.height)

    def _opacity(self, name: str) -> float:
        if not self.woreda or self.woreda not in self.feature_names():
            return OPACITY_DEFAULT
        return OPACITY_SELECTED if name == self.woreda else OPACITY_DIMMED

    # ---------------- Figure ----------------
    def _base_layout(self, fig):
        fig.update_layout(
            mapbox_style=self.map_style,
            mapbox_center=self.center,
            mapbox_zoom=self.zoom,
            height=self.height,
            margin=dict(r=0, t=0, l=0, b=0),
            legend_title_text="",
            legend=dict(yanchor="bottom", y=0.01, xanchor="right", x=0.99,
                        bgcolor="rgba(255,255,255,0.85)"),
        )
        return fig

    def figure(self) -> go.Figure:
        self._check_alive()
        if self.center is None:
            self.center, self.zoom = view_for_bounds(latlng_to_lonlat_bounds(ETHIOPIA_BOUNDS),
                                                     height_px=self.height)

        if self.state != RENDERED or self.features is None:
            # base tiles only
            fig = go.Figure(go.Scattermapbox(lon=[], lat=[], mode="markers",
                                             hoverinfo="skip", showlegend=False))
            return self._base_layout(fig)

        rows = pd.DataFrame(self.legend())
        merged = gpd.GeoDataFrame(
            rows.rename(columns={"class": "severity"}),
            geometry=self.features["geometry"].values,
            crs="EPSG:4326",
        )

        fig = px.choropleth_mapbox(
            merged,
            geojson=merged.geometry,
            locations=merged.index,
            color="severity",
            color_discrete_map=CLASS_COLORS,
            category_orders={"severity": CLASS_ORDER},
            custom_data=["name", "value", "severity", "phase"],
            mapbox_style=self.map_style,
            zoom=self.zoom,
            center=self.center,
            height=self.height,
        )
        fig.update_traces(
            hovertemplate=(
                "<b>Woreda:</b> %{customdata[0]}<br>"
                "<b>CDI:</b> %{customdata[1]:.2f}<br>"
                "<b>Class:</b> %{customdata[2]}<br>"
                "<b>Phase:</b> %{customdata[3]}"
                "<extra></extra>"
            ),
            marker_line_color="white",
            marker_line_width=1,
        )

        # Dim everything but the selection
        for trace in fig.data:
            if trace.customdata is None:
                continue
            trace.marker.opacity = [self._opacity(row[0]) for row in trace.customdata]

        # Selected outline
        if self.woreda and self.woreda in self.feature_names():
            geom = self.features.loc[self.features["name"] == self.woreda, "geometry"].iloc[0]
            for poly in getattr(geom, "geoms", [geom]):
                x, y = poly.exterior.xy
                fig.add_trace(go.Scattermapbox(
                    lon=list(x), lat=list(y), mode="lines",
                    line=dict(color=SELECTED_LINE_COLOR, width=SELECTED_LINE_WIDTH),
                    hoverinfo="skip", showlegend=False, name=f"selected:{self.woreda}",
                ))

        # --- Ensure ALL legend items show ---
        present = set(merged["severity"].astype(str).unique())
        for cat in CLASS_ORDER:
            if cat in present:
                continue
            fig.add_trace(go.Scattermapbox(
                lon=[self.center["lon"]], lat=[self.center["lat"]],
                mode="markers",
                marker=dict(size=10, color=CLASS_COLORS[cat], opacity=0),
                name=cat,
                hoverinfo="skip",
                visible="legendonly",
                showlegend=True,
            ))

        # Opaque world mask below the woreda layer
        fig.update_layout(mapbox_layers=[{
            "sourcetype": "geojson",
            "source": {"type": "Feature", "properties": {}, "geometry": mask_geojson(self.features)},
            "type": "fill",
            "color": config.MASK_COLOR,
            "opacity": 1.0,
            "below": "traces",
        }])
        return self._base_layout(fig)
