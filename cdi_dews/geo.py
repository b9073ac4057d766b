"""
Woreda boundaries.

Loads one GeoJSON FeatureCollection per region with geopandas, normalises
the display-name column and keeps the result in memory for the lifetime of
the process.
"""

import asyncio
import math
from pathlib import Path

import geopandas as gpd
from shapely.geometry import box, mapping
from shapely.ops import unary_union

from . import config

# Try the usual admin-3 name columns, in order
NAME_CANDIDATES = ["name", "NAME_3", "Woreda", "woreda", "ADM3_EN"]

# Web-mercator safe "whole world"
WORLD = box(-180.0, -85.0, 180.0, 85.0)


class FeatureCollectionError(Exception):
    pass


def read_features(path) -> gpd.GeoDataFrame:
    """Read a woreda FeatureCollection into a ``name`` + ``geometry`` frame."""
    gdf = gpd.read_file(path)
    if gdf.crs is None:
        gdf.set_crs(epsg=4326, inplace=True)
    else:
        gdf = gdf.to_crs(epsg=4326)

    found = next((c for c in NAME_CANDIDATES if c in gdf.columns), None)
    if found is None:
        raise FeatureCollectionError(f"No name property in {path} (tried {NAME_CANDIDATES})")

    gdf["name"] = gdf[found].astype(str).str.strip()
    gdf = gdf[gdf.geometry.notna() & ~gdf.geometry.is_empty]
    return gdf[["name", "geometry"]].reset_index(drop=True)


class FeatureCollectionCache:
    """Per-region feature collections, loaded once and reused."""

    def __init__(self, geo_dir=None):
        self.geo_dir = Path(geo_dir or config.GEO_DIR)
        self._frames = {}
        self.reads = 0

    def path_for(self, region: str) -> Path:
        return self.geo_dir / f"{region}.geojson"

    def cached(self, region: str):
        return self._frames.get(region)

    async def load(self, region: str) -> gpd.GeoDataFrame:
        if region in self._frames:
            return self._frames[region]

        path = self.path_for(region)
        if not path.exists():
            raise FeatureCollectionError(f"GeoJSON not found for region {region!r}: {path}")
        try:
            gdf = await asyncio.to_thread(read_features, path)
        except FeatureCollectionError:
            raise
        except Exception as e:
            raise FeatureCollectionError(f"Could not read {path}: {e}") from e

        self.reads += 1
        self._frames[region] = gdf
        print(f"[geo] {region}: {len(gdf)} features from {path.name}")
        return gdf

    def clear(self):
        self._frames.clear()


# ======================
# Geometry helpers
# ======================
def mask_geojson(gdf: gpd.GeoDataFrame) -> dict:
    """World rectangle with the region's features cut out as holes."""
    if gdf is None or gdf.empty:
        return mapping(WORLD)
    return mapping(WORLD.difference(unary_union(list(gdf.geometry))))


def bounds_of(gdf: gpd.GeoDataFrame, names=None):
    """(min_lon, min_lat, max_lon, max_lat) of all features, or of ``names``."""
    if names is not None:
        gdf = gdf[gdf["name"].isin(list(names))]
    if gdf.empty:
        return None
    minx, miny, maxx, maxy = gdf.total_bounds
    return float(minx), float(miny), float(maxx), float(maxy)


def latlng_to_lonlat_bounds(bounds):
    """[[south, west], [north, east]] -> (min_lon, min_lat, max_lon, max_lat)."""
    (south, west), (north, east) = bounds
    return west, south, east, north


def view_for_bounds(bounds, width_px: int = 640, height_px: int = config.MAP_HEIGHT,
                    padding: float = 0.15) -> tuple:
    """Centre and zoom that fit ``bounds`` into a map of the given size."""
    minx, miny, maxx, maxy = bounds
    center = {"lat": (miny + maxy) / 2, "lon": (minx + maxx) / 2}

    lon_span = max(maxx - minx, 1e-6) * (1 + padding)
    lat_span = max(maxy - miny, 1e-6) * (1 + padding)
    zoom_lon = math.log2(360.0 * width_px / (512.0 * lon_span))
    zoom_lat = math.log2(180.0 * height_px / (512.0 * lat_span))
    zoom = max(1.0, min(12.0, min(zoom_lon, zoom_lat)))
    return center, round(zoom, 2)
