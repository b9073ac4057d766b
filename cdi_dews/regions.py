"""
Region / woreda catalog.

Static lookup of the two regions covered by the dashboard, their woredas
and rough geographic extents.
"""

REGIONS = ["afar", "somali"]

REGION_LABELS = {
    "afar": "Afar",
    "somali": "Somali",
}

REGION_WOREDAS = {
    "afar": ["Elidar", "Bidu", "Kori"],
    "somali": ["Gode", "Fik", "Hargele"],
}

# Rough bounding boxes [[south-west lat, lng], [north-east lat, lng]]
ETHIOPIA_BOUNDS = [[3.3, 32.8], [14.9, 48.2]]

REGION_BOUNDS = {
    "afar": [[8.8, 39.2], [14.6, 42.9]],
    "somali": [[4.0, 40.5], [11.5, 47.8]],
}

# Representative (lat, lng) per woreda
WOREDA_COORDS = {
    # Afar
    "Elidar": (12.0, 41.9),
    "Bidu": (13.0, 41.5),
    "Kori": (12.6, 40.5),
    # Somali
    "Gode": (5.95, 43.45),
    "Fik": (8.13, 43.88),
    "Hargele": (6.07, 44.27),
}


def is_region(name) -> bool:
    return name in REGION_WOREDAS


def woredas_for(region: str) -> list:
    return list(REGION_WOREDAS[region])


def bounds_for(region: str) -> list:
    return REGION_BOUNDS[region]


def region_label(region: str) -> str:
    return REGION_LABELS.get(region, str(region).capitalize())


def region_of_woreda(woreda: str):
    for region, woredas in REGION_WOREDAS.items():
        if woreda in woredas:
            return region
    return None


def center_of(bounds) -> dict:
    (south, west), (north, east) = bounds
    return {"lat": (south + north) / 2, "lon": (west + east) / 2}


def region_options(regions=None) -> list:
    """Dropdown options for the given regions (all by default)."""
    regions = REGIONS if regions is None else regions
    return [{"label": region_label(r), "value": r} for r in regions]
