"""
Role-based visibility.

Works out which regions and woredas a user may look at, and keeps the
selected woreda consistent with the selected region when either changes.
"""

from .models import ADMIN, REGIONAL_OFFICER, WOREDA_OFFICER
from .regions import REGIONS, REGION_WOREDAS


def allowed_regions(user) -> list:
    if user is None or user.role == ADMIN:
        return list(REGIONS)
    return [user.place_of_interest.region]


def allowed_woredas(user, region: str) -> list:
    woredas = REGION_WOREDAS[region]
    if user is not None and user.role == WOREDA_OFFICER:
        own = user.place_of_interest.woreda
        return [own] if own and own in woredas else []
    # admin and regional_officer see every woreda in the region
    return list(woredas)


def ensure_woreda(user, region: str, candidate=None):
    """Re-validate ``candidate`` after a region change.

    A woreda officer is pinned to their own woreda (or nothing if it lies
    outside ``region``); everyone else keeps the candidate only when it
    belongs to ``region``.
    """
    woredas = REGION_WOREDAS[region]
    if user is not None and user.role == WOREDA_OFFICER:
        own = user.place_of_interest.woreda
        return own if own and own in woredas else None
    if candidate and candidate in woredas:
        return candidate
    return None


def can_select_woreda(user, region: str, woreda: str) -> bool:
    return woreda in allowed_woredas(user, region)


def compare_targets(user) -> dict:
    """Comparison views a role gets: region table, woreda table, free region pick."""
    if user is None or user.role == WOREDA_OFFICER:
        return {"regions": False, "woredas": False, "pick_region": False}
    if user.role == REGIONAL_OFFICER:
        return {"regions": False, "woredas": True, "pick_region": False}
    return {"regions": True, "woredas": True, "pick_region": True}
